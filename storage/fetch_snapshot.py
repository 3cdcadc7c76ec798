"""Last-fetch diagnostic dump, overwritten every poll cycle."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)


def write_fetch_snapshot(path: Path | str, attempts: Iterable[Dict[str, Any]]) -> bool:
    path = Path(path)
    snapshot = {
        "ts": datetime.now(timezone.utc).isoformat(),
        "attempts": list(attempts),
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(snapshot, indent=2, default=str), encoding="utf-8")
    except OSError as exc:
        logger.error("Failed to write fetch snapshot %s: %s", path, exc)
        return False
    return True
