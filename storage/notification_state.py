"""JSON-file backed latch store deciding which token alerts have already fired."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from constants import CATEGORIES

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("address", "pool_address", "poolAddress")


def token_key(token: Dict[str, Any]) -> Optional[str]:
    """Returns the dedup key for a token, or None when it carries no address."""
    for field in IDENTITY_FIELDS:
        value = token.get(field)
        if value:
            return str(value)
    return None


def _check_category(category: str) -> None:
    if category not in CATEGORIES:
        raise ValueError(f"Unknown category: {category!r}")


def _empty_record() -> Dict[str, bool]:
    return {category: False for category in CATEGORIES}


class NotificationStateStore:
    """
    Owns the token id -> {pump, migrated} map.

    Flags only ever move from False to True. ``load`` and ``save`` are the only
    I/O; pass ``path=None`` for a memory-only store.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        self.path = Path(path) if path is not None else None
        self._state: Dict[str, Dict[str, bool]] = {}

    def __len__(self) -> int:
        return len(self._state)

    def __contains__(self, token_id: object) -> bool:
        return token_id in self._state

    def load(self) -> "NotificationStateStore":
        """Replaces the in-memory map with the file contents. Never raises on bad files."""
        self._state = {}
        if self.path is None:
            return self
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.info("No notification state at %s; starting fresh.", self.path)
            return self
        except (OSError, ValueError) as exc:
            logger.error("Failed to parse notified file %s: %s. Starting with empty state.", self.path, exc)
            return self

        if not isinstance(raw, dict):
            logger.error("Notified file %s does not hold an object; starting with empty state.", self.path)
            return self

        for token_id, entry in raw.items():
            record = _empty_record()
            if isinstance(entry, dict):
                for category in CATEGORIES:
                    record[category] = bool(entry.get(category, False))
            self._state[str(token_id)] = record
        logger.info("Loaded notification state for %d tokens from %s.", len(self._state), self.path)
        return self

    def save(self) -> bool:
        """Writes the map to disk. Returns False (after logging) when the write fails."""
        if self.path is None:
            return True
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self._state, indent=2), encoding="utf-8")
        except OSError as exc:
            logger.error("Failed to persist notified state to %s: %s", self.path, exc)
            return False
        return True

    def get(self, token_id: str) -> Dict[str, bool]:
        return dict(self._state.get(token_id) or _empty_record())

    def should_notify(self, token_id: str, category: str) -> bool:
        _check_category(category)
        record = self._state.get(token_id)
        return not (record and record.get(category))

    def mark_notified(self, token_id: str, category: str) -> None:
        _check_category(category)
        record = self._state.setdefault(token_id, _empty_record())
        record[category] = True
