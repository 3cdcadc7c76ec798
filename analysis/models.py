#!/usr/bin/env python3
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional

from constants import (
    MIGRATED_MIN_BUYS,
    MIGRATED_MIN_HOLDERS_EXCLUSIVE,
    MIGRATED_MIN_MARKET_CAP,
    MIGRATED_MIN_SELLS,
    PUMP_MAX_AGE_MINUTES,
    PUMP_MIN_BUYS,
    PUMP_MIN_MARKET_CAP,
    PUMP_MIN_SELLS,
)


class ClassifierThresholds(NamedTuple):
    """Numeric limits for the pump and migrated rules."""
    pump_min_market_cap: float = PUMP_MIN_MARKET_CAP
    pump_min_buys: int = PUMP_MIN_BUYS
    pump_min_sells: int = PUMP_MIN_SELLS
    pump_max_age_minutes: float = PUMP_MAX_AGE_MINUTES
    migrated_min_market_cap: float = MIGRATED_MIN_MARKET_CAP
    migrated_min_holders_exclusive: int = MIGRATED_MIN_HOLDERS_EXCLUSIVE
    migrated_min_buys: int = MIGRATED_MIN_BUYS
    migrated_min_sells: int = MIGRATED_MIN_SELLS


@dataclass
class ClassificationResult:
    """A token that satisfied one category's rule in the current poll cycle."""
    token: Dict[str, Any] = field(repr=False)
    category: str  # 'pump' or 'migrated'
    market_cap: float
    buys: int
    sells: int
    age_minutes: float
    holders: Optional[int] = None

    @property
    def label(self) -> str:
        return str(self.token.get('symbol') or self.token.get('name') or 'N/A')
