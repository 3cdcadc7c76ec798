#!/usr/bin/env python3
"""Pump / migrated rule evaluation over raw gmgn rank records."""
from __future__ import annotations

import math
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from analysis.models import ClassificationResult, ClassifierThresholds
from constants import (
    CATEGORY_MIGRATED,
    CATEGORY_PUMP,
    COMPLETED_KEYS,
    NEAR_COMPLETION_KEYS,
)


def _is_count(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value) and value >= 0


def _to_float(value: Any) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def choose_count(token: Dict[str, Any], prefix: str) -> int:
    """Picks the buy or sell count, preferring the 1m window, then 1h, then generic swaps."""
    for key in (f"{prefix}_1m", f"{prefix}_1h", "swaps_1m", "swaps_1h"):
        value = token.get(key)
        if _is_count(value):
            return int(value)
    return 0


def age_minutes(token: Dict[str, Any], now: Optional[float] = None) -> float:
    created = _to_float(token.get("created_timestamp") or token.get("createdTimestamp") or 0)
    if not created:
        return math.inf
    now = time.time() if now is None else now
    return (math.floor(now) - created) / 60


def market_cap(token: Dict[str, Any]) -> float:
    return _to_float(token.get("usd_market_cap") or token.get("market_cap") or 0)


def holder_count(token: Dict[str, Any]) -> int:
    return int(_to_float(token.get("holder_count") or token.get("holderCount") or 0))


def _first_list(data: Dict[str, Any], keys: Iterable[str]) -> List[Dict[str, Any]]:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        return [item for item in value if isinstance(item, dict)] if isinstance(value, list) else []
    return []


def extract_buckets(payload: Any) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Returns the (near_completion, completed) arrays of a rank response, empty when absent."""
    if not isinstance(payload, dict):
        return [], []
    data = payload.get("data")
    if not isinstance(data, dict):
        return [], []
    return _first_list(data, NEAR_COMPLETION_KEYS), _first_list(data, COMPLETED_KEYS)


def classify_pump(token: Dict[str, Any], thresholds: ClassifierThresholds, now: Optional[float] = None) -> Optional[ClassificationResult]:
    mcap = market_cap(token)
    buys = choose_count(token, "buys")
    sells = choose_count(token, "sells")
    age = age_minutes(token, now)

    if (
        mcap >= thresholds.pump_min_market_cap
        and buys >= thresholds.pump_min_buys
        and sells >= thresholds.pump_min_sells
        and age < thresholds.pump_max_age_minutes
    ):
        return ClassificationResult(
            token=token,
            category=CATEGORY_PUMP,
            market_cap=mcap,
            buys=buys,
            sells=sells,
            age_minutes=age,
        )
    return None


def classify_migrated(token: Dict[str, Any], thresholds: ClassifierThresholds, now: Optional[float] = None) -> Optional[ClassificationResult]:
    mcap = market_cap(token)
    holders = holder_count(token)
    buys = choose_count(token, "buys")
    sells = choose_count(token, "sells")

    if (
        mcap >= thresholds.migrated_min_market_cap
        and holders > thresholds.migrated_min_holders_exclusive
        and buys >= thresholds.migrated_min_buys
        and sells >= thresholds.migrated_min_sells
    ):
        return ClassificationResult(
            token=token,
            category=CATEGORY_MIGRATED,
            market_cap=mcap,
            buys=buys,
            sells=sells,
            age_minutes=age_minutes(token, now),
            holders=holders,
        )
    return None


def classify_buckets(
    near_completion: Iterable[Dict[str, Any]],
    completed: Iterable[Dict[str, Any]],
    thresholds: Optional[ClassifierThresholds] = None,
    now: Optional[float] = None,
) -> Tuple[List[ClassificationResult], List[ClassificationResult]]:
    """Evaluates both rules, preserving each bucket's order. No side effects."""
    thresholds = thresholds or ClassifierThresholds()
    now = time.time() if now is None else now

    pump_matches = [
        match for match in (classify_pump(token, thresholds, now) for token in near_completion) if match
    ]
    migrated_matches = [
        match for match in (classify_migrated(token, thresholds, now) for token in completed) if match
    ]
    return pump_matches, migrated_matches
