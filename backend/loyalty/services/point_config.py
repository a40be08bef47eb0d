# Overview: Point program configuration; turns raw store settings into a validated PointConfig.

"""
Point program configuration.

Store operators edit three settings (earn rate as a percentage, expiry
window in months, minimum redeemable points). Values may be missing, None,
Decimal (Numeric column), strings from a form, or garbage. Everything here
is pure and never raises: bad input degrades to the program default.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

from dateutil.relativedelta import relativedelta

from loyalty.time_utils import utcnow


@dataclass(frozen=True)
class PointConfig:
    earn_rate: float          # fraction of the paid amount, 0.01 == 1%
    expiration_months: int    # >= 1
    min_points_to_use: int    # >= 0


DEFAULT_POINT_CONFIG = PointConfig(earn_rate=0.01, expiration_months=12, min_points_to_use=100)

# Stored earn rate is a percentage; 1 means 1%.
DEFAULT_EARN_RATE_PERCENT = 1


def _setting(settings: Mapping[str, Any] | Any | None, key: str) -> Any:
    if settings is None:
        return None
    if isinstance(settings, Mapping):
        return settings.get(key)
    return getattr(settings, key, None)


def _to_float(value: Any) -> float:
    """float() that maps anything unconvertible to NaN."""
    if isinstance(value, bool):
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError, OverflowError):
        return math.nan


def resolve_point_config(settings: Mapping[str, Any] | Any | None = None) -> PointConfig:
    """
    Build a PointConfig from optional store settings.

    Accepts a mapping or any object with point_earn_rate,
    point_expiration_months and point_min_usage attributes (e.g. Store).

    - point_earn_rate is a percentage and is divided by 100; missing (None) means 1%, 0 means no points.
      Non-numeric or non-finite falls back to the default fraction; negative
      rates are clamped to 0.
    - point_expiration_months is floored and clamped to >= 1.
    - point_min_usage is floored and clamped to >= 0.
    """
    raw_earn_rate = _setting(settings, "point_earn_rate")
    earn_rate_percent = _to_float(DEFAULT_EARN_RATE_PERCENT if raw_earn_rate is None else raw_earn_rate)
    if math.isfinite(earn_rate_percent):
        earn_rate = max(0.0, earn_rate_percent / 100)
    else:
        earn_rate = DEFAULT_POINT_CONFIG.earn_rate

    raw_expiration = _setting(settings, "point_expiration_months")
    expiration = _to_float(DEFAULT_POINT_CONFIG.expiration_months if raw_expiration is None else raw_expiration)
    if math.isfinite(expiration):
        expiration_months = max(1, math.floor(expiration))
    else:
        expiration_months = DEFAULT_POINT_CONFIG.expiration_months

    raw_min_usage = _setting(settings, "point_min_usage")
    min_usage = _to_float(DEFAULT_POINT_CONFIG.min_points_to_use if raw_min_usage is None else raw_min_usage)
    if math.isfinite(min_usage):
        min_points_to_use = max(0, math.floor(min_usage))
    else:
        min_points_to_use = DEFAULT_POINT_CONFIG.min_points_to_use

    return PointConfig(
        earn_rate=earn_rate,
        expiration_months=expiration_months,
        min_points_to_use=min_points_to_use,
    )


def calculate_earned_points(amount: Any, config: PointConfig = DEFAULT_POINT_CONFIG) -> int:
    """Points for a paid amount, always rounded down. 0 for non-positive or non-finite amounts."""
    value = _to_float(amount)
    if not math.isfinite(value) or value <= 0:
        return 0
    return math.floor(value * config.earn_rate)


def calculate_expiry_date(
    config: PointConfig = DEFAULT_POINT_CONFIG,
    from_date: datetime | None = None,
) -> datetime:
    """
    from_date advanced by config.expiration_months calendar months.

    Month-end dates clamp to the last day of the target month
    (Jan 31 + 1 month == Feb 28/29).
    """
    if from_date is None:
        from_date = utcnow()
    return from_date + relativedelta(months=config.expiration_months)
