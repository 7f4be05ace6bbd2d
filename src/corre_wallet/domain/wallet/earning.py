"""Earning tables: point causes, their TTLs, and activity point values."""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from enum import Enum
from typing import Mapping

from .errors import InvalidAmount


class PointCause(str, Enum):
    """Closed set of reasons a grant can be issued for."""

    ROUTINE = "routine"
    SPECIAL = "special"
    RACE = "race"
    PURCHASE_REFUND = "purchase_refund"


DEFAULT_TTL_DAYS: Mapping[PointCause, int] = {
    PointCause.ROUTINE: 30,
    PointCause.SPECIAL: 60,
    PointCause.RACE: 365,
    PointCause.PURCHASE_REFUND: 365,
}

EVENT_POINTS: Mapping[PointCause, int] = {
    PointCause.ROUTINE: 3,
    PointCause.SPECIAL: 5,
    PointCause.RACE: 10,
}

# (minimum distance in km, points); evaluated from the longest band down.
RUN_POINT_BANDS: tuple[tuple[float, int], ...] = (
    (21.0, 15),
    (10.0, 10),
    (5.0, 5),
    (2.0, 3),
    (0.0, 1),
)


def ttl_for(cause: PointCause | str, ttl_days: Mapping[PointCause, int] | None = None) -> timedelta:
    table = ttl_days or DEFAULT_TTL_DAYS
    return timedelta(days=table[PointCause(cause)])


def expires_at_for(
    cause: PointCause | str,
    granted_at: datetime,
    ttl_days: Mapping[PointCause, int] | None = None,
) -> datetime:
    return granted_at + ttl_for(cause, ttl_days)


def points_for_event(cause: PointCause | str) -> int:
    """Return the default check-in award for an event cause."""

    resolved = PointCause(cause)
    try:
        return EVENT_POINTS[resolved]
    except KeyError:
        raise InvalidAmount(f"No default points for cause '{resolved.value}'") from None


def points_for_run(distance_km: float) -> int:
    """Map a run distance onto the points band it earns."""

    if not math.isfinite(distance_km):
        raise InvalidAmount(f"Run distance must be a finite number, got {distance_km}")
    if distance_km < 0:
        raise InvalidAmount("Run distance cannot be negative")
    for minimum, points in RUN_POINT_BANDS:
        if distance_km >= minimum:
            return points
    return RUN_POINT_BANDS[-1][1]


def ttl_table_from_settings(config: object) -> dict[PointCause, int]:
    """Build a TTL table from a settings object exposing ``<cause>_points_ttl_days``."""

    table = dict(DEFAULT_TTL_DAYS)
    for cause in PointCause:
        value = getattr(config, f"{cause.value}_points_ttl_days", None)
        if value is not None:
            table[cause] = int(value)
    return table


__all__ = [
    "DEFAULT_TTL_DAYS",
    "EVENT_POINTS",
    "PointCause",
    "RUN_POINT_BANDS",
    "expires_at_for",
    "points_for_event",
    "points_for_run",
    "ttl_for",
    "ttl_table_from_settings",
]
