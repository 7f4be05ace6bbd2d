"""XP level progression.

The level is always re-derived from the XP counter and the threshold table; it is
never stored next to the counter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from .errors import InvalidAmount


class XPLevel(str, Enum):
    STARTER = "starter"
    PACER = "pacer"
    ELITE = "elite"


@dataclass(frozen=True)
class LevelThreshold:
    level: XPLevel
    min_xp: int
    renewal_discount: int  # percent off the subscription renewal


LEVEL_TABLE: tuple[LevelThreshold, ...] = (
    LevelThreshold(XPLevel.STARTER, 0, 0),
    LevelThreshold(XPLevel.PACER, 10_000, 5),
    LevelThreshold(XPLevel.ELITE, 15_000, 10),
)


@dataclass(frozen=True)
class XPProgress:
    current_xp: int
    level: XPLevel
    next_level: Optional[XPLevel]
    xp_to_next_level: int
    renewal_discount: int

    def as_dict(self) -> Dict[str, Any]:
        return {
            "current_xp": self.current_xp,
            "level": self.level.value,
            "next_level": self.next_level.value if self.next_level else None,
            "xp_to_next_level": self.xp_to_next_level,
            "renewal_discount": self.renewal_discount,
        }


def validate_level_table(table: Sequence[LevelThreshold]) -> None:
    if not table:
        raise ValueError("Level table must contain at least one level")
    if table[0].min_xp != 0:
        raise ValueError("Lowest level must start at 0 XP")
    for lower, upper in zip(table, table[1:]):
        if upper.min_xp <= lower.min_xp:
            raise ValueError("Level thresholds must be strictly increasing")


validate_level_table(LEVEL_TABLE)


def progress(current_xp: int, table: Sequence[LevelThreshold] = LEVEL_TABLE) -> XPProgress:
    if current_xp < 0:
        raise InvalidAmount("XP cannot be negative")

    index = 0
    for position, threshold in enumerate(table):
        if threshold.min_xp <= current_xp:
            index = position
    current = table[index]
    upcoming = table[index + 1] if index + 1 < len(table) else None

    return XPProgress(
        current_xp=current_xp,
        level=current.level,
        next_level=upcoming.level if upcoming else None,
        xp_to_next_level=max(0, upcoming.min_xp - current_xp) if upcoming else 0,
        renewal_discount=current.renewal_discount,
    )


def accumulate_xp(current_xp: int, delta: int) -> int:
    """XP only ever grows."""

    if delta < 0:
        raise InvalidAmount("XP delta cannot be negative")
    return current_xp + delta


__all__ = [
    "LEVEL_TABLE",
    "LevelThreshold",
    "XPLevel",
    "XPProgress",
    "accumulate_xp",
    "progress",
    "validate_level_table",
]
