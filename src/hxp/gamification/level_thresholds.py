"""Level thresholds and computation.

Pure functions over a static, strictly ascending table. No I/O and no state
of their own: callers recompute on demand whenever a cached level must be
refreshed. Every function takes an optional ``table`` so alternative tables
can be evaluated with the same rules.
"""

from __future__ import annotations

from bisect import bisect_right
from collections.abc import Sequence
from dataclasses import dataclass, field


@dataclass(frozen=True)
class LevelDefinition:
    level: int
    title: str
    xp_threshold: int
    unlocks: tuple[str, ...] = field(default_factory=tuple)


LEVEL_THRESHOLDS: tuple[LevelDefinition, ...] = (
    LevelDefinition(1, "New Recruit", 0, ("Basic profile access", "Course enrollment")),
    LevelDefinition(2, "Apprentice Hoodie", 100, ("Bounty submissions", "Squad chat access")),
    LevelDefinition(3, "Squad Contributor", 250, ("Squad leaderboards", "XP tracking")),
    LevelDefinition(4, "Lore Builder", 500, ("Lore creation", "Story submissions")),
    LevelDefinition(5, "Vault Access", 1000, ("Premium courses", "Exclusive content")),
    LevelDefinition(6, "DAO Ready", 1750, ("Voting rights", "Proposal creation")),
    LevelDefinition(7, "Squad Leader", 2500, ("Squad management", "Event hosting")),
    LevelDefinition(8, "Council Member", 3500, ("Council access", "Strategic decisions")),
    LevelDefinition(9, "Shadow Hoodie", 5000, ("Stealth missions", "Covert operations")),
    LevelDefinition(10, "Legend", 7777, ("Legendary status", "All access pass")),
    LevelDefinition(11, "Mythic Hoodie", 10000, ("Mythic rewards", "Exclusive merch")),
    LevelDefinition(12, "Eternal Guardian", 15000, ("Guardian status", "Mentorship rights")),
    LevelDefinition(13, "Cosmic Wanderer", 25000, ("Cosmic rewards", "Interdimensional access")),
    LevelDefinition(14, "Digital Deity", 50000, ("Deity status", "Reality manipulation")),
    LevelDefinition(15, "Hoodie God", 100000, ("God status", "All powers unlocked")),
)


def validate_table(table: Sequence[LevelDefinition]) -> None:
    """Raise ValueError unless levels and thresholds are both strictly ascending."""
    if not table:
        raise ValueError("Level table must not be empty")
    for prev, cur in zip(table, table[1:]):
        if cur.level <= prev.level:
            raise ValueError(f"Levels must ascend: {prev.level} -> {cur.level}")
        if cur.xp_threshold <= prev.xp_threshold:
            raise ValueError(
                f"Thresholds must ascend: level {prev.level} ({prev.xp_threshold}) "
                f"-> level {cur.level} ({cur.xp_threshold})"
            )


validate_table(LEVEL_THRESHOLDS)


def _index_for(xp: int, table: Sequence[LevelDefinition]) -> int:
    # XP below the first threshold still belongs to the first level.
    idx = bisect_right([d.xp_threshold for d in table], xp) - 1
    return max(idx, 0)


def definition_for(xp: int, table: Sequence[LevelDefinition] = LEVEL_THRESHOLDS) -> LevelDefinition:
    """The LevelDefinition reached at ``xp``."""
    return table[_index_for(xp, table)]


def level_for(xp: int, table: Sequence[LevelDefinition] = LEVEL_THRESHOLDS) -> int:
    """Highest level whose threshold is <= xp."""
    return definition_for(xp, table).level


def progress(xp: int, table: Sequence[LevelDefinition] = LEVEL_THRESHOLDS) -> dict:
    """Progress through the current level.

    At max level ``next_level`` is None, ``xp_for_next`` is 0 and
    ``percent`` is 100.
    """
    idx = _index_for(xp, table)
    current = table[idx]
    nxt = table[idx + 1] if idx + 1 < len(table) else None

    xp_into_level = max(xp - current.xp_threshold, 0)
    if nxt is None:
        return {
            "level": current.level,
            "title": current.title,
            "next_level": None,
            "next_title": None,
            "xp_into_level": xp_into_level,
            "xp_for_next": 0,
            "percent": 100.0,
        }

    span = nxt.xp_threshold - current.xp_threshold
    percent = min(max(xp_into_level / span * 100, 0.0), 100.0)
    return {
        "level": current.level,
        "title": current.title,
        "next_level": nxt.level,
        "next_title": nxt.title,
        "xp_into_level": xp_into_level,
        "xp_for_next": nxt.xp_threshold - max(xp, current.xp_threshold),
        "percent": round(percent, 2),
    }


def total_unlocks(level: int, table: Sequence[LevelDefinition] = LEVEL_THRESHOLDS) -> list[str]:
    """Deduplicated, order-preserving union of unlocks for every level <= ``level``."""
    seen: dict[str, None] = {}
    for definition in table:
        if definition.level > level:
            break
        for unlock in definition.unlocks:
            seen.setdefault(unlock, None)
    return list(seen)
