"""Canonical XP reward amounts.

This is the single source for every amount the services award. Nothing else
in the codebase hardcodes an XP value.
"""

from __future__ import annotations

import enum
from decimal import Decimal


class XPSource(str, enum.Enum):
    course_completion = "course_completion"
    bounty_submission = "bounty_submission"
    bounty_winner_bonus = "bounty_winner_bonus"
    daily_login = "daily_login"
    admin_adjustment = "admin_adjustment"


class SubmissionStatus(str, enum.Enum):
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"
    needs_revision = "needs_revision"


class Placement(str, enum.Enum):
    first = "first"
    second = "second"
    third = "third"


# --- Courses ---
COURSE_XP_DEFAULT: int = 50
COURSE_XP_REWARDS: dict[str, int] = {
    "wallet-wizardry": 100,
    "nft-mastery": 100,
    "meme-coin-mania": 100,
    "community-strategy": 100,
    "sns": 100,
    "technical-analysis": 100,
    "cybersecurity-wallet-practices": 100,
    "ai-automation-curriculum": 100,
    "lore-narrative-crafting": 100,
    "nft-trading-psychology": 100,
}

# --- Daily login ---
DAILY_LOGIN_BASE_XP: int = 5
# Extra XP on the claim that reaches exactly this streak length.
STREAK_MILESTONE_BONUS: dict[int, int] = {
    7: 50,
    30: 200,
}

# --- Bounties ---
BOUNTY_SUBMISSION_XP: int = 10
MAX_SUBMISSIONS_PER_BOUNTY: int = 3
PLACEMENT_REWARDS: dict[Placement, dict] = {
    Placement.first: {"xp": 250, "sol": Decimal("0.05")},
    Placement.second: {"xp": 100, "sol": Decimal("0.03")},
    Placement.third: {"xp": 50, "sol": Decimal("0.02")},
}


def course_xp(course_id: str) -> int:
    """XP for completing ``course_id`` (default for unlisted courses)."""
    return COURSE_XP_REWARDS.get(course_id, COURSE_XP_DEFAULT)


def daily_login_xp(current_streak: int, continued: bool) -> int:
    """XP for a successful claim. Milestone bonuses apply only to continued streaks."""
    if not continued:
        return DAILY_LOGIN_BASE_XP
    return DAILY_LOGIN_BASE_XP + STREAK_MILESTONE_BONUS.get(current_streak, 0)
