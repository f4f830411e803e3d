"""Reward table and idempotency key tests."""

from decimal import Decimal

import pytest

from hxp.errors import ValidationError
from hxp.gamification.rewards import (
    COURSE_XP_DEFAULT,
    DAILY_LOGIN_BASE_XP,
    PLACEMENT_REWARDS,
    Placement,
    XPSource,
    course_xp,
    daily_login_xp,
)
from hxp.gamification.xp_service import idempotency_key, normalize_wallet


class TestCourseXP:
    def test_listed_course(self):
        assert course_xp("wallet-wizardry") == 100

    def test_unlisted_course_gets_default(self):
        assert course_xp("underwater-basket-weaving") == COURSE_XP_DEFAULT == 50


class TestDailyLoginXP:
    """Base XP, plus milestone bonuses only on a continued streak."""

    def test_first_claim_is_base(self):
        assert daily_login_xp(1, continued=False) == DAILY_LOGIN_BASE_XP == 5

    def test_continued_without_milestone(self):
        assert daily_login_xp(3, continued=True) == 5

    def test_seven_day_milestone(self):
        assert daily_login_xp(7, continued=True) == 55

    def test_thirty_day_milestone(self):
        assert daily_login_xp(30, continued=True) == 205

    def test_past_milestone_no_bonus(self):
        assert daily_login_xp(8, continued=True) == 5


class TestPlacementRewards:
    def test_table(self):
        assert PLACEMENT_REWARDS[Placement.first] == {"xp": 250, "sol": Decimal("0.05")}
        assert PLACEMENT_REWARDS[Placement.second]["xp"] == 100
        assert PLACEMENT_REWARDS[Placement.third]["sol"] == Decimal("0.02")

    def test_bonus_decreases_with_place(self):
        xp = [PLACEMENT_REWARDS[p]["xp"] for p in Placement]
        assert xp == sorted(xp, reverse=True)


class TestIdempotencyKey:
    """Keys are namespace:wallet:reference."""

    def test_source_name_is_namespace(self):
        assert idempotency_key("W1", XPSource.daily_login, "2026-01-05") == "daily_login:W1:2026-01-05"

    def test_winner_bonus_namespace(self):
        assert idempotency_key("W1", XPSource.bounty_winner_bonus, "42") == "bounty_winner:W1:42"

    def test_accepts_plain_string_source(self):
        assert idempotency_key("W1", "bounty_submission", "42") == "bounty_submission:W1:42"

    def test_same_reference_different_sources_differ(self):
        keys = {idempotency_key("W1", source, "42") for source in XPSource}
        assert len(keys) == len(XPSource)

    def test_unknown_source_rejected(self):
        with pytest.raises(ValueError):
            idempotency_key("W1", "free_money", "1")

    def test_separator_cannot_shift_between_wallet_and_reference(self):
        # "x:1" + "2" and "x" + "1:2" would join to the same key.
        with pytest.raises(ValidationError):
            normalize_wallet("x:1")
        key = idempotency_key(normalize_wallet("x"), XPSource.course_completion, "1:2")
        assert key.split(":", 2) == ["course_completion", "x", "1:2"]


class TestNormalizeWallet:
    def test_strips(self):
        assert normalize_wallet("  abc  ") == "abc"

    @pytest.mark.parametrize("wallet", ["", "   ", "a b", "x" * 65, "x:1"])
    def test_rejects(self, wallet):
        with pytest.raises(ValidationError):
            normalize_wallet(wallet)
