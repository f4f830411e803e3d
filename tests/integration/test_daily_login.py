"""Daily-login claim integration tests."""

from __future__ import annotations

import asyncio
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from hxp.database import run_transaction
from hxp.db.models import StreakRecord, XPEvent
from hxp.errors import ValidationError
from hxp.gamification import streak_service, xp_service
from hxp.gamification.rewards import XPSource
from tests.conftest import WALLET

DAY = date(2026, 3, 10)


async def _claim(db_session, day):
    result = await streak_service.claim_daily_login(db_session, WALLET, day)
    await db_session.commit()
    return result


class TestClaimDailyLogin:
    @pytest.mark.asyncio
    async def test_first_claim(self, db_session):
        result = await _claim(db_session, DAY)
        assert result.success is True
        assert result.already_claimed is False
        assert result.current_streak == 1
        assert result.longest_streak == 1
        assert result.xp_awarded == 5
        assert result.new_total == 5

    @pytest.mark.asyncio
    async def test_second_claim_same_day(self, db_session):
        await _claim(db_session, DAY)
        again = await _claim(db_session, DAY)

        assert again.success is False
        assert again.already_claimed is True
        assert again.current_streak == 1
        assert again.xp_awarded == 0

        count = await db_session.execute(select(func.count()).select_from(XPEvent))
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_consecutive_days_increment(self, db_session):
        for offset in range(3):
            result = await _claim(db_session, DAY + timedelta(days=offset))
        assert result.current_streak == 3
        assert result.longest_streak == 3

    @pytest.mark.asyncio
    async def test_gap_resets_streak(self, db_session):
        await _claim(db_session, DAY)
        await _claim(db_session, DAY + timedelta(days=1))
        result = await _claim(db_session, DAY + timedelta(days=3))
        assert result.current_streak == 1
        assert result.longest_streak == 2

    @pytest.mark.asyncio
    async def test_seven_day_milestone_bonus(self, db_session):
        for offset in range(6):
            await _claim(db_session, DAY + timedelta(days=offset))
        seventh = await _claim(db_session, DAY + timedelta(days=6))
        assert seventh.current_streak == 7
        assert seventh.xp_awarded == 55
        assert seventh.new_total == 6 * 5 + 55

    @pytest.mark.asyncio
    async def test_claim_in_the_past_rejected(self, db_session):
        await _claim(db_session, DAY)
        with pytest.raises(ValidationError):
            await streak_service.claim_daily_login(db_session, WALLET, DAY - timedelta(days=1))

    @pytest.mark.asyncio
    async def test_ledger_key_is_claim_date(self, db_session):
        await _claim(db_session, DAY)
        event = (await db_session.execute(select(XPEvent))).scalar_one()
        assert event.idempotency_key == f"daily_login:{WALLET}:2026-03-10"
        assert event.source == "daily_login"

    @pytest.mark.asyncio
    async def test_ledger_ahead_of_streak_row(self, db_session):
        # The day is already in the ledger but the streak row never advanced.
        await xp_service.award(db_session, WALLET, 5, XPSource.daily_login, DAY.isoformat())
        await db_session.commit()

        result = await _claim(db_session, DAY)
        assert result.success is False
        assert result.already_claimed is True
        assert result.xp_awarded == 0

        streaks = await db_session.execute(select(func.count()).select_from(StreakRecord))
        assert streaks.scalar_one() == 0
        events = await db_session.execute(select(func.count()).select_from(XPEvent))
        assert events.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_concurrent_claims_apply_once(self, db_session):
        claim = lambda db: streak_service.claim_daily_login(db, WALLET, DAY)  # noqa: E731
        results = await asyncio.gather(*(run_transaction(claim, attempts=10) for _ in range(4)))

        assert sum(r.success for r in results) == 1
        assert all(r.current_streak == 1 for r in results)
        record = await db_session.get(StreakRecord, WALLET)
        assert record.current_streak == 1
        count = await db_session.execute(select(func.count()).select_from(XPEvent))
        assert count.scalar_one() == 1


class TestDailyLoginStatus:
    @pytest.mark.asyncio
    async def test_unknown_wallet(self, db_session):
        status = await streak_service.get_daily_login_status(db_session, WALLET, DAY)
        assert status["claimed_today"] is False
        assert status["current_streak"] == 0
        assert status["next_available"] is None

    @pytest.mark.asyncio
    async def test_claimed_today(self, db_session):
        await _claim(db_session, DAY)
        status = await streak_service.get_daily_login_status(db_session, WALLET, DAY)
        assert status["claimed_today"] is True
        assert status["current_streak"] == 1
        assert status["next_available"] is not None

    @pytest.mark.asyncio
    async def test_lapsed_streak_reported_as_zero(self, db_session):
        await _claim(db_session, DAY)
        await _claim(db_session, DAY + timedelta(days=1))
        status = await streak_service.get_daily_login_status(db_session, WALLET, DAY + timedelta(days=5))
        assert status["current_streak"] == 0
        assert status["longest_streak"] == 2
