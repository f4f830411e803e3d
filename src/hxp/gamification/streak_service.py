"""Daily-login streaks: calendar-day transitions and the claim action."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hxp.config import get_settings
from hxp.db.models import StreakRecord
from hxp.errors import AlreadyClaimedToday, TransientStoreError, ValidationError
from hxp.gamification.rewards import XPSource, daily_login_xp
from hxp.gamification.xp_service import award, ensure_user, normalize_wallet

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreakState:
    current_streak: int = 0
    longest_streak: int = 0
    last_claim_date: date | None = None


@dataclass
class DailyLoginResult:
    success: bool
    already_claimed: bool
    current_streak: int
    longest_streak: int
    xp_awarded: int
    new_total: int | None
    leveled_up: bool
    new_level: int | None
    claim_date: date
    next_available: datetime

    def to_dict(self) -> dict:
        return asdict(self)


def canonical_tz() -> ZoneInfo:
    return ZoneInfo(get_settings().streak_timezone)


def today_in_canonical_tz(now: datetime | None = None) -> date:
    """The calendar date streaks are counted in."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(canonical_tz()).date()


def next_available_at(today: date) -> datetime:
    """Start of the day after ``today`` in the canonical timezone, as UTC."""
    start = datetime.combine(today + timedelta(days=1), time.min, tzinfo=canonical_tz())
    return start.astimezone(timezone.utc)


def next_streak_state(state: StreakState, today: date) -> tuple[StreakState, bool]:
    """Apply one claim on ``today``.

    Returns the new state and whether the streak continued from yesterday.
    Raises AlreadyClaimedToday for a second claim on the same date and
    ValidationError when ``today`` precedes the last claim.
    """
    last = state.last_claim_date
    if last is not None:
        if today == last:
            raise AlreadyClaimedToday(f"already claimed on {today.isoformat()}")
        if today < last:
            raise ValidationError(
                f"claim date {today.isoformat()} precedes last claim {last.isoformat()}"
            )

    continued = last is not None and (today - last).days == 1
    current = state.current_streak + 1 if continued else 1
    new_state = StreakState(
        current_streak=current,
        longest_streak=max(state.longest_streak, current),
        last_claim_date=today,
    )
    return new_state, continued


async def _get_or_create_record(db: AsyncSession, wallet: str) -> StreakRecord:
    result = await db.execute(
        select(StreakRecord)
        .where(StreakRecord.wallet_address == wallet)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    if record is not None:
        return record

    record = StreakRecord(
        wallet_address=wallet,
        current_streak=0,
        longest_streak=0,
        last_claim_date=None,
        updated_at=datetime.now(timezone.utc),
    )
    db.add(record)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise TransientStoreError(f"concurrent streak creation for {wallet}") from exc
    return record


def _rejected(state: StreakState, today: date) -> DailyLoginResult:
    return DailyLoginResult(
        success=False,
        already_claimed=True,
        current_streak=state.current_streak,
        longest_streak=state.longest_streak,
        xp_awarded=0,
        new_total=None,
        leveled_up=False,
        new_level=None,
        claim_date=today,
        next_available=next_available_at(today),
    )


async def claim_daily_login(
    db: AsyncSession,
    wallet: str,
    today: date | None = None,
) -> DailyLoginResult:
    """Claim today's login XP for a wallet.

    A repeated claim on the same day is reported with ``already_claimed=True``
    and changes nothing. The streak row is written with a conditional update
    on the previous claim date, and the award is keyed on the claim date, so
    concurrent claims apply at most once.
    """
    wallet = normalize_wallet(wallet)
    if today is None:
        today = today_in_canonical_tz()

    await ensure_user(db, wallet)
    record = await _get_or_create_record(db, wallet)
    state = StreakState(record.current_streak, record.longest_streak, record.last_claim_date)

    try:
        new_state, continued = next_streak_state(state, today)
    except AlreadyClaimedToday:
        logger.debug("Daily login already claimed: %s on %s", wallet, today)
        return _rejected(state, today)

    guard = (
        StreakRecord.last_claim_date.is_(None)
        if state.last_claim_date is None
        else StreakRecord.last_claim_date == state.last_claim_date
    )
    written = await db.execute(
        update(StreakRecord)
        .where(StreakRecord.wallet_address == wallet, guard)
        .values(
            current_streak=new_state.current_streak,
            longest_streak=new_state.longest_streak,
            last_claim_date=new_state.last_claim_date,
            updated_at=datetime.now(timezone.utc),
        )
        .execution_options(synchronize_session=False)
    )
    if written.rowcount == 0:
        raise TransientStoreError(f"concurrent daily-login claim for {wallet}")

    xp = daily_login_xp(new_state.current_streak, continued)
    result = await award(
        db,
        wallet,
        xp,
        XPSource.daily_login,
        today.isoformat(),
        f"Daily login (streak {new_state.current_streak})",
    )
    if result.duplicate:
        # Ledger already has this day; the streak row must not advance.
        await db.rollback()
        return _rejected(state, today)

    logger.info(
        "Daily login: %s streak=%d longest=%d xp=%d",
        wallet, new_state.current_streak, new_state.longest_streak, xp,
    )
    return DailyLoginResult(
        success=True,
        already_claimed=False,
        current_streak=new_state.current_streak,
        longest_streak=new_state.longest_streak,
        xp_awarded=xp,
        new_total=result.new_total,
        leveled_up=result.leveled_up,
        new_level=result.new_level,
        claim_date=today,
        next_available=next_available_at(today),
    )


async def get_daily_login_status(
    db: AsyncSession,
    wallet: str,
    today: date | None = None,
) -> dict:
    """Whether today has been claimed, and the streak as it stands today.

    A streak whose last claim is older than yesterday is reported as 0; the
    stored value is only reset by the next claim.
    """
    wallet = normalize_wallet(wallet)
    if today is None:
        today = today_in_canonical_tz()

    result = await db.execute(
        select(StreakRecord)
        .where(StreakRecord.wallet_address == wallet)
        .execution_options(populate_existing=True)
    )
    record = result.scalar_one_or_none()
    last = record.last_claim_date if record else None
    claimed_today = last == today
    alive = last is not None and (today - last).days <= 1

    return {
        "wallet": wallet,
        "claimed_today": claimed_today,
        "current_streak": record.current_streak if record and alive else 0,
        "longest_streak": record.longest_streak if record else 0,
        "last_claim_date": last,
        "next_available": next_available_at(today) if claimed_today else None,
    }
