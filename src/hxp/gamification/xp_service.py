"""XP ledger: idempotent awards, cached totals and reconciliation.

The ledger (``xp_events``) is append-only and authoritative. ``users.total_xp``
and the cached level are a materialization of it, changed only by ``award``
and ``reconcile_wallet``, and always re-derivable from the ledger.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hxp.db.models import User, XPEvent
from hxp.errors import (
    ConflictError,
    InvalidAmount,
    NotFoundError,
    TransientStoreError,
    ValidationError,
)
from hxp.gamification.level_thresholds import (
    LEVEL_THRESHOLDS,
    definition_for,
    progress,
    total_unlocks,
)
from hxp.gamification.rewards import XPSource, course_xp
from hxp.gamification.signals import CHANNEL_LEVEL_UP, CHANNEL_XP_AWARDED, queue_signal

logger = logging.getLogger(__name__)

MAX_WALLET_LENGTH = 64
MAX_REFERENCE_LENGTH = 128
MAX_REASON_LENGTH = 256
# xp_events.delta is a 32-bit INT.
MAX_ABS_DELTA = 2**31 - 1

KEY_SEPARATOR = ":"

# Key namespaces differ from source names only where noted.
_KEY_NAMESPACE: dict[XPSource, str] = {
    XPSource.bounty_winner_bonus: "bounty_winner",
}


@dataclass
class AwardResult:
    wallet: str
    delta: int
    source: str
    new_total: int
    old_level: int
    new_level: int
    level_title: str
    leveled_up: bool
    duplicate: bool
    event_id: int | None

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_wallet(wallet: str) -> str:
    """Strip and validate a wallet identifier."""
    wallet = (wallet or "").strip()
    if not wallet:
        raise ValidationError("wallet address is required")
    if (
        len(wallet) > MAX_WALLET_LENGTH
        or KEY_SEPARATOR in wallet
        or any(ch.isspace() for ch in wallet)
    ):
        raise ValidationError(f"invalid wallet address: {wallet[:16]!r}")
    return wallet


def idempotency_key(wallet: str, source: XPSource | str, reference_id: str) -> str:
    """Deterministic key for one logical award: ``namespace:wallet:reference``.

    Neither the namespace nor a normalized wallet contains the separator, so
    the key splits back into its parts unambiguously.
    """
    source = XPSource(source)
    namespace = _KEY_NAMESPACE.get(source, source.value)
    return KEY_SEPARATOR.join((namespace, wallet, reference_id))


async def ensure_user(db: AsyncSession, wallet: str) -> User:
    """Get or create the user row for a wallet.

    A concurrent first insert for the same wallet surfaces as a transient error
    so the transaction runner replays against the committed row.
    """
    user = await db.get(User, wallet)
    if user is not None:
        return user

    now = datetime.now(timezone.utc)
    first = LEVEL_THRESHOLDS[0]
    user = User(
        wallet_address=wallet,
        total_xp=0,
        level=first.level,
        level_title=first.title,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise TransientStoreError(f"concurrent registration of wallet {wallet}") from exc
    return user


async def get_user(db: AsyncSession, wallet: str) -> User:
    """Fetch a user with fresh column values, or raise NotFoundError."""
    result = await db.execute(
        select(User)
        .where(User.wallet_address == wallet)
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"unknown wallet: {wallet}")
    return user


async def _find_event(db: AsyncSession, key: str) -> XPEvent | None:
    result = await db.execute(select(XPEvent).where(XPEvent.idempotency_key == key))
    return result.scalar_one_or_none()


async def _replay(
    db: AsyncSession,
    existing: XPEvent,
    wallet: str,
    delta: int,
    source: XPSource,
) -> AwardResult:
    """Result for a repeated award. A mismatched payload is a caller bug, not a retry."""
    if (
        existing.wallet_address != wallet
        or existing.delta != delta
        or existing.source != source.value
    ):
        raise ConflictError(
            f"idempotency key {existing.idempotency_key} already recorded "
            f"with delta={existing.delta} source={existing.source}; "
            f"got delta={delta} source={source.value}"
        )

    user = await get_user(db, wallet)
    logger.debug("Duplicate award ignored: %s", existing.idempotency_key)
    return AwardResult(
        wallet=wallet,
        delta=delta,
        source=source.value,
        new_total=user.total_xp,
        old_level=user.level,
        new_level=user.level,
        level_title=user.level_title,
        leveled_up=False,
        duplicate=True,
        event_id=existing.id,
    )


async def award(
    db: AsyncSession,
    wallet: str,
    delta: int,
    source: XPSource | str,
    reference_id: str,
    reason: str | None = None,
    *,
    allow_negative: bool = False,
    awarded_by: str | None = None,
) -> AwardResult:
    """Append one ledger entry and apply it to the cached total.

    1. Reject zero deltas, and negative ones unless ``allow_negative``
    2. Return the recorded result if the idempotency key already exists
    3. Atomically increment users.total_xp (never below zero)
    4. Insert the ledger row in the same transaction
    5. Recompute the cached level from the post-write total
    6. Queue xp_awarded, plus level_up when the level rose

    The caller owns the transaction; run it through ``run_transaction`` so a
    lost idempotency race is replayed as a duplicate.
    """
    wallet = normalize_wallet(wallet)
    try:
        source = XPSource(source)
    except ValueError as exc:
        raise ValidationError(f"unknown XP source: {source}") from exc
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise InvalidAmount("delta must be an integer")
    if delta == 0:
        raise InvalidAmount("delta must be non-zero")
    if abs(delta) > MAX_ABS_DELTA:
        raise InvalidAmount(f"delta must be within +/-{MAX_ABS_DELTA}")
    if delta < 0 and not allow_negative:
        raise InvalidAmount("negative delta requires an admin correction")
    reference_id = str(reference_id).strip()
    if not reference_id:
        raise ValidationError("reference_id is required")
    if len(reference_id) > MAX_REFERENCE_LENGTH:
        raise ValidationError(f"reference_id exceeds {MAX_REFERENCE_LENGTH} characters")
    if reason is not None and len(reason) > MAX_REASON_LENGTH:
        raise ValidationError(f"reason exceeds {MAX_REASON_LENGTH} characters")

    key = idempotency_key(wallet, source, reference_id)
    existing = await _find_event(db, key)
    if existing is not None:
        return await _replay(db, existing, wallet, delta, source)

    user = await ensure_user(db, wallet)
    now = datetime.now(timezone.utc)

    # Row-level write lock on PostgreSQL: serializes awards per wallet.
    bumped = await db.execute(
        update(User)
        .where(User.wallet_address == wallet, User.total_xp + delta >= 0)
        .values(total_xp=User.total_xp + delta, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if bumped.rowcount == 0:
        raise InvalidAmount(f"correction of {delta} would make the XP total negative")

    entry = XPEvent(
        wallet_address=wallet,
        delta=delta,
        source=source.value,
        reference_id=reference_id,
        reason=reason,
        idempotency_key=key,
        awarded_by=awarded_by,
        created_at=now,
    )
    db.add(entry)
    try:
        await db.flush()
    except IntegrityError as exc:
        raise TransientStoreError(f"concurrent award for {key}") from exc

    await db.refresh(user)
    new_total = user.total_xp
    old_def = definition_for(new_total - delta)
    new_def = definition_for(new_total)
    user.level = new_def.level
    user.level_title = new_def.title
    await db.flush()

    result = AwardResult(
        wallet=wallet,
        delta=delta,
        source=source.value,
        new_total=new_total,
        old_level=old_def.level,
        new_level=new_def.level,
        level_title=new_def.title,
        leveled_up=new_def.level > old_def.level,
        duplicate=False,
        event_id=entry.id,
    )
    logger.info("Awarded %+d XP to %s (%s) total=%d", delta, wallet, key, new_total)

    queue_signal(db, CHANNEL_XP_AWARDED, {
        "wallet": wallet,
        "delta": delta,
        "source": source.value,
        "reference_id": reference_id,
        "new_total": new_total,
    })
    if result.leveled_up:
        logger.info("Level up: %s %d -> %d (%s)", wallet, old_def.level, new_def.level, new_def.title)
        queue_signal(db, CHANNEL_LEVEL_UP, {
            "wallet": wallet,
            "old_level": old_def.level,
            "new_level": new_def.level,
            "title": new_def.title,
        })
    return result


async def complete_course(
    db: AsyncSession,
    wallet: str,
    course_id: str,
    course_title: str | None = None,
) -> AwardResult:
    """Award course-completion XP once per (wallet, course)."""
    course_id = (course_id or "").strip()
    if not course_id:
        raise ValidationError("course_id is required")
    return await award(
        db,
        wallet,
        course_xp(course_id),
        XPSource.course_completion,
        course_id,
        f"Completed course: {course_title or course_id}"[:MAX_REASON_LENGTH],
    )


async def admin_adjust(
    db: AsyncSession,
    admin_wallet: str,
    wallet: str,
    delta: int,
    reason: str,
    reference_id: str,
) -> AwardResult:
    """Admin correction. May be negative; ``reference_id`` makes it idempotent."""
    if not (reason or "").strip():
        raise ValidationError("an adjustment requires a reason")
    return await award(
        db,
        wallet,
        delta,
        XPSource.admin_adjustment,
        reference_id,
        reason.strip(),
        allow_negative=True,
        awarded_by=admin_wallet,
    )


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


async def get_xp(db: AsyncSession, wallet: str) -> dict:
    """Total, level, progress and unlocks for a wallet."""
    user = await get_user(db, normalize_wallet(wallet))
    info = progress(user.total_xp)
    return {
        "wallet": user.wallet_address,
        "total_xp": user.total_xp,
        "level": info["level"],
        "level_title": info["title"],
        "next_level": info["next_level"],
        "next_title": info["next_title"],
        "xp_into_level": info["xp_into_level"],
        "xp_for_next": info["xp_for_next"],
        "progress_percent": info["percent"],
        "unlocks": total_unlocks(info["level"]),
    }


async def get_xp_history(
    db: AsyncSession,
    wallet: str,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[XPEvent], int]:
    """Ledger entries for a wallet, newest first, plus the total count."""
    wallet = normalize_wallet(wallet)
    total = (await db.execute(
        select(func.count()).select_from(XPEvent).where(XPEvent.wallet_address == wallet)
    )).scalar_one()
    result = await db.execute(
        select(XPEvent)
        .where(XPEvent.wallet_address == wallet)
        .order_by(XPEvent.created_at.desc(), XPEvent.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars()), total


async def get_leaderboard(db: AsyncSession, limit: int = 50) -> list[dict]:
    """Top wallets by cached total. Ties are broken by wallet for a stable order."""
    result = await db.execute(
        select(User)
        .where(User.total_xp > 0)
        .order_by(User.total_xp.desc(), User.wallet_address.asc())
        .limit(limit)
    )
    return [
        {
            "rank": rank,
            "wallet": user.wallet_address,
            "display_name": user.display_name,
            "total_xp": user.total_xp,
            "level": user.level,
            "level_title": user.level_title,
        }
        for rank, user in enumerate(result.scalars(), 1)
    ]


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


async def ledger_total(db: AsyncSession, wallet: str) -> int:
    """Sum of every ledger delta for a wallet."""
    result = await db.execute(
        select(func.coalesce(func.sum(XPEvent.delta), 0)).where(XPEvent.wallet_address == wallet)
    )
    return int(result.scalar_one())


async def reconcile_wallet(db: AsyncSession, wallet: str) -> dict:
    """Rebuild a wallet's cached total and level from the ledger.

    The user row is locked first so no award can commit between the sum and
    the write.
    """
    wallet = normalize_wallet(wallet)
    result = await db.execute(
        select(User)
        .where(User.wallet_address == wallet)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError(f"unknown wallet: {wallet}")

    cached = user.total_xp
    actual = await ledger_total(db, wallet)
    definition = definition_for(actual)
    corrected = (
        cached != actual
        or user.level != definition.level
        or user.level_title != definition.title
    )
    if corrected:
        logger.warning(
            "XP cache drift for %s: cached=%d ledger=%d level=%d->%d",
            wallet, cached, actual, user.level, definition.level,
        )
        user.total_xp = actual
        user.level = definition.level
        user.level_title = definition.title
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()

    return {
        "wallet": wallet,
        "cached_total": cached,
        "ledger_total": actual,
        "corrected": corrected,
    }


async def list_wallets(db: AsyncSession, after: str = "", limit: int = 500) -> list[str]:
    """One keyset page of wallet addresses, ordered, strictly after ``after``."""
    result = await db.execute(
        select(User.wallet_address)
        .where(User.wallet_address > after)
        .order_by(User.wallet_address)
        .limit(limit)
    )
    return list(result.scalars())


async def reconcile_all_wallets(db: AsyncSession, batch_size: int = 500) -> list[dict]:
    """Reconcile every wallet in one transaction. Returns the corrections made.

    The scheduled worker reconciles each wallet in its own transaction instead;
    this form suits small stores and admin tooling.
    """
    corrections: list[dict] = []
    after = ""
    while True:
        wallets = await list_wallets(db, after, batch_size)
        if not wallets:
            break
        for wallet in wallets:
            report = await reconcile_wallet(db, wallet)
            if report["corrected"]:
                corrections.append(report)
        after = wallets[-1]

    logger.info("Reconciliation complete: %d wallet(s) corrected", len(corrections))
    return corrections
