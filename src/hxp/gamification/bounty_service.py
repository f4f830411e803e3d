"""Bounty submissions: moderation state machine and winner placements.

Lifecycle::

    submitted -> approved -> (placement: first | second | third, at most once)
              -> rejected
              -> needs_revision -> (wallet resubmits; new row supersedes this one)

Every state change is a conditional UPDATE guarded on the expected current
state, so a concurrent duplicate moderation matches no row and fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hxp.db.models import BountySubmission
from hxp.errors import (
    AssignPlacementToUnapproved,
    AssignPlacementTwice,
    ModerateNonSubmittedSubmission,
    NotFoundError,
    PlacementTaken,
    StateError,
    SubmissionLimitReached,
    ValidationError,
)
from hxp.gamification.rewards import (
    BOUNTY_SUBMISSION_XP,
    MAX_SUBMISSIONS_PER_BOUNTY,
    PLACEMENT_REWARDS,
    Placement,
    SubmissionStatus,
    XPSource,
)
from hxp.gamification.xp_service import award, ensure_user, normalize_wallet

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[str, list[str]] = {
    SubmissionStatus.submitted.value: [
        SubmissionStatus.approved.value,
        SubmissionStatus.rejected.value,
        SubmissionStatus.needs_revision.value,
    ],
    SubmissionStatus.approved.value: [],
    SubmissionStatus.rejected.value: [],
    SubmissionStatus.needs_revision.value: [],
}

MAX_CONTENT_LENGTH = 20_000
MAX_BOUNTY_ID_LENGTH = 64
MAX_TITLE_LENGTH = 256


def validate_transition(current_status: str, target_status: str) -> None:
    """Validate a moderation transition. Raises a StateError subclass if invalid."""
    valid = VALID_TRANSITIONS.get(current_status, [])
    if target_status in valid:
        return
    if current_status != SubmissionStatus.submitted.value:
        raise ModerateNonSubmittedSubmission(
            f"Invalid transition: {current_status} -> {target_status}. "
            f"Only submitted entries can be moderated"
        )
    raise StateError(
        f"Invalid transition: {current_status} -> {target_status}. "
        f"Valid transitions: {valid}"
    )


async def get_submission(db: AsyncSession, submission_id: int) -> BountySubmission:
    """Fetch a submission with fresh column values."""
    result = await db.execute(
        select(BountySubmission)
        .where(BountySubmission.id == submission_id)
        .execution_options(populate_existing=True)
    )
    submission = result.scalar_one_or_none()
    if submission is None:
        raise NotFoundError(f"Submission {submission_id} not found")
    return submission


async def list_submissions(
    db: AsyncSession,
    bounty_id: str,
    wallet: str | None = None,
) -> list[BountySubmission]:
    """Submissions for a bounty, oldest first, optionally for one wallet."""
    stmt = select(BountySubmission).where(BountySubmission.bounty_id == bounty_id)
    if wallet is not None:
        stmt = stmt.where(BountySubmission.wallet_address == normalize_wallet(wallet))
    result = await db.execute(stmt.order_by(BountySubmission.id))
    return list(result.scalars())


async def submit_submission(
    db: AsyncSession,
    wallet: str,
    bounty_id: str,
    content: str,
    title: str | None = None,
) -> BountySubmission:
    """Create a submission.

    Allowed when the wallet has no entry for the bounty yet, or its latest
    entry was sent back with ``needs_revision``; the new row then supersedes
    it. A wallet gets at most MAX_SUBMISSIONS_PER_BOUNTY entries per bounty.
    """
    wallet = normalize_wallet(wallet)
    bounty_id = (bounty_id or "").strip()
    content = (content or "").strip()
    if not bounty_id:
        raise ValidationError("bounty_id is required")
    if len(bounty_id) > MAX_BOUNTY_ID_LENGTH:
        raise ValidationError(f"bounty_id exceeds {MAX_BOUNTY_ID_LENGTH} characters")
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title exceeds {MAX_TITLE_LENGTH} characters")
    if not content:
        raise ValidationError("submission content is required")
    if len(content) > MAX_CONTENT_LENGTH:
        raise ValidationError(f"submission content exceeds {MAX_CONTENT_LENGTH} characters")

    await ensure_user(db, wallet)
    previous = await list_submissions(db, bounty_id, wallet)
    if len(previous) >= MAX_SUBMISSIONS_PER_BOUNTY:
        raise SubmissionLimitReached(
            f"{wallet} already has {len(previous)} submissions for bounty {bounty_id}"
        )

    latest = previous[-1] if previous else None
    if latest is not None and latest.status != SubmissionStatus.needs_revision.value:
        raise StateError(
            f"submission {latest.id} is {latest.status}; "
            f"resubmission is only allowed after needs_revision"
        )

    submission = BountySubmission(
        bounty_id=bounty_id,
        wallet_address=wallet,
        title=title,
        content=content,
        status=SubmissionStatus.submitted.value,
        xp_awarded=0,
        supersedes_id=latest.id if latest else None,
        created_at=datetime.now(timezone.utc),
    )
    db.add(submission)
    await db.flush()
    logger.info("Submission %d created for bounty %s by %s", submission.id, bounty_id, wallet)
    return submission


async def moderate(
    db: AsyncSession,
    submission_id: int,
    decision: str,
    reviewer: str,
) -> BountySubmission:
    """Move a submitted entry to approved, rejected or needs_revision.

    Approval awards the participation XP once, keyed on the submission id.
    """
    try:
        target = SubmissionStatus(decision)
    except ValueError as exc:
        raise ValidationError(f"unknown moderation decision: {decision}") from exc

    submission = await get_submission(db, submission_id)
    validate_transition(submission.status, target.value)

    now = datetime.now(timezone.utc)
    xp = BOUNTY_SUBMISSION_XP if target is SubmissionStatus.approved else 0
    moved = await db.execute(
        update(BountySubmission)
        .where(
            BountySubmission.id == submission_id,
            BountySubmission.status == SubmissionStatus.submitted.value,
        )
        .values(
            status=target.value,
            reviewed_by=reviewer,
            reviewed_at=now,
            xp_awarded=BountySubmission.xp_awarded + xp,
        )
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount == 0:
        raise ModerateNonSubmittedSubmission(
            f"Submission {submission_id} was moderated concurrently"
        )

    if target is SubmissionStatus.approved:
        await award(
            db,
            submission.wallet_address,
            xp,
            XPSource.bounty_submission,
            str(submission_id),
            f"Bounty submission approved: {submission.bounty_id}",
        )

    logger.info("Submission %d moderated %s by %s", submission_id, target.value, reviewer)
    return await get_submission(db, submission_id)


def _parse_prize(value: Decimal | str | float | None, default: Decimal) -> Decimal:
    if value is None:
        return default
    try:
        prize = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValidationError(f"invalid prize amount: {value}") from exc
    if prize < 0:
        raise ValidationError("prize amount must not be negative")
    return prize


async def award_winner(
    db: AsyncSession,
    submission_id: int,
    placement: str,
    reviewer: str,
    xp_bonus: int | None = None,
    sol_prize: Decimal | str | float | None = None,
) -> BountySubmission:
    """Assign a placement to an approved submission and award its bonus.

    ``xp_bonus`` and ``sol_prize`` default to the placement table. The SOL
    prize is recorded on the submission only; the bonus XP goes through the
    ledger keyed on the submission id.
    """
    try:
        place = Placement(placement)
    except ValueError as exc:
        raise ValidationError(f"unknown placement: {placement}") from exc

    defaults = PLACEMENT_REWARDS[place]
    bonus = defaults["xp"] if xp_bonus is None else xp_bonus
    if not isinstance(bonus, int) or isinstance(bonus, bool) or bonus < 0:
        raise ValidationError("xp_bonus must be a non-negative integer")
    prize = _parse_prize(sol_prize, defaults["sol"])

    submission = await get_submission(db, submission_id)
    if submission.placement is not None:
        raise AssignPlacementTwice(
            f"Submission {submission_id} already placed {submission.placement}"
        )
    if submission.status != SubmissionStatus.approved.value:
        raise AssignPlacementToUnapproved(
            f"Submission {submission_id} is {submission.status}; only approved entries can place"
        )

    holder = await db.execute(
        select(BountySubmission.id).where(
            BountySubmission.bounty_id == submission.bounty_id,
            BountySubmission.placement == place.value,
        )
    )
    if holder.scalar_one_or_none() is not None:
        raise PlacementTaken(f"{place.value} place for bounty {submission.bounty_id} is taken")

    try:
        placed = await db.execute(
            update(BountySubmission)
            .where(
                BountySubmission.id == submission_id,
                BountySubmission.status == SubmissionStatus.approved.value,
                BountySubmission.placement.is_(None),
            )
            .values(
                placement=place.value,
                sol_prize=prize,
                xp_awarded=BountySubmission.xp_awarded + bonus,
            )
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        raise PlacementTaken(
            f"{place.value} place for bounty {submission.bounty_id} is taken"
        ) from exc
    if placed.rowcount == 0:
        raise AssignPlacementTwice(f"Submission {submission_id} was placed concurrently")

    if bonus > 0:
        await award(
            db,
            submission.wallet_address,
            bonus,
            XPSource.bounty_winner_bonus,
            str(submission_id),
            f"Bounty {place.value} place: {submission.bounty_id}",
            awarded_by=reviewer,
        )

    logger.info(
        "Submission %d placed %s by %s (xp=%d sol=%s)",
        submission_id, place.value, reviewer, bonus, prize,
    )
    return await get_submission(db, submission_id)
