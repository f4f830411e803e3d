"""Bounty submission lifecycle: moderation, placements and resubmission."""

from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from hxp.database import run_transaction
from hxp.db.models import XPEvent
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
from hxp.gamification import bounty_service, xp_service
from tests.conftest import OTHER_WALLET, WALLET

BOUNTY = "meme-contest-3"
REVIEWER = "reviewer-wallet"


async def _submit(db, wallet=WALLET, bounty=BOUNTY):
    submission = await bounty_service.submit_submission(db, wallet, bounty, "my entry", "Entry")
    await db.commit()
    return submission


async def _approved(db, wallet=WALLET):
    submission = await _submit(db, wallet)
    approved = await bounty_service.moderate(db, submission.id, "approved", REVIEWER)
    await db.commit()
    return approved


async def _events(db, source):
    result = await db.execute(
        select(func.count()).select_from(XPEvent).where(XPEvent.source == source)
    )
    return result.scalar_one()


class TestSubmit:
    @pytest.mark.asyncio
    async def test_creates_submitted_entry(self, db_session):
        submission = await _submit(db_session)
        assert submission.status == "submitted"
        assert submission.placement is None
        assert submission.supersedes_id is None

    @pytest.mark.asyncio
    async def test_second_entry_while_pending_rejected(self, db_session):
        await _submit(db_session)
        with pytest.raises(StateError):
            await bounty_service.submit_submission(db_session, WALLET, BOUNTY, "again")

    @pytest.mark.asyncio
    async def test_resubmit_after_needs_revision(self, db_session):
        first = await _submit(db_session)
        await bounty_service.moderate(db_session, first.id, "needs_revision", REVIEWER)
        await db_session.commit()

        second = await _submit(db_session)
        assert second.supersedes_id == first.id
        assert second.status == "submitted"

    @pytest.mark.asyncio
    async def test_submission_cap(self, db_session):
        for _ in range(3):
            entry = await _submit(db_session)
            await bounty_service.moderate(db_session, entry.id, "needs_revision", REVIEWER)
            await db_session.commit()

        with pytest.raises(SubmissionLimitReached):
            await bounty_service.submit_submission(db_session, WALLET, BOUNTY, "fourth")

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, db_session):
        with pytest.raises(ValidationError):
            await bounty_service.submit_submission(db_session, WALLET, BOUNTY, "   ")

    @pytest.mark.asyncio
    async def test_bounty_id_too_long(self, db_session):
        with pytest.raises(ValidationError):
            await bounty_service.submit_submission(db_session, WALLET, "b" * 65, "my entry")

    @pytest.mark.asyncio
    async def test_title_too_long(self, db_session):
        with pytest.raises(ValidationError):
            await bounty_service.submit_submission(db_session, WALLET, BOUNTY, "my entry", "T" * 257)

    @pytest.mark.asyncio
    async def test_other_bounty_independent(self, db_session):
        await _submit(db_session)
        other = await _submit(db_session, bounty="lore-drop-1")
        assert other.supersedes_id is None


class TestModerate:
    @pytest.mark.asyncio
    async def test_approval_awards_participation_xp(self, db_session):
        approved = await _approved(db_session)
        assert approved.status == "approved"
        assert approved.reviewed_by == REVIEWER
        assert approved.xp_awarded == 10

        info = await xp_service.get_xp(db_session, WALLET)
        assert info["total_xp"] == 10

    @pytest.mark.asyncio
    async def test_approve_twice_awards_once(self, db_session):
        approved = await _approved(db_session)
        with pytest.raises(ModerateNonSubmittedSubmission):
            await bounty_service.moderate(db_session, approved.id, "approved", REVIEWER)
        await db_session.rollback()
        assert await _events(db_session, "bounty_submission") == 1

    @pytest.mark.asyncio
    async def test_rejected_then_approved_fails(self, db_session):
        submission = await _submit(db_session)
        await bounty_service.moderate(db_session, submission.id, "rejected", REVIEWER)
        await db_session.commit()

        with pytest.raises(StateError):
            await bounty_service.moderate(db_session, submission.id, "approved", REVIEWER)
        await db_session.rollback()
        assert await _events(db_session, "bounty_submission") == 0

    @pytest.mark.asyncio
    async def test_rejection_awards_nothing(self, db_session):
        submission = await _submit(db_session)
        rejected = await bounty_service.moderate(db_session, submission.id, "rejected", REVIEWER)
        assert rejected.xp_awarded == 0

    @pytest.mark.asyncio
    async def test_unknown_decision(self, db_session):
        submission = await _submit(db_session)
        with pytest.raises(ValidationError):
            await bounty_service.moderate(db_session, submission.id, "maybe", REVIEWER)

    @pytest.mark.asyncio
    async def test_missing_submission(self, db_session):
        with pytest.raises(NotFoundError):
            await bounty_service.moderate(db_session, 999, "approved", REVIEWER)

    @pytest.mark.asyncio
    async def test_concurrent_approvals_apply_once(self, db_session):
        submission = await _submit(db_session)
        moderate = lambda db: bounty_service.moderate(db, submission.id, "approved", REVIEWER)  # noqa: E731

        results = await asyncio.gather(
            *(run_transaction(moderate, attempts=10) for _ in range(3)),
            return_exceptions=True,
        )
        assert sum(not isinstance(r, Exception) for r in results) == 1
        assert all(
            isinstance(r, ModerateNonSubmittedSubmission)
            for r in results if isinstance(r, Exception)
        )
        assert await _events(db_session, "bounty_submission") == 1


class TestAwardWinner:
    @pytest.mark.asyncio
    async def test_first_place_defaults(self, db_session):
        approved = await _approved(db_session)
        placed = await bounty_service.award_winner(db_session, approved.id, "first", REVIEWER)
        await db_session.commit()

        assert placed.placement == "first"
        assert placed.xp_awarded == 260
        assert placed.sol_prize == Decimal("0.05")
        info = await xp_service.get_xp(db_session, WALLET)
        assert info["total_xp"] == 260
        assert info["level"] == 3

    @pytest.mark.asyncio
    async def test_winner_key_namespace(self, db_session):
        approved = await _approved(db_session)
        await bounty_service.award_winner(db_session, approved.id, "third", REVIEWER)
        await db_session.commit()

        event = (await db_session.execute(
            select(XPEvent).where(XPEvent.source == "bounty_winner_bonus")
        )).scalar_one()
        assert event.idempotency_key == f"bounty_winner:{WALLET}:{approved.id}"
        assert event.delta == 50
        assert event.awarded_by == REVIEWER

    @pytest.mark.asyncio
    async def test_custom_bonus_and_prize(self, db_session):
        approved = await _approved(db_session)
        placed = await bounty_service.award_winner(
            db_session, approved.id, "second", REVIEWER, xp_bonus=75, sol_prize="1.5",
        )
        assert placed.xp_awarded == 85
        assert placed.sol_prize == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_place_twice_applies_once(self, db_session):
        approved = await _approved(db_session)
        await bounty_service.award_winner(db_session, approved.id, "first", REVIEWER)
        await db_session.commit()

        with pytest.raises(AssignPlacementTwice):
            await bounty_service.award_winner(db_session, approved.id, "first", REVIEWER)
        await db_session.rollback()
        assert await _events(db_session, "bounty_winner_bonus") == 1

    @pytest.mark.asyncio
    async def test_unapproved_cannot_place(self, db_session):
        submission = await _submit(db_session)
        with pytest.raises(AssignPlacementToUnapproved):
            await bounty_service.award_winner(db_session, submission.id, "first", REVIEWER)

    @pytest.mark.asyncio
    async def test_placement_taken(self, db_session):
        mine = await _approved(db_session)
        theirs = await _approved(db_session, OTHER_WALLET)
        await bounty_service.award_winner(db_session, mine.id, "first", REVIEWER)
        await db_session.commit()

        with pytest.raises(PlacementTaken):
            await bounty_service.award_winner(db_session, theirs.id, "first", REVIEWER)

    @pytest.mark.asyncio
    async def test_unknown_placement(self, db_session):
        approved = await _approved(db_session)
        with pytest.raises(ValidationError):
            await bounty_service.award_winner(db_session, approved.id, "fourth", REVIEWER)

    @pytest.mark.asyncio
    async def test_negative_prize_rejected(self, db_session):
        approved = await _approved(db_session)
        with pytest.raises(ValidationError):
            await bounty_service.award_winner(db_session, approved.id, "first", REVIEWER, sol_prize="-1")


class TestListSubmissions:
    @pytest.mark.asyncio
    async def test_lists_by_bounty(self, db_session):
        await _submit(db_session)
        await _submit(db_session, OTHER_WALLET)
        await _submit(db_session, bounty="elsewhere")

        rows = await bounty_service.list_submissions(db_session, BOUNTY)
        assert [r.wallet_address for r in rows] == [WALLET, OTHER_WALLET]
