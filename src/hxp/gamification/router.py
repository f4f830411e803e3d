"""XP, streak and bounty API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from hxp.database import get_session, run_transaction
from hxp.dependencies import get_redis_dep, get_wallet, require_admin
from hxp.gamification import bounty_service, streak_service, xp_service
from hxp.gamification.level_thresholds import LEVEL_THRESHOLDS
from hxp.gamification.schemas import (
    AdminAwardRequest,
    AllLevelsResponse,
    AwardResponse,
    CourseCompletionRequest,
    CourseCompletionResponse,
    DailyLoginResponse,
    DailyLoginStatusResponse,
    LeaderboardEntry,
    LeaderboardResponse,
    LevelEntry,
    ModerateRequest,
    ReconcileResponse,
    SubmissionCreateRequest,
    SubmissionListResponse,
    SubmissionResponse,
    WinnerRequest,
    XPHistoryEntry,
    XPHistoryResponse,
    XPResponse,
)

router = APIRouter(prefix="/api/v1", tags=["XP"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


# ── Public endpoints ──


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels():
    """Get the level table with per-level unlocks."""
    return AllLevelsResponse(levels=[
        LevelEntry(
            level=d.level,
            title=d.title,
            xp_threshold=d.xp_threshold,
            unlocks=list(d.unlocks),
        )
        for d in LEVEL_THRESHOLDS
    ])


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Top wallets by total XP."""
    rows = await xp_service.get_leaderboard(db, limit)
    return LeaderboardResponse(entries=[LeaderboardEntry(**row) for row in rows])


# ── Daily login (wallet) ──


@router.post("/xp/daily-login", response_model=DailyLoginResponse)
async def claim_daily_login(
    wallet: str = Depends(get_wallet),
    redis: object = Depends(get_redis_dep),
):
    """Claim today's login XP. A repeat claim returns already_claimed=true."""
    result = await run_transaction(
        lambda db: streak_service.claim_daily_login(db, wallet),
        redis=redis,
    )
    return DailyLoginResponse(**result.to_dict())


@router.get("/xp/daily-login/status", response_model=DailyLoginStatusResponse)
async def daily_login_status(
    wallet: str = Depends(get_wallet),
    db: AsyncSession = Depends(get_session),
):
    """Whether today's login XP has been claimed, and the live streak."""
    return DailyLoginStatusResponse(**await streak_service.get_daily_login_status(db, wallet))


# ── Courses (wallet) ──


@router.post("/xp/course-completion", response_model=CourseCompletionResponse)
async def complete_course(
    body: CourseCompletionRequest,
    wallet: str = Depends(get_wallet),
    redis: object = Depends(get_redis_dep),
):
    """Award course-completion XP once per course."""
    result = await run_transaction(
        lambda db: xp_service.complete_course(db, wallet, body.course_id, body.course_title),
        redis=redis,
    )
    return CourseCompletionResponse(
        course_id=body.course_id,
        xp_awarded=0 if result.duplicate else result.delta,
        already_completed=result.duplicate,
        new_total=result.new_total,
        leveled_up=result.leveled_up,
        new_level=result.new_level,
    )


# ── XP reads ──


@router.get("/xp/{wallet}", response_model=XPResponse)
async def get_xp(wallet: str, db: AsyncSession = Depends(get_session)):
    """Total XP, level progress and unlocks for a wallet."""
    return XPResponse(**await xp_service.get_xp(db, wallet))


@router.get("/xp/{wallet}/history", response_model=XPHistoryResponse)
async def get_xp_history(
    wallet: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Paginated ledger entries, newest first."""
    entries, total = await xp_service.get_xp_history(db, wallet, page, per_page)
    return XPHistoryResponse(
        entries=[XPHistoryEntry.model_validate(e) for e in entries],
        total=total,
        page=page,
        per_page=per_page,
    )


# ── Bounties ──


@router.get("/bounties/{bounty_id}/submissions", response_model=SubmissionListResponse)
async def list_submissions(
    bounty_id: str = Path(max_length=64),
    db: AsyncSession = Depends(get_session),
):
    """Every submission for a bounty, oldest first."""
    rows = await bounty_service.list_submissions(db, bounty_id)
    return SubmissionListResponse(submissions=[SubmissionResponse.model_validate(r) for r in rows])


@router.post("/bounties/{bounty_id}/submissions", response_model=SubmissionResponse, status_code=201)
async def create_submission(
    body: SubmissionCreateRequest,
    bounty_id: str = Path(min_length=1, max_length=64),
    wallet: str = Depends(get_wallet),
    redis: object = Depends(get_redis_dep),
):
    """Submit (or, after needs_revision, resubmit) an entry for a bounty."""
    submission = await run_transaction(
        lambda db: bounty_service.submit_submission(db, wallet, bounty_id, body.content, body.title),
        redis=redis,
    )
    return SubmissionResponse.model_validate(submission)


# ── Admin ──


@admin_router.post("/xp/award", response_model=AwardResponse)
async def admin_award(
    body: AdminAwardRequest,
    admin: str = Depends(require_admin),
    redis: object = Depends(get_redis_dep),
):
    """Manual XP adjustment. Negative deltas are corrections."""
    result = await run_transaction(
        lambda db: xp_service.admin_adjust(
            db, admin, body.wallet, body.delta, body.reason, body.reference_id,
        ),
        redis=redis,
    )
    return AwardResponse(**result.to_dict())


@admin_router.post("/submissions/{submission_id}/moderate", response_model=SubmissionResponse)
async def moderate_submission(
    submission_id: int,
    body: ModerateRequest,
    admin: str = Depends(require_admin),
    redis: object = Depends(get_redis_dep),
):
    """Approve, reject or request revision of a submitted entry."""
    submission = await run_transaction(
        lambda db: bounty_service.moderate(db, submission_id, body.decision, admin),
        redis=redis,
    )
    return SubmissionResponse.model_validate(submission)


@admin_router.post("/submissions/{submission_id}/winner", response_model=SubmissionResponse)
async def award_winner(
    submission_id: int,
    body: WinnerRequest,
    admin: str = Depends(require_admin),
    redis: object = Depends(get_redis_dep),
):
    """Place an approved submission and award its bonus."""
    submission = await run_transaction(
        lambda db: bounty_service.award_winner(
            db, submission_id, body.placement, admin, body.xp_bonus, body.sol_prize,
        ),
        redis=redis,
    )
    return SubmissionResponse.model_validate(submission)


@admin_router.post("/xp/reconcile/{wallet}", response_model=ReconcileResponse)
async def reconcile_wallet(
    wallet: str,
    admin: str = Depends(require_admin),
):
    """Rebuild one wallet's cached total and level from the ledger."""
    report = await run_transaction(lambda db: xp_service.reconcile_wallet(db, wallet))
    return ReconcileResponse(**report)
