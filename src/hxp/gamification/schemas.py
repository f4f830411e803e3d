"""Pydantic request and response models for the XP endpoints."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    title: str
    xp_threshold: int
    unlocks: list[str]


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]


# --- XP ---


class XPResponse(BaseModel):
    wallet: str
    total_xp: int
    level: int
    level_title: str
    next_level: int | None = None
    next_title: str | None = None
    xp_into_level: int
    xp_for_next: int
    progress_percent: float
    unlocks: list[str] = []


class XPHistoryEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    delta: int
    source: str
    reference_id: str
    reason: str | None = None
    awarded_by: str | None = None
    created_at: datetime


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


class AwardResponse(BaseModel):
    wallet: str
    delta: int
    source: str
    new_total: int
    old_level: int
    new_level: int
    level_title: str
    leveled_up: bool
    duplicate: bool
    event_id: int | None = None


class LeaderboardEntry(BaseModel):
    rank: int
    wallet: str
    display_name: str | None = None
    total_xp: int
    level: int
    level_title: str


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]


# --- Daily login ---


class DailyLoginResponse(BaseModel):
    success: bool
    already_claimed: bool
    current_streak: int
    longest_streak: int
    xp_awarded: int
    new_total: int | None = None
    leveled_up: bool = False
    new_level: int | None = None
    claim_date: date
    next_available: datetime


class DailyLoginStatusResponse(BaseModel):
    wallet: str
    claimed_today: bool
    current_streak: int
    longest_streak: int
    last_claim_date: date | None = None
    next_available: datetime | None = None


# --- Courses ---


class CourseCompletionRequest(BaseModel):
    course_id: str = Field(min_length=1, max_length=128)
    # "Completed course: <title>" must fit xp_events.reason (256).
    course_title: str | None = Field(default=None, max_length=200)


class CourseCompletionResponse(BaseModel):
    course_id: str
    xp_awarded: int
    already_completed: bool
    new_total: int
    leveled_up: bool
    new_level: int


# --- Bounties ---


class SubmissionCreateRequest(BaseModel):
    content: str = Field(min_length=1)
    title: str | None = Field(default=None, max_length=256)


class SubmissionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    bounty_id: str
    wallet_address: str
    title: str | None = None
    content: str
    status: str
    placement: str | None = None
    xp_awarded: int
    sol_prize: Decimal | None = None
    supersedes_id: int | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime


class SubmissionListResponse(BaseModel):
    submissions: list[SubmissionResponse]


class ModerateRequest(BaseModel):
    decision: str


class WinnerRequest(BaseModel):
    placement: str
    xp_bonus: int | None = Field(default=None, ge=0, le=2**31 - 1)
    sol_prize: Decimal | None = Field(default=None, ge=0)


# --- Admin ---


class AdminAwardRequest(BaseModel):
    wallet: str = Field(min_length=1, max_length=64)
    delta: int = Field(ge=-(2**31 - 1), le=2**31 - 1)
    reason: str = Field(min_length=1, max_length=256)
    reference_id: str = Field(min_length=1, max_length=128)


class ReconcileResponse(BaseModel):
    wallet: str
    cached_total: int
    ledger_total: int
    corrected: bool
