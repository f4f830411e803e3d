"""SQLAlchemy ORM models for the XP ledger, streaks and bounty submissions.

The ``users`` row carries a *cached* view of the ledger (total_xp, level,
level_title). The authoritative record is ``xp_events``; the cache can always
be rebuilt from it (see ``hxp.gamification.xp_service.reconcile_wallet``).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from hxp.db.base import Base, BigIntPK


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class User(Base):
    """A wallet known to the XP system, with its cached ledger totals."""

    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("total_xp >= 0", name="ck_users_total_xp_non_negative"),
    )

    wallet_address: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    total_xp: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, server_default="0")
    level: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    level_title: Mapped[str] = mapped_column(String(64), nullable=False, default="New Recruit", server_default="New Recruit")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# XP ledger
# ---------------------------------------------------------------------------


class XPEvent(Base):
    """Append-only XP ledger entry. Rows are never updated or deleted."""

    __tablename__ = "xp_events"
    __table_args__ = (
        UniqueConstraint("idempotency_key", name="uq_xp_events_idempotency_key"),
        CheckConstraint("delta <> 0", name="ck_xp_events_delta_nonzero"),
        Index("ix_xp_events_wallet_created", "wallet_address", "created_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.wallet_address", ondelete="CASCADE"), nullable=False
    )
    delta: Mapped[int] = mapped_column(Integer, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    reference_id: Mapped[str] = mapped_column(String(128), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(256), nullable=True)
    idempotency_key: Mapped[str] = mapped_column(String(256), nullable=False)
    awarded_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Daily login streaks
# ---------------------------------------------------------------------------


class StreakRecord(Base):
    """Daily-login streak state, one row per wallet."""

    __tablename__ = "streak_records"

    wallet_address: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.wallet_address", ondelete="CASCADE"), primary_key=True
    )
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    last_claim_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


# ---------------------------------------------------------------------------
# Bounty submissions
# ---------------------------------------------------------------------------


class BountySubmission(Base):
    """A wallet's entry for a bounty. Status and placement only move forward."""

    __tablename__ = "bounty_submissions"
    __table_args__ = (
        # NULL placements do not collide, so only awarded places are unique.
        UniqueConstraint("bounty_id", "placement", name="uq_bounty_submissions_bounty_placement"),
        CheckConstraint(
            "status IN ('submitted', 'approved', 'rejected', 'needs_revision')",
            name="ck_bounty_submissions_status",
        ),
        CheckConstraint(
            "placement IS NULL OR placement IN ('first', 'second', 'third')",
            name="ck_bounty_submissions_placement",
        ),
        Index("ix_bounty_submissions_bounty_wallet", "bounty_id", "wallet_address"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    bounty_id: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_address: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.wallet_address", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="submitted", server_default="submitted")
    placement: Mapped[str | None] = mapped_column(String(8), nullable=True)
    xp_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    sol_prize: Mapped[Decimal | None] = mapped_column(Numeric(18, 9), nullable=True)
    supersedes_id: Mapped[int | None] = mapped_column(
        BigIntPK, ForeignKey("bounty_submissions.id", ondelete="SET NULL"), nullable=True
    )
    reviewed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
