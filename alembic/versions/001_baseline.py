"""Baseline: users, XP ledger, daily-login streaks and bounty submissions.

The ledger (xp_events) is append-only; users.total_xp and the cached level
are rebuilt from it by reconciliation. The idempotency key and the
(bounty_id, placement) pair are unique so duplicate awards and double
placements are rejected by the database itself.

Revision ID: 001_baseline
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

from alembic import op

revision: str = "001_baseline"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE IF NOT EXISTS users (
            wallet_address VARCHAR(64) PRIMARY KEY,
            display_name   VARCHAR(64),
            is_admin       BOOLEAN NOT NULL DEFAULT FALSE,
            total_xp       BIGINT NOT NULL DEFAULT 0,
            level          INT NOT NULL DEFAULT 1,
            level_title    VARCHAR(64) NOT NULL DEFAULT 'New Recruit',
            created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
            updated_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT ck_users_total_xp_non_negative CHECK (total_xp >= 0)
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS xp_events (
            id              BIGSERIAL PRIMARY KEY,
            wallet_address  VARCHAR(64) NOT NULL REFERENCES users(wallet_address) ON DELETE CASCADE,
            delta           INT NOT NULL,
            source          VARCHAR(32) NOT NULL,
            reference_id    VARCHAR(128) NOT NULL,
            reason          VARCHAR(256),
            idempotency_key VARCHAR(256) NOT NULL,
            awarded_by      VARCHAR(64),
            created_at      TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_xp_events_idempotency_key UNIQUE (idempotency_key),
            CONSTRAINT ck_xp_events_delta_nonzero CHECK (delta <> 0)
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_xp_events_wallet_created
        ON xp_events (wallet_address, created_at)
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS streak_records (
            wallet_address  VARCHAR(64) PRIMARY KEY REFERENCES users(wallet_address) ON DELETE CASCADE,
            current_streak  INT NOT NULL DEFAULT 0,
            longest_streak  INT NOT NULL DEFAULT 0,
            last_claim_date DATE,
            updated_at      TIMESTAMPTZ NOT NULL DEFAULT now()
        )
    """)

    op.execute("""
        CREATE TABLE IF NOT EXISTS bounty_submissions (
            id             BIGSERIAL PRIMARY KEY,
            bounty_id      VARCHAR(64) NOT NULL,
            wallet_address VARCHAR(64) NOT NULL REFERENCES users(wallet_address) ON DELETE CASCADE,
            title          VARCHAR(256),
            content        TEXT NOT NULL,
            status         VARCHAR(16) NOT NULL DEFAULT 'submitted',
            placement      VARCHAR(8),
            xp_awarded     INT NOT NULL DEFAULT 0,
            sol_prize      NUMERIC(18, 9),
            supersedes_id  BIGINT REFERENCES bounty_submissions(id) ON DELETE SET NULL,
            reviewed_by    VARCHAR(64),
            reviewed_at    TIMESTAMPTZ,
            created_at     TIMESTAMPTZ NOT NULL DEFAULT now(),
            CONSTRAINT uq_bounty_submissions_bounty_placement UNIQUE (bounty_id, placement),
            CONSTRAINT ck_bounty_submissions_status
                CHECK (status IN ('submitted', 'approved', 'rejected', 'needs_revision')),
            CONSTRAINT ck_bounty_submissions_placement
                CHECK (placement IS NULL OR placement IN ('first', 'second', 'third'))
        )
    """)
    op.execute("""
        CREATE INDEX IF NOT EXISTS ix_bounty_submissions_bounty_wallet
        ON bounty_submissions (bounty_id, wallet_address)
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bounty_submissions CASCADE")
    op.execute("DROP TABLE IF EXISTS streak_records CASCADE")
    op.execute("DROP TABLE IF EXISTS xp_events CASCADE")
    op.execute("DROP TABLE IF EXISTS users CASCADE")
