"""002: create users table (wallet + seller rating)

Revision ID: 002
Revises: 001
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE users (
            id              VARCHAR(64)     PRIMARY KEY,
            username        VARCHAR(64)     NOT NULL,
            display_name    VARCHAR(128),
            is_active       BOOLEAN         NOT NULL DEFAULT TRUE,
            is_admin        BOOLEAN         NOT NULL DEFAULT FALSE,
            wallet_balance  BIGINT          NOT NULL DEFAULT 0,
            held_balance    BIGINT          NOT NULL DEFAULT 0,
            rating          NUMERIC(3, 2)   NOT NULL DEFAULT 0,
            rating_count    INT             NOT NULL DEFAULT 0,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_users_username        UNIQUE (username),
            CONSTRAINT ck_users_held_gte_0      CHECK (held_balance >= 0),
            CONSTRAINT ck_users_held_lte_balance CHECK (held_balance <= wallet_balance),
            CONSTRAINT ck_users_rating_range    CHECK (rating BETWEEN 0 AND 5),
            CONSTRAINT ck_users_rating_count    CHECK (rating_count >= 0)
        );
    """)
    op.execute("""
        CREATE TRIGGER trg_users_updated_at
            BEFORE UPDATE ON users
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute(
        "COMMENT ON TABLE users IS "
        "'Users: identity from the auth service, wallet balances, seller rating';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS users CASCADE;")
