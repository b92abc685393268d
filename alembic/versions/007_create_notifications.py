"""007: create notifications table

Revision ID: 007
Revises: 006
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "007"
down_revision: Union[str, None] = "006"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE notifications (
            id          BIGSERIAL       PRIMARY KEY,
            user_id     VARCHAR(64)     NOT NULL REFERENCES users (id),
            type        VARCHAR(32)     NOT NULL,
            title       VARCHAR(200)    NOT NULL,
            body        TEXT            NOT NULL,
            data        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            read        BOOLEAN         NOT NULL DEFAULT FALSE,
            created_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute(
        "CREATE INDEX idx_notifications_user_unread ON notifications (user_id, created_at DESC) "
        "WHERE read = FALSE;"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS notifications CASCADE;")
