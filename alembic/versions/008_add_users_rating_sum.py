"""008: track seller rating as an exact sum

rating stays as the 2-place display average; rating_sum / rating_count is the
exact source it is recomputed from on every new rating.

Revision ID: 008
Revises: 007
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "008"
down_revision: Union[str, None] = "007"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TABLE users ADD COLUMN rating_sum BIGINT NOT NULL DEFAULT 0;")
    # Best available reconstruction for rows rated before this column existed
    op.execute("UPDATE users SET rating_sum = ROUND(rating * rating_count) WHERE rating_count > 0;")
    op.execute(
        "ALTER TABLE users ADD CONSTRAINT ck_users_rating_sum "
        "CHECK (rating_sum BETWEEN rating_count AND rating_count * 5);"
    )


def downgrade() -> None:
    op.execute("ALTER TABLE users DROP CONSTRAINT IF EXISTS ck_users_rating_sum;")
    op.execute("ALTER TABLE users DROP COLUMN IF EXISTS rating_sum;")
