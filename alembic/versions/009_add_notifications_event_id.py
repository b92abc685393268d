"""009: idempotent notification inserts

event_id is assigned when the event is produced and reused on every delivery
retry, so a retried insert lands on the existing row.

Revision ID: 009
Revises: 008
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "009"
down_revision: Union[str, None] = "008"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("ALTER TABLE notifications ADD COLUMN event_id VARCHAR(32);")
    op.execute("CREATE UNIQUE INDEX uq_notifications_event_id ON notifications (event_id);")


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS uq_notifications_event_id;")
    op.execute("ALTER TABLE notifications DROP COLUMN IF EXISTS event_id;")
