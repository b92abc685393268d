"""006: create disputes table

Revision ID: 006
Revises: 005
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "006"
down_revision: Union[str, None] = "005"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE disputes (
            id              BIGSERIAL       PRIMARY KEY,
            order_id        VARCHAR(26)     NOT NULL REFERENCES orders (id),
            opened_by_id    VARCHAR(64)     NOT NULL REFERENCES users (id),
            reason          VARCHAR(200)    NOT NULL,
            description     TEXT,
            outcome         VARCHAR(20),
            refund_amount   BIGINT,
            notes           TEXT,
            resolved_by     VARCHAR(64),
            resolved_at     TIMESTAMPTZ,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_disputes_order   UNIQUE (order_id),
            CONSTRAINT ck_disputes_outcome CHECK (
                outcome IS NULL OR outcome IN ('refund_buyer', 'release_to_seller', 'partial_refund')
            ),
            CONSTRAINT ck_disputes_refund_amount CHECK (
                (outcome = 'partial_refund' AND refund_amount > 0)
                OR (outcome IS DISTINCT FROM 'partial_refund' AND refund_amount IS NULL)
            )
        );
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS disputes CASCADE;")
