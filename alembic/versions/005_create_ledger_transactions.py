"""005: create ledger_transactions table (append-only)

Revision ID: 005
Revises: 004
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "005"
down_revision: Union[str, None] = "004"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE ledger_transactions (
            id              BIGSERIAL       PRIMARY KEY,
            user_id         VARCHAR(64)     NOT NULL REFERENCES users (id),
            order_id        VARCHAR(26)     REFERENCES orders (id),
            type            VARCHAR(20)     NOT NULL,
            amount          BIGINT          NOT NULL,
            balance_before  BIGINT          NOT NULL,
            balance_after   BIGINT          NOT NULL,
            status          VARCHAR(20)     NOT NULL DEFAULT 'completed',
            reference       VARCHAR(128),
            description     VARCHAR(500),
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_ltx_type   CHECK (
                type IN ('deposit', 'withdrawal', 'hold', 'release', 'refund', 'commission')
            ),
            CONSTRAINT ck_ltx_status CHECK (status IN ('pending', 'completed', 'failed')),
            CONSTRAINT ck_ltx_balance_delta CHECK (
                (type IN ('deposit', 'withdrawal', 'release') AND balance_after - balance_before = amount)
                OR (type IN ('hold', 'refund', 'commission') AND balance_after = balance_before)
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_ltx_user_created ON ledger_transactions (user_id, created_at DESC, id DESC);"
    )
    op.execute("CREATE INDEX idx_ltx_order ON ledger_transactions (order_id) WHERE order_id IS NOT NULL;")
    op.execute("""
        CREATE TRIGGER trg_ltx_append_only
            BEFORE UPDATE OR DELETE ON ledger_transactions
            FOR EACH ROW EXECUTE FUNCTION fn_reject_mutation();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS ledger_transactions CASCADE;")
