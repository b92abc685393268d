"""004: create orders table

Revision ID: 004
Revises: 003
Create Date: 2026-10-17
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE orders (
            id                   VARCHAR(26)     PRIMARY KEY,
            order_number         VARCHAR(32)     NOT NULL,
            listing_id           VARCHAR(64)     NOT NULL REFERENCES listings (id),
            buyer_id             VARCHAR(64)     NOT NULL REFERENCES users (id),
            seller_id            VARCHAR(64)     NOT NULL REFERENCES users (id),
            quantity             INT             NOT NULL,
            unit_price           BIGINT          NOT NULL,
            total_amount         BIGINT          NOT NULL,
            platform_fee_percent NUMERIC(5, 2)   NOT NULL,
            platform_fee_amount  BIGINT          NOT NULL,
            seller_amount        BIGINT          NOT NULL,
            status               VARCHAR(20)     NOT NULL DEFAULT 'created',
            escrow_amount        BIGINT          NOT NULL DEFAULT 0,
            metadata             JSONB           NOT NULL DEFAULT '{}'::jsonb,
            paid_at              TIMESTAMPTZ,
            accepted_at          TIMESTAMPTZ,
            shipped_at           TIMESTAMPTZ,
            delivered_at         TIMESTAMPTZ,
            completed_at         TIMESTAMPTZ,
            cancelled_at         TIMESTAMPTZ,
            disputed_at          TIMESTAMPTZ,
            created_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at           TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_orders_order_number     UNIQUE (order_number),
            CONSTRAINT ck_orders_quantity         CHECK (quantity > 0),
            CONSTRAINT ck_orders_total            CHECK (total_amount = unit_price * quantity),
            CONSTRAINT ck_orders_fee_percent      CHECK (platform_fee_percent BETWEEN 0 AND 100),
            CONSTRAINT ck_orders_split            CHECK (platform_fee_amount + seller_amount = total_amount),
            CONSTRAINT ck_orders_escrow_range     CHECK (escrow_amount >= 0 AND escrow_amount <= total_amount),
            CONSTRAINT ck_orders_not_self         CHECK (buyer_id <> seller_id),
            CONSTRAINT ck_orders_status           CHECK (
                status IN ('created', 'paid', 'accepted', 'in_progress', 'shipped', 'delivered',
                           'completed', 'cancelled', 'refunded', 'disputed',
                           'resolved_buyer', 'resolved_seller')
            )
        );
    """)
    op.execute("CREATE INDEX idx_orders_buyer ON orders (buyer_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_seller ON orders (seller_id, created_at DESC);")
    op.execute("CREATE INDEX idx_orders_in_escrow ON orders (id) WHERE escrow_amount > 0;")
    op.execute("""
        CREATE TRIGGER trg_orders_updated_at
            BEFORE UPDATE ON orders
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS orders CASCADE;")
