"""Normalize legacy production order status spellings

Older clients wrote "in-progress"; the canonical value is "in_progress".

Revision ID: 20261018_normalize_status
Revises: 20261018_initial
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_normalize_status"
down_revision = "20261018_initial"
branch_labels = None
depends_on = None


def upgrade():
    op.execute(
        sa.text(
            "UPDATE production_orders SET status = 'in_progress' "
            "WHERE status IN ('in-progress', 'in progress')"
        )
    )


def downgrade():
    # Canonical values are valid for every reader; nothing to undo
    pass
