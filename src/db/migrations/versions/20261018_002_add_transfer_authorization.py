"""Add transfer authorization columns.

Revision ID: 20261018_002
Revises: 20261018_001
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "20261018_002"
down_revision = "20261018_001"
branch_labels = None
depends_on = None

TRANSFER_COLUMNS = (
    ("transfer_authorization_number", sa.String(128)),
    ("transfer_authorization_provider", sa.String(64)),
    ("transfer_period_start", sa.Date),
    ("transfer_period_end", sa.Date),
)


def upgrade() -> None:
    """Add the receiving provider's authorization number and period."""
    for name, column_type in TRANSFER_COLUMNS:
        op.add_column("submissions", sa.Column(name, column_type, nullable=True))


def downgrade() -> None:
    """Drop the transfer authorization columns."""
    for name, _ in reversed(TRANSFER_COLUMNS):
        op.drop_column("submissions", name)
