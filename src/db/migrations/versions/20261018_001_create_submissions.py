"""Create submissions table.

Revision ID: 20261018_001
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "20261018_001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the submissions table."""

    # Enum values are stored as strings; the Python schemas validate them.
    op.create_table(
        "submissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("document_kind", sa.String(30), nullable=False, index=True),
        sa.Column("request_number", sa.String(64), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False, index=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        # Classification
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("priority", sa.String(20), nullable=False, server_default="normal"),
        sa.Column("currency", sa.String(3), nullable=False, server_default="SAR"),
        sa.Column("encounter_class", sa.String(20), nullable=True),
        sa.Column("encounter_start", sa.DateTime(timezone=True), nullable=True),
        sa.Column("encounter_end", sa.DateTime(timezone=True), nullable=True),
        # Parties
        sa.Column("patient_id", sa.String(64), nullable=True, index=True),
        sa.Column("provider_id", sa.String(64), nullable=True, index=True),
        sa.Column("insurer_id", sa.String(64), nullable=True, index=True),
        # Payload
        sa.Column("items", sa.JSON, nullable=False),
        sa.Column("diagnoses", sa.JSON, nullable=False),
        sa.Column("supporting_info", sa.JSON, nullable=False),
        sa.Column("attachments", sa.JSON, nullable=False),
        # Exchange identity
        sa.Column("exchange_reference", sa.String(128), nullable=True, index=True),
        sa.Column("polling_token", sa.String(128), nullable=True),
        sa.Column("disposition", sa.Text, nullable=True),
        sa.Column("authorization_period_end", sa.Date, nullable=True),
        # Links
        sa.Column(
            "parent_id",
            sa.String(36),
            sa.ForeignKey("submissions.id", ondelete="RESTRICT"),
            nullable=True,
            index=True,
        ),
        sa.Column("related_reference", sa.String(128), nullable=True),
        sa.Column("pre_auth_reference", sa.String(128), nullable=True),
        # Flags
        sa.Column("is_update", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_transfer", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_cancelled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("transfer_provider_id", sa.String(64), nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        # Audit
        sa.Column("last_transmitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    """Drop the submissions table."""
    op.drop_table("submissions")
