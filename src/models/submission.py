"""
Submission ORM Model.

One row per prior authorization or claim submission. The clinical payload
(items, diagnoses, supporting info, attachments) is stored as JSON; it is
only ever read and written as a whole together with the status.
"""

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.models.base import Base, TimeStampedModel


class SubmissionModel(Base, TimeStampedModel):
    """Persisted submission record."""

    __tablename__ = "submissions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    document_kind: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    request_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Classification
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="normal")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="SAR")
    encounter_class: Mapped[Optional[str]] = mapped_column(String(20))
    encounter_start: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    encounter_end: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Parties (external master data)
    patient_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    provider_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)
    insurer_id: Mapped[Optional[str]] = mapped_column(String(64), index=True)

    # Payload
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    diagnoses: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    supporting_info: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    attachments: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    # Exchange identity
    exchange_reference: Mapped[Optional[str]] = mapped_column(String(128), index=True)
    polling_token: Mapped[Optional[str]] = mapped_column(String(128))
    disposition: Mapped[Optional[str]] = mapped_column(Text)
    authorization_period_end: Mapped[Optional[date]] = mapped_column(Date)

    # Transfer authorization
    transfer_authorization_number: Mapped[Optional[str]] = mapped_column(String(128))
    transfer_authorization_provider: Mapped[Optional[str]] = mapped_column(String(64))
    transfer_period_start: Mapped[Optional[date]] = mapped_column(Date)
    transfer_period_end: Mapped[Optional[date]] = mapped_column(Date)

    # Links
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("submissions.id", ondelete="RESTRICT"), index=True
    )
    related_reference: Mapped[Optional[str]] = mapped_column(String(128))
    pre_auth_reference: Mapped[Optional[str]] = mapped_column(String(128))

    # Flags
    is_update: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_transfer: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_cancelled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transfer_provider_id: Mapped[Optional[str]] = mapped_column(String(64))
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text)

    # Audit
    last_transmitted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    last_error: Mapped[Optional[str]] = mapped_column(Text)

    def __repr__(self) -> str:
        return f"<SubmissionModel(id={self.id}, request_number={self.request_number}, status={self.status})>"
