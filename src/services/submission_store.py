"""
Submission Store.

Authoritative storage for submissions. Status changes go through
compare_and_transition: the write succeeds only if the stored status (and
optionally version) still matches what the caller observed, so two
concurrent commands on the same submission cannot both win.

Implementations:
- InMemorySubmissionStore: asyncio.Lock guarded dict, used in demo mode and tests
- SqlSubmissionStore: conditional UPDATE ... WHERE id = :id AND status = :expected
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional
import asyncio
import logging

from pydantic import BaseModel
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.enums import DocumentKind, SubmissionStatus
from src.core.exceptions import LifecycleError
from src.models.submission import SubmissionModel
from src.schemas.submission import (
    Attachment,
    Submission,
    SubmissionDiagnosis,
    SubmissionItem,
    SupportingInfo,
    utc_now,
)

logger = logging.getLogger(__name__)


class SubmissionNotFoundError(LifecycleError):
    """No submission with the given id."""

    def __init__(self, submission_id: str):
        super().__init__(f"Submission {submission_id} not found", submission_id)


class ConflictError(LifecycleError):
    """Stored status or version no longer matches what the caller observed."""

    def __init__(
        self,
        submission_id: str,
        expected_status: Optional[SubmissionStatus] = None,
        actual_status: Optional[SubmissionStatus] = None,
        message: Optional[str] = None,
    ):
        message = message or (
            f"Submission {submission_id} changed concurrently "
            f"(expected {_value(expected_status)}, found {_value(actual_status)})"
        )
        super().__init__(message, submission_id)
        self.expected_status = expected_status
        self.actual_status = actual_status


def _value(status: Optional[SubmissionStatus]) -> Optional[str]:
    return status.value if status is not None else None


class SubmissionStore(ABC):
    """Contract for submission persistence."""

    @abstractmethod
    async def create(self, submission: Submission) -> Submission:
        """Insert a new submission. Raises ConflictError on duplicate id or request number."""
        pass

    @abstractmethod
    async def load(self, submission_id: str) -> Submission:
        """Return a snapshot. Raises SubmissionNotFoundError."""
        pass

    @abstractmethod
    async def list_submissions(
        self,
        document_kind: Optional[DocumentKind] = None,
        status: Optional[SubmissionStatus] = None,
    ) -> list[Submission]:
        pass

    @abstractmethod
    async def compare_and_transition(
        self,
        submission_id: str,
        expected_status: SubmissionStatus,
        new_status: SubmissionStatus,
        patch: Optional[dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        """
        Atomically move a submission from expected_status to new_status.

        Args:
            submission_id: Submission to update
            expected_status: Status the caller observed
            new_status: Status to write
            patch: Other fields to write in the same step
            expected_version: Optional version the caller observed

        Returns:
            The updated submission (version incremented)

        Raises:
            SubmissionNotFoundError: Unknown id
            ConflictError: Status or version changed since the caller read it
        """
        pass

    @abstractmethod
    async def delete(self, submission_id: str, expected_status: SubmissionStatus) -> None:
        """Remove a submission if it is still in expected_status."""
        pass

    async def close(self) -> None:
        return None


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemorySubmissionStore(SubmissionStore):
    """Process-local store. Snapshots handed out are deep copies."""

    def __init__(self):
        self._records: dict[str, Submission] = {}
        self._lock = asyncio.Lock()

    async def create(self, submission: Submission) -> Submission:
        async with self._lock:
            if submission.id in self._records:
                raise ConflictError(submission.id, message=f"Submission {submission.id} already exists")
            if any(r.request_number == submission.request_number for r in self._records.values()):
                raise ConflictError(
                    submission.id,
                    message=f"Request number {submission.request_number} already exists",
                )
            self._records[submission.id] = submission.model_copy(deep=True)
            return submission.model_copy(deep=True)

    async def load(self, submission_id: str) -> Submission:
        record = self._records.get(submission_id)
        if record is None:
            raise SubmissionNotFoundError(submission_id)
        return record.model_copy(deep=True)

    async def list_submissions(
        self,
        document_kind: Optional[DocumentKind] = None,
        status: Optional[SubmissionStatus] = None,
    ) -> list[Submission]:
        records = [
            r
            for r in self._records.values()
            if (document_kind is None or r.document_kind == document_kind)
            and (status is None or r.status == status)
        ]
        records.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in records]

    async def compare_and_transition(
        self,
        submission_id: str,
        expected_status: SubmissionStatus,
        new_status: SubmissionStatus,
        patch: Optional[dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        async with self._lock:
            current = self._records.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            if current.status != expected_status:
                raise ConflictError(submission_id, expected_status, current.status)
            if expected_version is not None and current.version != expected_version:
                raise ConflictError(
                    submission_id,
                    expected_status,
                    current.status,
                    message=(
                        f"Submission {submission_id} changed concurrently "
                        f"(expected version {expected_version}, found {current.version})"
                    ),
                )

            values = current.model_dump()
            values.update(patch or {})
            values.update(status=new_status, version=current.version + 1, updated_at=utc_now())
            updated = Submission.model_validate(values)
            self._records[submission_id] = updated

        logger.debug(
            f"Submission {submission_id}: {expected_status.value} -> {new_status.value} (v{updated.version})"
        )
        return updated.model_copy(deep=True)

    async def delete(self, submission_id: str, expected_status: SubmissionStatus) -> None:
        async with self._lock:
            current = self._records.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            if current.status != expected_status:
                raise ConflictError(submission_id, expected_status, current.status)
            del self._records[submission_id]


# =============================================================================
# SQL Store
# =============================================================================

JSON_ENTRY_TYPES: dict[str, type[BaseModel]] = {
    "items": SubmissionItem,
    "diagnoses": SubmissionDiagnosis,
    "supporting_info": SupportingInfo,
    "attachments": Attachment,
}


def to_column_values(fields: dict[str, Any]) -> dict[str, Any]:
    """Convert submission field values into column values for SubmissionModel."""
    values: dict[str, Any] = {}
    for name, value in fields.items():
        if name in JSON_ENTRY_TYPES and value is not None:
            entry_type = JSON_ENTRY_TYPES[name]
            values[name] = [entry_type.model_validate(entry).model_dump(mode="json") for entry in value]
        elif isinstance(value, Enum):
            values[name] = value.value
        else:
            values[name] = value
    return values


class SqlSubmissionStore(SubmissionStore):
    """
    PostgreSQL-backed store.

    Each operation runs in its own short session. The conditional UPDATE
    makes compare-and-transition atomic without holding row locks across
    exchange calls.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def create(self, submission: Submission) -> Submission:
        row = SubmissionModel(**to_column_values(dict(submission)))
        async with self._session_maker() as session:
            session.add(row)
            try:
                await session.commit()
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError(
                    submission.id,
                    message=f"Submission {submission.id} or request number {submission.request_number} already exists",
                ) from e
        return submission.model_copy(deep=True)

    async def load(self, submission_id: str) -> Submission:
        async with self._session_maker() as session:
            row = await session.get(SubmissionModel, submission_id)
            if row is None:
                raise SubmissionNotFoundError(submission_id)
            return Submission.model_validate(row)

    async def list_submissions(
        self,
        document_kind: Optional[DocumentKind] = None,
        status: Optional[SubmissionStatus] = None,
    ) -> list[Submission]:
        stmt = select(SubmissionModel).order_by(SubmissionModel.created_at)
        if document_kind is not None:
            stmt = stmt.where(SubmissionModel.document_kind == document_kind.value)
        if status is not None:
            stmt = stmt.where(SubmissionModel.status == status.value)
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            return [Submission.model_validate(row) for row in result.scalars().all()]

    async def compare_and_transition(
        self,
        submission_id: str,
        expected_status: SubmissionStatus,
        new_status: SubmissionStatus,
        patch: Optional[dict[str, Any]] = None,
        expected_version: Optional[int] = None,
    ) -> Submission:
        values = to_column_values({**(patch or {}), "status": new_status})
        values["updated_at"] = utc_now()
        values["version"] = SubmissionModel.version + 1

        stmt = update(SubmissionModel).where(
            SubmissionModel.id == submission_id,
            SubmissionModel.status == expected_status.value,
        )
        if expected_version is not None:
            stmt = stmt.where(SubmissionModel.version == expected_version)
        stmt = stmt.values(**values).execution_options(synchronize_session=False)

        async with self._session_maker() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                current = await session.get(SubmissionModel, submission_id)
                if current is None:
                    raise SubmissionNotFoundError(submission_id)
                raise ConflictError(submission_id, expected_status, SubmissionStatus(current.status))
            await session.commit()

            row = await session.get(SubmissionModel, submission_id, populate_existing=True)
            logger.debug(f"Submission {submission_id}: {expected_status.value} -> {new_status.value}")
            return Submission.model_validate(row)

    async def delete(self, submission_id: str, expected_status: SubmissionStatus) -> None:
        stmt = delete(SubmissionModel).where(
            SubmissionModel.id == submission_id,
            SubmissionModel.status == expected_status.value,
        )
        async with self._session_maker() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                current = await session.get(SubmissionModel, submission_id)
                if current is None:
                    raise SubmissionNotFoundError(submission_id)
                raise ConflictError(submission_id, expected_status, SubmissionStatus(current.status))
            await session.commit()
