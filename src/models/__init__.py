"""
SQLAlchemy Models for the Submission Lifecycle Engine.
"""

from src.models.base import Base, TimeStampedModel
from src.models.submission import SubmissionModel

__all__ = [
    "Base",
    "TimeStampedModel",
    "SubmissionModel",
]
