"""
Data models for the supervisor review queue.
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ReviewStatus(str, Enum):
    NOT_FLAGGED = "NotFlagged"
    PENDING = "Pending"
    APPROVED = "Approved"
    DISMISSED = "Dismissed"


# Statuses a supervisor may submit. The rest are assigned by the pipeline.
REVIEWER_ACTIONS = frozenset({ReviewStatus.APPROVED, ReviewStatus.DISMISSED})


class SupervisorReview(BaseModel):
    """One append-only supervisor decision. Never mutated once stored."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    extraction_id: UUID
    action: ReviewStatus
    reviewer_name: str = Field(min_length=1)
    notes: Optional[str] = None
    reviewed_at: datetime
