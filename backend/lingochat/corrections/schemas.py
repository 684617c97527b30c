"""Pydantic schemas for the corrections module."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class CorrectionCreate(BaseModel):
    """Request body for correcting someone else's message."""
    message_id: int
    corrected_text: str = Field(..., min_length=1)
    explanation: Optional[str] = Field(default=None)


class DiffSegmentOut(BaseModel):
    type: Literal["equal", "insert", "delete"]
    text: str


class CorrectorOut(BaseModel):
    id: int
    name: str


class CorrectionOut(BaseModel):
    """Correction as returned by the API, with its word diff."""
    id: int
    message_id: int
    corrector_id: int
    original_text: str
    corrected_text: str
    explanation: Optional[str] = None
    created_at: str
    corrector: Optional[CorrectorOut] = None
    diff: List[DiffSegmentOut] = Field(default_factory=list)


class CorrectedMessageOut(BaseModel):
    id: int
    content: str
    connection_id: int


class ReceivedCorrectionOut(CorrectionOut):
    """A correction of one of the caller's own messages."""
    message: CorrectedMessageOut
