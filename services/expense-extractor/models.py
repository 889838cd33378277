"""Pydantic models for documents, extraction results and session state."""

import datetime as dt
from enum import Enum

from pydantic import BaseModel, ConfigDict

from catalog import DEFAULT_CURRENCY, ExtractionModel

DEFAULT_AMOUNT = "0.00"


class SessionStatus(str, Enum):
    EMPTY = "empty"
    SUBMITTING = "submitting"
    POPULATED = "populated"
    FAILED = "failed"


class UploadedDocument(BaseModel):
    """A single receipt or invoice picked by the user."""

    model_config = ConfigDict(frozen=True)

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.content)


class ExpenseFields(BaseModel):
    """The editable expense record."""

    merchant: str = ""
    category: str = ""
    currency: str = DEFAULT_CURRENCY
    amount: str = DEFAULT_AMOUNT
    date: dt.date | None = None


class Timings(BaseModel):
    """Backend-reported stage durations in seconds."""

    ocr_seconds: float | None = None
    llm_seconds: float | None = None
    total_seconds: float | None = None


class ExtractionResult(BaseModel):
    """Normalized backend response, ready to be applied to a session."""

    fields: ExpenseFields
    timings: Timings | None = None
    round_trip_seconds: float | None = None


class SessionState(BaseModel):
    """Read-only view of a session for rendering."""

    model_config = ConfigDict(frozen=True)

    status: SessionStatus
    model: ExtractionModel
    file_name: str | None = None
    fields: ExpenseFields
    timings: Timings | None = None
    round_trip_seconds: float | None = None
    dirty: bool = False
    error: str | None = None
    generation: int = 0
