"""FastAPI expense form service backed by a single extraction session.

Renders the session as JSON, serves the dropdown option lists and forwards
uploads, edits, model changes and resets into the session. OCR and LLM
inference happen in the remote extraction service.
Privacy: documents are kept in memory only and never logged.
"""

import datetime as dt
import logging
from contextlib import asynccontextmanager
from decimal import Decimal, InvalidOperation

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, field_validator

from catalog import (
    ACCEPTED_EXTENSIONS,
    CATEGORIES,
    CURRENCIES,
    MODEL_DESCRIPTIONS,
    PROVIDERS,
    UnknownModelError,
    is_accepted_filename,
)
from config import settings
from extraction import DATE_FORMAT, submit_document
from extraction_client import ExtractionClient
from models import SessionState, UploadedDocument
from session import ExtractionSession, SessionBusyError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_session = ExtractionSession()
_client: ExtractionClient | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the extraction client on startup and probe the backend."""
    global _client

    logger.info("Using extraction service at %s", settings.EXTRACTION_SERVICE_URL)
    _client = ExtractionClient()

    # Startup probe is informational only
    health = _client.health()
    if health.get("status") == "unreachable":
        logger.warning("Extraction service not reachable yet: %s", health)
    else:
        logger.info("Extraction service health: %s", health)

    yield

    if _client is not None:
        _client.close()


app = FastAPI(title="Expense Extractor", version="1.0.0", lifespan=lifespan)


class FieldsUpdate(BaseModel):
    """Partial edit of the expense record, as submitted by the form."""

    merchant: str | None = None
    category: str | None = None
    currency: str | None = None
    amount: str | None = None
    date: str | None = None

    @field_validator("category")
    @classmethod
    def _known_category(cls, v: str | None) -> str | None:
        if v not in (None, "") and v not in CATEGORIES:
            raise ValueError(f"unknown category: {v}")
        return v

    @field_validator("currency")
    @classmethod
    def _known_currency(cls, v: str | None) -> str | None:
        if v is not None and v not in CURRENCIES:
            raise ValueError(f"unknown currency: {v}")
        return v

    @field_validator("amount")
    @classmethod
    def _non_negative_amount(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            amount = Decimal(v)
        except InvalidOperation:
            raise ValueError("amount must be a decimal number") from None
        if not amount.is_finite() or amount < 0:
            raise ValueError("amount must be a non-negative number")
        return v

    @field_validator("date")
    @classmethod
    def _date_format(cls, v: str | None) -> str | None:
        if v:
            try:
                dt.datetime.strptime(v, DATE_FORMAT)
            except ValueError:
                raise ValueError("date must be in dd/mm/yyyy format") from None
        return v

    def changes(self) -> dict:
        """Fields the client actually sent, converted to session values."""
        changes = self.model_dump(exclude_unset=True)
        if "date" in changes:
            raw = changes["date"]
            changes["date"] = dt.datetime.strptime(raw, DATE_FORMAT).date() if raw else None
        return changes


class ModelSelection(BaseModel):
    model: str


def _get_client() -> ExtractionClient:
    if _client is None:
        raise HTTPException(status_code=503, detail="Extraction client is not initialized")
    return _client


@app.get("/api/v1/options")
async def options():
    """Option lists for the category, currency and model dropdowns."""
    return {
        "categories": list(CATEGORIES),
        "currencies": list(CURRENCIES),
        "models": [
            {
                "id": model.value,
                "provider": provider,
                "description": MODEL_DESCRIPTIONS[model],
            }
            for model, provider in PROVIDERS.items()
        ],
        "accepted_extensions": list(ACCEPTED_EXTENSIONS),
    }


@app.get("/api/v1/session", response_model=SessionState)
async def get_session():
    return _session.snapshot()


@app.post("/api/v1/session/file", response_model=SessionState)
def upload_file(
    file: UploadFile = File(...),
    model: str | None = Form(None),
):
    """Select a document and run extraction on it.

    Runs in the worker thread pool; the call blocks until the extraction
    service answers or the transport fails.
    """
    client = _get_client()

    if not is_accepted_filename(file.filename):
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type, accepted: {', '.join(ACCEPTED_EXTENSIONS)}",
        )

    content = file.file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Empty file uploaded")

    if model:
        try:
            _session.set_model(model)
        except UnknownModelError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e

    document = UploadedDocument(
        filename=file.filename,
        content=content,
        content_type=file.content_type or "application/octet-stream",
    )
    return submit_document(_session, client, document)


@app.patch("/api/v1/session/fields", response_model=SessionState)
async def edit_fields(update: FieldsUpdate):
    """Apply user corrections to the expense record."""
    try:
        _session.edit_fields(update.changes())
    except SessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _session.snapshot()


@app.put("/api/v1/session/model", response_model=SessionState)
async def select_model(selection: ModelSelection):
    try:
        _session.set_model(selection.model)
    except UnknownModelError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return _session.snapshot()


@app.post("/api/v1/session/reset", response_model=SessionState)
async def reset_session():
    _session.reset()
    return _session.snapshot()


@app.get("/health")
async def health():
    """Return service status and extraction backend reachability."""
    base = {"status": "healthy"}
    if _client is not None:
        base["backend"] = _client.health()
    return base


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
