"""Extraction workflow: submit a document, normalize the payload, update the session.

The backend payload is trusted to be a JSON object but every field in it is
optional; each one is normalized on its own and falls back to its default
when missing or unusable.
"""

import datetime as dt
import logging
import math
import time
from decimal import Decimal, InvalidOperation

from catalog import DEFAULT_CURRENCY
from extraction_client import ExtractionClient, ExtractionClientError
from models import (
    DEFAULT_AMOUNT,
    ExpenseFields,
    ExtractionResult,
    SessionState,
    Timings,
    UploadedDocument,
)
from session import ExtractionSession

logger = logging.getLogger(__name__)

# Fixed wire format for the `date` field (dd/mm/yyyy), never locale-dependent
DATE_FORMAT = "%d/%m/%Y"

TIMING_KEYS: dict[str, str] = {
    "ocr_time": "ocr_seconds",
    "llm_time": "llm_seconds",
    "total_time": "total_seconds",
}


def submit_document(
    session: ExtractionSession,
    client: ExtractionClient,
    document: UploadedDocument,
) -> SessionState:
    """Run one select -> extract -> apply cycle and return the resulting state.

    Any failure ends in a failed session; nothing is raised to the caller.
    """
    generation, model = session.select_file(document)
    start = time.monotonic()

    try:
        payload = client.extract(document, model)
        result = parse_extraction_payload(payload)
    except ExtractionClientError as e:
        logger.error("Extraction failed for %s: %s", document.filename, e)
        session.on_error(generation, e)
        return session.snapshot()
    except Exception as e:
        logger.exception("Unexpected error extracting %s", document.filename)
        session.on_error(generation, e)
        return session.snapshot()

    result.round_trip_seconds = time.monotonic() - start

    if session.on_response(generation, result):
        logger.info(
            "Extraction applied for %s in %.2fs (backend total=%s)",
            document.filename,
            result.round_trip_seconds,
            result.timings.total_seconds if result.timings else "n/a",
        )
    return session.snapshot()


def parse_extraction_payload(payload: dict) -> ExtractionResult:
    """Convert a backend response object into an ExtractionResult."""
    fields = ExpenseFields(
        merchant=_parse_text(payload, "merchant", ""),
        category=_parse_text(payload, "category", ""),
        currency=_parse_text(payload, "currency", DEFAULT_CURRENCY),
        amount=parse_amount(payload.get("amount")),
        date=parse_date(payload.get("date")),
    )
    return ExtractionResult(fields=fields, timings=parse_timings(payload))


def parse_amount(value) -> str:
    """Stringify a numeric amount; anything else becomes the default."""
    if isinstance(value, bool):
        return DEFAULT_AMOUNT
    if isinstance(value, (int, float)) and _as_finite_float(value) is not None:
        return str(value)
    if isinstance(value, str) and value.strip():
        try:
            if Decimal(value.strip()).is_finite():
                return value.strip()
        except InvalidOperation:
            pass
    if value is not None:
        logger.debug("Ignoring unusable amount in extraction response: %r", value)
    return DEFAULT_AMOUNT


def parse_date(value) -> dt.date | None:
    """Parse a dd/mm/yyyy date string. Returns None for anything else."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return dt.datetime.strptime(value.strip(), DATE_FORMAT).date()
    except ValueError:
        logger.debug("Ignoring date not in dd/mm/yyyy format: %r", value)
        return None


def parse_timings(payload: dict) -> Timings | None:
    """Collect the backend stage timings. None when the backend sent none."""
    values: dict[str, float] = {}
    for key, attr in TIMING_KEYS.items():
        raw = payload.get(key)
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            continue
        seconds = _as_finite_float(raw)
        if seconds is None or seconds < 0:
            continue
        values[attr] = seconds

    if not values:
        return None
    return Timings(**values)


def _parse_text(payload: dict, key: str, default: str) -> str:
    value = payload.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    if value is not None:
        logger.debug("Defaulting %s in extraction response: %r", key, value)
    return default


def _as_finite_float(value: int | float) -> float | None:
    # JSON integers are unbounded and may not fit in a float
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None
