"""Shared test fixtures for expense extractor tests."""

import sys
from pathlib import Path

import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from extraction_client import ExtractionClient  # noqa: E402
from models import UploadedDocument  # noqa: E402
from session import ExtractionSession  # noqa: E402


@pytest.fixture
def receipt_document() -> UploadedDocument:
    """A small fake PNG receipt."""
    return UploadedDocument(
        filename="receipt.png",
        content=b"\x89PNG\r\n\x1a\nfake-receipt-bytes",
        content_type="image/png",
    )


@pytest.fixture
def invoice_document() -> UploadedDocument:
    """A second document, used to supersede the first submission."""
    return UploadedDocument(
        filename="invoice.pdf",
        content=b"%PDF-1.4 fake-invoice-bytes",
        content_type="application/pdf",
    )


@pytest.fixture
def acme_payload() -> dict:
    """Backend response for a restaurant receipt."""
    return {
        "merchant": "Acme Co",
        "category": "Meals",
        "currency": "EUR",
        "amount": 12.5,
        "date": "05/03/2024",
        "ocr_time": 1.25,
        "llm_time": 3.5,
        "total_time": 4.9,
    }


@pytest.fixture
def taxi_payload() -> dict:
    """Backend response for a taxi invoice, without timings."""
    return {
        "merchant": "City Cabs",
        "category": "Ground Transportation",
        "currency": "GBP",
        "amount": 23,
        "date": "17/11/2024",
    }


@pytest.fixture
def session() -> ExtractionSession:
    return ExtractionSession(model="cohere/command-r-08-2024")


@pytest.fixture
def extraction_client():
    """Create an extraction client with fast retry settings for testing."""
    client = ExtractionClient(
        base_url="http://fake-extractor:8000",
        timeout=5,
        connect_timeout=2,
        retry_attempts=1,
        retry_delay=0.01,
        retry_backoff=1.0,
    )
    yield client
    client.close()


@pytest.fixture
def retrying_client():
    """Extraction client with retries enabled (3 attempts, no backoff)."""
    client = ExtractionClient(
        base_url="http://fake-extractor:8000",
        timeout=5,
        connect_timeout=2,
        retry_attempts=3,
        retry_delay=0.01,  # Fast retries for tests
        retry_backoff=1.0,  # No backoff for tests
    )
    yield client
    client.close()
