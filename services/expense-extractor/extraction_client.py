"""HTTP client for the remote receipt extraction service.

Sends one document per request as multipart form data and returns the raw
JSON payload. Uses httpx with explicit timeouts; tenacity retries
connection-level failures only when EXTRACTION_RETRY_ATTEMPTS > 1.
"""

import json
import logging

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from catalog import ExtractionModel, provider_for, resolve_model
from config import settings
from models import UploadedDocument

logger = logging.getLogger(__name__)


class ExtractionClientError(Exception):
    """Base class for failures talking to the extraction service."""


class ExtractionServiceUnavailable(ExtractionClientError):
    """Extraction service is unreachable or busy (503, connection error, timeout)."""


class ExtractionServiceError(ExtractionClientError):
    """Extraction service returned a non-success status or an unusable body."""


def build_info(model: str | ExtractionModel) -> dict:
    """Metadata object sent alongside the file: model id and derived provider."""
    resolved = resolve_model(model)
    return {"model": resolved.value, "provider": provider_for(resolved)}


class ExtractionClient:
    """HTTP client for the extraction service with optional retry."""

    def __init__(
        self,
        base_url: str | None = None,
        endpoint: str | None = None,
        timeout: int | None = None,
        connect_timeout: int | None = None,
        retry_attempts: int | None = None,
        retry_delay: float | None = None,
        retry_backoff: float | None = None,
    ):
        self._base_url = (base_url or settings.EXTRACTION_SERVICE_URL).rstrip("/")
        self._endpoint = endpoint or settings.EXTRACTION_ENDPOINT
        self._retry_attempts = retry_attempts if retry_attempts is not None else settings.EXTRACTION_RETRY_ATTEMPTS
        self._retry_delay = retry_delay if retry_delay is not None else settings.EXTRACTION_RETRY_DELAY
        self._retry_backoff = retry_backoff if retry_backoff is not None else settings.EXTRACTION_RETRY_BACKOFF

        read_timeout = timeout if timeout is not None else settings.EXTRACTION_TIMEOUT_SECONDS
        conn_timeout = connect_timeout if connect_timeout is not None else settings.EXTRACTION_CONNECT_TIMEOUT

        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=httpx.Timeout(
                connect=float(conn_timeout),
                read=float(read_timeout),
                write=30.0,
                pool=30.0,
            ),
        )

    def close(self):
        self._client.close()

    def extract(self, document: UploadedDocument, model: str | ExtractionModel) -> dict:
        """Submit a document for extraction and return the decoded JSON object.

        Raises UnknownModelError before any I/O for an unsupported model.
        Raises ExtractionServiceUnavailable or ExtractionServiceError on failure.
        """
        info = build_info(model)
        files = {"file": (document.filename, document.content, document.content_type)}
        data = {"model": info["model"], "info": json.dumps(info)}

        # Log size and name only, never document content
        logger.info(
            "Submitting %s (%d bytes) to extraction service: model=%s provider=%s",
            document.filename,
            document.size,
            info["model"],
            info["provider"],
        )
        return self._extract_with_retry(files, data)

    def _extract_with_retry(self, files: dict, data: dict) -> dict:
        """Retry wrapper, configured from the client's retry settings."""

        @retry(
            retry=retry_if_exception_type(ExtractionServiceUnavailable),
            stop=stop_after_attempt(max(self._retry_attempts, 1)),
            wait=wait_exponential(
                multiplier=self._retry_delay,
                exp_base=self._retry_backoff,
                max=60,
            ),
            reraise=True,
            before_sleep=lambda state: logger.warning(
                "Extraction service unavailable, retrying in %.1fs (attempt %d/%d)",
                state.next_action.sleep,  # type: ignore[union-attr]
                state.attempt_number,
                self._retry_attempts,
            ),
        )
        def _do_extract() -> dict:
            return self._send_extract(files, data)

        return _do_extract()

    def _send_extract(self, files: dict, data: dict) -> dict:
        """Send a single extraction request."""
        try:
            resp = self._client.post(self._endpoint, files=files, data=data)
        except (httpx.ConnectError, httpx.ConnectTimeout) as e:
            logger.warning("Extraction service connection failed: %s", e)
            raise ExtractionServiceUnavailable(f"Cannot connect to extraction service: {e}") from e
        except httpx.ReadTimeout as e:
            logger.warning("Extraction service read timeout: %s", e)
            raise ExtractionServiceUnavailable(f"Extraction service read timeout: {e}") from e
        except httpx.HTTPError as e:
            logger.error("Extraction service HTTP error: %s", e)
            raise ExtractionServiceError(f"Extraction service HTTP error: {e}") from e

        if resp.status_code == 503:
            detail = _error_detail(resp, "Service unavailable")
            logger.warning("Extraction service returned 503: %s", detail)
            raise ExtractionServiceUnavailable(detail)

        if not resp.is_success:
            detail = _error_detail(resp, f"HTTP {resp.status_code}")
            logger.error("Extraction service error %d: %s", resp.status_code, detail)
            raise ExtractionServiceError(detail)

        try:
            payload = resp.json()
        except ValueError as e:
            logger.error("Extraction service returned non-JSON body (%d bytes)", len(resp.content))
            raise ExtractionServiceError("Extraction service returned an unparseable response") from e

        if not isinstance(payload, dict):
            logger.error("Extraction service returned %s instead of an object", type(payload).__name__)
            raise ExtractionServiceError("Extraction service returned an unparseable response")

        return payload

    def health(self) -> dict:
        """Check extraction service health. Never raises."""
        try:
            resp = self._client.get("/health", timeout=10.0)
            if not resp.is_success:
                return {"status": "unhealthy", "status_code": resp.status_code}
            return resp.json()
        except Exception as e:
            logger.warning("Extraction service health check failed: %s", e)
            return {"status": "unreachable", "error": str(e)}


def _error_detail(resp: httpx.Response, default: str) -> str:
    """Pull a `detail` message out of an error body, if it has one."""
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return default
