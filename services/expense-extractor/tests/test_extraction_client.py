"""Tests for the extraction client: request shape, failures, retry."""

import json
from unittest.mock import patch

import httpx
import pytest

from catalog import UnknownModelError
from extraction_client import (
    ExtractionClient,
    ExtractionServiceError,
    ExtractionServiceUnavailable,
    build_info,
)


class TestRequest:
    def test_multipart_body(self, extraction_client: ExtractionClient, receipt_document, acme_payload):
        mock_response = httpx.Response(200, json=acme_payload)

        with patch.object(extraction_client._client, "post", return_value=mock_response) as post:
            extraction_client.extract(receipt_document, "mistralai/mixtral-8x7b-instruct")

        post.assert_called_once()
        args, kwargs = post.call_args
        assert args[0] == "/process_file"
        assert list(kwargs["files"]) == ["file"]
        assert kwargs["files"]["file"] == ("receipt.png", receipt_document.content, "image/png")
        assert kwargs["data"]["model"] == "mistralai/mixtral-8x7b-instruct"
        assert json.loads(kwargs["data"]["info"]) == {
            "model": "mistralai/mixtral-8x7b-instruct",
            "provider": "Fireworks",
        }

    def test_info_for_primary_model(self):
        assert build_info("cohere/command-r-08-2024") == {
            "model": "cohere/command-r-08-2024",
            "provider": "Cohere",
        }

    def test_unknown_model_fails_before_request(self, extraction_client: ExtractionClient, receipt_document):
        with patch.object(extraction_client._client, "post") as post:
            with pytest.raises(UnknownModelError):
                extraction_client.extract(receipt_document, "openai/gpt-4o")
            post.assert_not_called()

    def test_custom_endpoint(self, receipt_document):
        client = ExtractionClient(base_url="http://fake-extractor:8000/", endpoint="/api/extract")
        try:
            with patch.object(client._client, "post", return_value=httpx.Response(200, json={})) as post:
                client.extract(receipt_document, "cohere/command-r-08-2024")
            assert post.call_args.args[0] == "/api/extract"
        finally:
            client.close()


class TestExtract:
    def test_successful_extraction(self, extraction_client: ExtractionClient, receipt_document, acme_payload):
        mock_response = httpx.Response(200, json=acme_payload)

        with patch.object(extraction_client._client, "post", return_value=mock_response):
            payload = extraction_client.extract(receipt_document, "cohere/command-r-08-2024")
            assert payload == acme_payload

    def test_500_raises_service_error(self, extraction_client: ExtractionClient, receipt_document):
        response_500 = httpx.Response(500, json={"detail": "OCR crashed"})

        with patch.object(extraction_client._client, "post", return_value=response_500):
            with pytest.raises(ExtractionServiceError, match="OCR crashed"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_error_without_json_body(self, extraction_client: ExtractionClient, receipt_document):
        response_502 = httpx.Response(502, text="<html>Bad Gateway</html>")

        with patch.object(extraction_client._client, "post", return_value=response_502):
            with pytest.raises(ExtractionServiceError, match="HTTP 502"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_404_raises_service_error(self, extraction_client: ExtractionClient, receipt_document):
        response_404 = httpx.Response(404, json={"detail": "Not Found"})

        with patch.object(extraction_client._client, "post", return_value=response_404):
            with pytest.raises(ExtractionServiceError, match="Not Found"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_503_raises_unavailable(self, extraction_client: ExtractionClient, receipt_document):
        response_503 = httpx.Response(503, json={"detail": "Model loading"})

        with patch.object(extraction_client._client, "post", return_value=response_503):
            with pytest.raises(ExtractionServiceUnavailable, match="Model loading"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_connection_error_raises_unavailable(self, extraction_client: ExtractionClient, receipt_document):
        with patch.object(extraction_client._client, "post", side_effect=httpx.ConnectError("Connection refused")):
            with pytest.raises(ExtractionServiceUnavailable):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_read_timeout_raises_unavailable(self, extraction_client: ExtractionClient, receipt_document):
        with patch.object(extraction_client._client, "post", side_effect=httpx.ReadTimeout("Read timed out")):
            with pytest.raises(ExtractionServiceUnavailable):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_other_transport_error_raises_service_error(self, extraction_client: ExtractionClient, receipt_document):
        with patch.object(extraction_client._client, "post", side_effect=httpx.RemoteProtocolError("peer closed")):
            with pytest.raises(ExtractionServiceError):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_non_json_success_body(self, extraction_client: ExtractionClient, receipt_document):
        mock_response = httpx.Response(200, text="not json at all")

        with patch.object(extraction_client._client, "post", return_value=mock_response):
            with pytest.raises(ExtractionServiceError, match="unparseable"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")

    def test_json_array_body(self, extraction_client: ExtractionClient, receipt_document):
        mock_response = httpx.Response(200, json=[{"merchant": "Acme Co"}])

        with patch.object(extraction_client._client, "post", return_value=mock_response):
            with pytest.raises(ExtractionServiceError, match="unparseable"):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")


class TestRetry:
    def test_default_does_not_retry(self, extraction_client: ExtractionClient, receipt_document):
        """With a single attempt configured, a 503 fails immediately."""
        response_503 = httpx.Response(503, json={"detail": "Busy"})

        with patch.object(extraction_client._client, "post", return_value=response_503) as post:
            with pytest.raises(ExtractionServiceUnavailable):
                extraction_client.extract(receipt_document, "cohere/command-r-08-2024")
            assert post.call_count == 1

    def test_503_retried_then_succeeds(self, retrying_client: ExtractionClient, receipt_document):
        response_503 = httpx.Response(503, json={"detail": "Busy"})
        response_200 = httpx.Response(200, json={"merchant": "Acme Co"})

        call_count = 0

        def mock_post(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count == 1:
                return response_503
            return response_200

        with patch.object(retrying_client._client, "post", side_effect=mock_post):
            payload = retrying_client.extract(receipt_document, "cohere/command-r-08-2024")
            assert payload == {"merchant": "Acme Co"}
            assert call_count == 2

    def test_connection_errors_exhaust_retries(self, retrying_client: ExtractionClient, receipt_document):
        with patch.object(
            retrying_client._client, "post", side_effect=httpx.ConnectError("Connection refused")
        ) as post:
            with pytest.raises(ExtractionServiceUnavailable):
                retrying_client.extract(receipt_document, "cohere/command-r-08-2024")
            assert post.call_count == 3

    def test_500_not_retried(self, retrying_client: ExtractionClient, receipt_document):
        response_500 = httpx.Response(500, json={"detail": "Internal error"})

        with patch.object(retrying_client._client, "post", return_value=response_500) as post:
            with pytest.raises(ExtractionServiceError):
                retrying_client.extract(receipt_document, "cohere/command-r-08-2024")
            assert post.call_count == 1


class TestHealth:
    def test_health_success(self, extraction_client: ExtractionClient):
        mock_response = httpx.Response(200, json={"status": "healthy"})

        with patch.object(extraction_client._client, "get", return_value=mock_response):
            result = extraction_client.health()
            assert result["status"] == "healthy"

    def test_health_error_status(self, extraction_client: ExtractionClient):
        mock_response = httpx.Response(404, json={"detail": "Not Found"})

        with patch.object(extraction_client._client, "get", return_value=mock_response):
            result = extraction_client.health()
            assert result == {"status": "unhealthy", "status_code": 404}

    def test_health_failure_returns_error(self, extraction_client: ExtractionClient):
        with patch.object(extraction_client._client, "get", side_effect=httpx.ConnectError("refused")):
            result = extraction_client.health()
            assert result["status"] == "unreachable"
            assert "error" in result
