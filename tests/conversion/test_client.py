"""Tests for conversion client: маппинг ошибок сервиса и breaker (in-memory pybreaker)."""
from unittest.mock import patch

import httpx
import pybreaker
import pytest

from app.pdf.errors import ConversionFailedError, ConversionUnavailableError
from app.services.conversion import client


def _response(status_code=200, content=b"DOCX", headers=None, json_body=None):
    request = httpx.Request("POST", "http://conv/api/convert/pdf-to-word")
    if json_body is not None:
        return httpx.Response(status_code, json=json_body, request=request)
    return httpx.Response(status_code, content=content, headers=headers or {}, request=request)


@pytest.fixture
def breaker():
    cb = pybreaker.CircuitBreaker(fail_max=2, reset_timeout=60)
    with patch.object(client, "get_circuit_breaker", return_value=cb):
        yield cb


class TestConvert:
    def test_success_passes_headers_through(self, breaker):
        resp = _response(headers={
            "content-type": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "content-disposition": 'attachment; filename="doc.docx"',
        })
        with patch.object(client.httpx, "post", return_value=resp) as post:
            result = client.convert("pdf-to-word", "doc.pdf", b"%PDF", has_watermark_free_access=True)
        assert result.content == b"DOCX"
        assert result.content_disposition == 'attachment; filename="doc.docx"'
        assert post.call_args.kwargs["data"]["has_watermark_free_access"] == "true"
        assert post.call_args.args[0].endswith("/api/convert/pdf-to-word")

    def test_options_forwarded(self, breaker):
        with patch.object(client.httpx, "post", return_value=_response()) as post:
            client.convert("pdf-to-images", "d.pdf", b"%PDF", has_watermark_free_access=False,
                           options={"format": "png", "dpi": "150"})
        data = post.call_args.kwargs["data"]
        assert data["has_watermark_free_access"] == "false"
        assert data["format"] == "png"
        assert data["dpi"] == "150"

    def test_client_error_keeps_status_and_detail(self, breaker):
        resp = _response(422, json_body={"detail": "PDF has no text layer"})
        with patch.object(client.httpx, "post", return_value=resp):
            with pytest.raises(ConversionFailedError) as exc:
                client.convert("pdf-to-word", "d.pdf", b"%PDF", has_watermark_free_access=False)
        assert exc.value.status_code == 422
        assert exc.value.message == "PDF has no text layer"
        assert breaker.fail_counter == 0

    def test_server_error_is_502_and_counts_as_failure(self, breaker):
        with patch.object(client.httpx, "post", return_value=_response(500, content=b"oops")):
            with pytest.raises(ConversionFailedError) as exc:
                client.convert("pdf-to-excel", "d.pdf", b"%PDF", has_watermark_free_access=False)
        assert exc.value.status_code == 502
        assert exc.value.message == "Conversion failed"
        assert breaker.fail_counter == 1

    def test_unreachable_is_503(self, breaker):
        with patch.object(client.httpx, "post", side_effect=httpx.ConnectError("refused")):
            with pytest.raises(ConversionUnavailableError) as exc:
                client.convert("pdf-to-word", "d.pdf", b"%PDF", has_watermark_free_access=False)
        assert exc.value.status_code == 503

    def test_open_breaker_short_circuits(self, breaker):
        breaker.open()
        with patch.object(client.httpx, "post") as post:
            with pytest.raises(ConversionUnavailableError):
                client.convert("pdf-to-word", "d.pdf", b"%PDF", has_watermark_free_access=False)
        post.assert_not_called()


class TestServiceStatus:
    def test_online(self):
        with patch.object(client.httpx, "get", return_value=httpx.Response(200, request=httpx.Request("GET", "http://c"))):
            assert client.check_service_status()["status"] == "online"

    def test_degraded(self):
        with patch.object(client.httpx, "get", return_value=httpx.Response(503, request=httpx.Request("GET", "http://c"))):
            status = client.check_service_status()
        assert status["status"] == "degraded"
        assert status["message"] == "Service returned 503"

    def test_offline(self):
        with patch.object(client.httpx, "get", side_effect=httpx.ConnectTimeout("slow")):
            assert client.check_service_status()["status"] == "offline"
