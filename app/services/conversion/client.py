"""
HTTP-клиент сервиса конвертации (pdf -> word/excel/powerpoint/images).
Вызовы идут через circuit breaker; сетевые ошибки и 5xx считаются отказами сервиса.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx
import pybreaker

from app.core.config import settings
from app.pdf.errors import ConversionFailedError, ConversionUnavailableError
from app.services.circuit_breaker import CONVERSION_BREAKER, get_circuit_breaker
from app.utils.metrics import conversion_request_duration_seconds, conversion_requests_total

logger = logging.getLogger(__name__)

# OperationType -> путь на сервисе конвертации
CONVERSION_KINDS = {
    "PDF_TO_WORD": "pdf-to-word",
    "PDF_TO_EXCEL": "pdf-to-excel",
    "PDF_TO_POWERPOINT": "pdf-to-powerpoint",
    "PDF_TO_IMAGE": "pdf-to-images",
}

IMAGE_FORMATS = ("png", "jpeg", "jpg", "webp")


@dataclass(frozen=True)
class ConversionResult:
    content: bytes
    content_type: str
    content_disposition: str | None = None


class _ServiceError(Exception):
    """5xx от сервиса - учитывается breaker'ом как отказ."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"conversion service returned {response.status_code}")
        self.response = response


def _base_url() -> str:
    return settings.conversion_service_url.rstrip("/")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return "Conversion failed"
    if isinstance(data, dict):
        return data.get("detail") or data.get("error") or "Conversion failed"
    return "Conversion failed"


def _post(url: str, files: dict, data: dict) -> httpx.Response:
    response = httpx.post(url, files=files, data=data, timeout=settings.conversion_timeout)
    if response.status_code >= 500:
        raise _ServiceError(response)
    return response


def convert(
    kind: str,
    file_name: str,
    content: bytes,
    *,
    has_watermark_free_access: bool,
    options: dict[str, str] | None = None,
) -> ConversionResult:
    """POST {base}/api/convert/{kind}; сервис сам ставит watermark по флагу доступа."""
    url = f"{_base_url()}/api/convert/{kind}"
    data = {"has_watermark_free_access": "true" if has_watermark_free_access else "false"}
    data.update(options or {})
    files = {"file": (file_name, content, "application/pdf")}

    started = time.monotonic()
    try:
        response = get_circuit_breaker(CONVERSION_BREAKER).call(_post, url, files, data)
    except pybreaker.CircuitBreakerError as e:
        conversion_requests_total.labels(kind=kind, status="breaker_open").inc()
        logger.warning("conversion_breaker_open", extra={"operation_type": kind, "error": str(e)})
        raise ConversionUnavailableError("Conversion service is temporarily unavailable. Please try again later.") from e
    except httpx.TransportError as e:
        conversion_requests_total.labels(kind=kind, status="unreachable").inc()
        logger.warning("conversion_unreachable", extra={"operation_type": kind, "error": str(e)})
        raise ConversionUnavailableError("Unable to connect to conversion service. Please try again later.") from e
    except _ServiceError as e:
        conversion_requests_total.labels(kind=kind, status="server_error").inc()
        logger.error(
            "conversion_server_error",
            extra={"operation_type": kind, "status_code": e.response.status_code},
        )
        raise ConversionFailedError(_error_message(e.response), status_code=502) from e
    finally:
        conversion_request_duration_seconds.labels(kind=kind).observe(time.monotonic() - started)

    if response.status_code != 200:
        conversion_requests_total.labels(kind=kind, status="rejected").inc()
        logger.info("conversion_rejected", extra={"operation_type": kind, "status_code": response.status_code})
        raise ConversionFailedError(_error_message(response), status_code=response.status_code)

    conversion_requests_total.labels(kind=kind, status="ok").inc()
    return ConversionResult(
        content=response.content,
        content_type=response.headers.get("content-type", "application/octet-stream"),
        content_disposition=response.headers.get("content-disposition"),
    )


def check_service_status() -> dict:
    """online / degraded / offline по GET {base}/health; breaker не используется."""
    base = _base_url()
    try:
        response = httpx.get(f"{base}/health", timeout=settings.conversion_health_timeout)
    except httpx.HTTPError as e:
        logger.warning("conversion_health_check_failed", extra={"error": str(e)})
        return {
            "status": "offline",
            "message": "PDF conversion service is currently unavailable",
            "service_url": base,
        }
    if response.is_success:
        return {"status": "online", "message": "PDF conversion service is available", "service_url": base}
    return {"status": "degraded", "message": f"Service returned {response.status_code}", "service_url": base}
