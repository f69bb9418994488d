"""Custom exceptions for error handling"""
from typing import Any

from fastapi import HTTPException, status


class AppError(HTTPException):
    """Base class for API errors rendered as {"error": detail, **extra}."""

    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Bad request"

    def __init__(self, detail: str | None = None, extra: dict[str, Any] | None = None, headers: dict | None = None):
        super().__init__(
            status_code=self.status_code,
            detail=detail or self.detail,
            headers=headers,
        )
        self.extra = extra or {}


class FileValidationError(AppError):
    """400 - file count / type constraint violated"""
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid files"


class PayloadTooLargeError(AppError):
    """413"""
    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    detail = "File size too large"


class UsageLimitExceededError(AppError):
    """429 - free monthly operation limit reached"""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    detail = "Usage limit exceeded. Upgrade to continue."


class UnauthorizedError(AppError):
    """401"""
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Unauthorized"


class ForbiddenError(AppError):
    """403"""
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Forbidden"


class NotFoundError(AppError):
    """404"""
    status_code = status.HTTP_404_NOT_FOUND
    detail = "Not found"


class InvalidPlanError(AppError):
    """400 - unknown billing plan"""
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid plan selected"


class PaymentProviderError(AppError):
    """502 - Stripe call failed"""
    status_code = status.HTTP_502_BAD_GATEWAY
    detail = "Payment provider error"


class WebhookProcessingError(AppError):
    """500 - webhook event accepted but its handler failed (Stripe will retry)"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    detail = "Webhook processing failed"
