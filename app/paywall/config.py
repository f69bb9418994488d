"""
Paywall config - типизированная обёртка над app.core.config для watermark и лимитов.
"""
from __future__ import annotations

from app.core.config import settings


def get_watermark_text() -> str:
    return getattr(settings, "watermark_text", "Created with Quikpdf.pro")


def get_watermark_font_size() -> int:
    return getattr(settings, "watermark_font_size", 16)


def get_free_monthly_operation_limit() -> int:
    return getattr(settings, "free_monthly_operation_limit", 5)


def is_strict_claim_verification() -> bool:
    return bool(getattr(settings, "one_time_strict_verification", False))
