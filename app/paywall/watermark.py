"""
Обёртка над app.utils.watermark: watermark по решению доступа, текст из paywall config.
"""
from __future__ import annotations

import fitz  # PyMuPDF

from app.paywall.config import get_watermark_font_size, get_watermark_text
from app.paywall.models import AccessDecision
from app.utils.watermark import apply_watermark as _apply_watermark


def apply_watermark(doc: fitz.Document) -> int:
    """Наложить watermark на все страницы; текст из конфига."""
    return _apply_watermark(doc, text=get_watermark_text(), font_size=get_watermark_font_size())


def apply_watermark_if_needed(doc: fitz.Document, decision: AccessDecision) -> bool:
    """Watermark iff нет watermark-free доступа. Вызывать непосредственно перед сохранением документа."""
    if decision.has_watermark_free_access:
        return False
    apply_watermark(doc)
    return True
