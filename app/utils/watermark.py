"""
Watermark utility - текст по центру внизу каждой страницы PDF.
Используется для результатов без watermark-free доступа.
"""
import logging

import fitz  # PyMuPDF

logger = logging.getLogger(__name__)

_FONT_NAME = "helv"
_GREY = (0.6, 0.6, 0.6)


def apply_watermark(
    doc: fitz.Document,
    text: str = "Created with Quikpdf.pro",
    font_size: int = 16,
    opacity: float = 0.8,
    bottom_margin: float = 20,
) -> int:
    """
    Рисует текст внизу каждой страницы документа (in place).

    Args:
        doc: открытый документ PyMuPDF
        text: текст watermark
        font_size: размер шрифта
        opacity: прозрачность заливки 0..1
        bottom_margin: отступ baseline от нижнего края страницы

    Returns:
        количество страниц с watermark
    """
    text_width = fitz.get_text_length(text, fontname=_FONT_NAME, fontsize=font_size)
    marked = 0
    for page in doc:
        rect = page.rect
        x = max((rect.width - text_width) / 2, 0)
        y = rect.height - bottom_margin
        page.insert_text(
            fitz.Point(x, y),
            text,
            fontsize=font_size,
            fontname=_FONT_NAME,
            color=_GREY,
            fill_opacity=opacity,
            overlay=True,
        )
        marked += 1
    logger.debug("watermark_applied", extra={"pages": marked})
    return marked
