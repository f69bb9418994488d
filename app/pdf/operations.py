"""
PDF transforms on top of PyMuPDF.

Каждая операция получает провалидированные файлы и AccessDecision; watermark
накладывается только через apply_watermark_if_needed непосредственно перед сохранением.
Ошибки разбора входа поднимаются как PdfTransformError-подклассы (категория -> HTTP статус).
"""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass

import fitz  # PyMuPDF
from PIL import Image, UnidentifiedImageError

from app.paywall.models import AccessDecision
from app.paywall.watermark import apply_watermark_if_needed
from app.pdf.errors import CorruptFileError, EncryptedPdfError, InvalidOperationParamsError
from app.schemas.operations import Annotation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputFile:
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        return re.sub(r"\.pdf$", "", self.name, flags=re.IGNORECASE) or "document"


@dataclass(frozen=True)
class SplitPart:
    filename: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


COMPRESSION_SETTINGS = {
    "low": {"remove_annotations": True, "garbage": 4, "clean": True, "strip_metadata": True},
    "medium": {"remove_annotations": True, "garbage": 3, "clean": True, "strip_metadata": False},
    "high": {"remove_annotations": False, "garbage": 2, "clean": False, "strip_metadata": False},
    "maximum": {"remove_annotations": True, "garbage": 4, "clean": True, "strip_metadata": True},
}


def open_pdf(data: bytes, name: str) -> fitz.Document:
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        logger.info("pdf_open_failed", extra={"error": str(e)})
        raise CorruptFileError(f"Failed to process {name}. Please ensure it's a valid PDF.") from e
    if doc.needs_pass:
        doc.close()
        raise EncryptedPdfError(f"{name} is password-protected. Remove the password and try again.")
    if doc.page_count == 0:
        doc.close()
        raise CorruptFileError(f"{name} has no pages")
    return doc


def _save(doc: fitz.Document, *, garbage: int = 3, clean: bool = False) -> bytes:
    return doc.tobytes(garbage=garbage, deflate=True, clean=clean)


def merge_pdfs(files: list[InputFile], decision: AccessDecision) -> bytes:
    merged = fitz.open()
    try:
        for f in files:
            src = open_pdf(f.data, f.name)
            try:
                merged.insert_pdf(src)
            finally:
                src.close()
        apply_watermark_if_needed(merged, decision)
        return _save(merged)
    finally:
        merged.close()


def _parse_int(value: str | None, default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


def split_points(mode: str, total_pages: int, *, pages: str = "", start: str | None = None,
                 end: str | None = None, every: str | None = None) -> list[int]:
    """
    Точки разреза (1-based номер первой страницы следующей части).
    pages: «3,5» -> части [1-2], [3-4], [5-N]; range: каждая страница диапазона - точка;
    every: каждые N страниц.
    """
    if mode == "pages":
        points = [_parse_int(p, 0) for p in (pages or "").split(",")]
        points = [p for p in points if p > 0]
        if not points:
            raise InvalidOperationParamsError("No valid page numbers specified")
    elif mode == "range":
        range_start = _parse_int(start, 1)
        range_end = _parse_int(end, 1)
        if range_start <= 0 or range_end < range_start:
            raise InvalidOperationParamsError("No valid page numbers specified")
        points = list(range(range_start, range_end + 1))
    elif mode == "every":
        every_n = _parse_int(every, 1)
        if every_n <= 0:
            raise InvalidOperationParamsError("Split interval must be a positive number")
        points = list(range(every_n + 1, total_pages + 1, every_n))
    else:
        raise InvalidOperationParamsError(f"Unknown split mode: {mode}")

    valid = sorted({p for p in points if 0 < p <= total_pages})
    if not valid and mode != "every":
        raise InvalidOperationParamsError("No valid page numbers for splitting")
    return valid


def split_pdf(
    file: InputFile,
    decision: AccessDecision,
    mode: str = "pages",
    *,
    pages: str = "",
    start: str | None = None,
    end: str | None = None,
    every: str | None = None,
) -> list[SplitPart]:
    src = open_pdf(file.data, file.name)
    try:
        total = src.page_count
        points = split_points(mode, total, pages=pages, start=start, end=end, every=every)
        boundaries = [1, *[p for p in points if p > 1], total + 1]
        parts: list[SplitPart] = []
        for i in range(len(boundaries) - 1):
            first, last = boundaries[i], boundaries[i + 1] - 1
            if first > last:
                continue
            part = fitz.open()
            try:
                part.insert_pdf(src, from_page=first - 1, to_page=last - 1)
                apply_watermark_if_needed(part, decision)
                parts.append(SplitPart(filename=f"{file.stem}_part_{len(parts) + 1}.pdf", data=_save(part)))
            finally:
                part.close()
    finally:
        src.close()
    if not parts:
        raise InvalidOperationParamsError("No documents could be created")
    return parts


def compress_pdf(file: InputFile, decision: AccessDecision, quality: str = "medium") -> bytes:
    if quality not in COMPRESSION_SETTINGS:
        quality = "medium"
    settings = COMPRESSION_SETTINGS[quality]
    doc = open_pdf(file.data, file.name)
    try:
        if settings["remove_annotations"]:
            for page in doc:
                annot = page.first_annot
                while annot:
                    annot = page.delete_annot(annot)
        if settings["strip_metadata"]:
            doc.del_xml_metadata()
        doc.set_metadata({
            "creator": "Quikpdf.pro",
            "producer": f"Quikpdf.pro - {quality} compression",
        })
        apply_watermark_if_needed(doc, decision)
        return doc.tobytes(
            garbage=settings["garbage"],
            deflate=True,
            deflate_images=True,
            deflate_fonts=True,
            clean=settings["clean"],
        )
    finally:
        doc.close()


def rearrange_pdf(file: InputFile, decision: AccessDecision, page_order: list[int]) -> bytes:
    src = open_pdf(file.data, file.name)
    out = fitz.open()
    try:
        for number in page_order:
            if 0 < number <= src.page_count:
                out.insert_pdf(src, from_page=number - 1, to_page=number - 1)
        if out.page_count == 0:
            raise InvalidOperationParamsError("No valid pages in page order")
        apply_watermark_if_needed(out, decision)
        return _save(out)
    finally:
        out.close()
        src.close()


def annotate_pdf(file: InputFile, decision: AccessDecision, annotations: list[Annotation]) -> bytes:
    doc = open_pdf(file.data, file.name)
    try:
        for annotation in annotations:
            index = annotation.page_number - 1
            if index >= doc.page_count:
                continue
            try:
                _draw_annotation(doc[index], annotation)
            except (RuntimeError, ValueError):
                # одна битая аннотация не должна ломать остальные
                logger.warning("annotation_draw_failed", extra={"error": annotation.type}, exc_info=True)
        apply_watermark_if_needed(doc, decision)
        return _save(doc)
    finally:
        doc.close()


def _draw_annotation(page: fitz.Page, a: Annotation) -> None:
    color = a.rgb()
    stroke = a.stroke_width or 2
    if a.type == "text":
        if not a.text:
            return
        size = a.font_size or 16
        page.insert_text(fitz.Point(a.x, a.y + size), a.text, fontsize=size, fontname="helv",
                         color=color, fill_opacity=a.opacity)
    elif a.type in ("rectangle", "highlight"):
        if not a.width or not a.height:
            return
        rect = fitz.Rect(a.x, a.y, a.x + a.width, a.y + a.height)
        if a.type == "highlight":
            page.draw_rect(rect, color=None, fill=color, fill_opacity=a.opacity * 0.4, width=0)
        else:
            page.draw_rect(rect, color=color, width=stroke, stroke_opacity=a.opacity)
    elif a.type == "circle":
        if not a.width:
            return
        radius = a.width / 2
        page.draw_circle(fitz.Point(a.x + radius, a.y + radius), radius, color=color, width=stroke,
                         stroke_opacity=a.opacity)
    elif a.type in ("line", "arrow"):
        if a.width is None or a.height is None:
            return
        page.draw_line(fitz.Point(a.x, a.y), fitz.Point(a.x + a.width, a.y + a.height), color=color,
                       width=stroke, stroke_opacity=a.opacity)
    elif a.type == "drawing":
        points = [fitz.Point(p["x"], p["y"]) for p in (a.points or []) if "x" in p and "y" in p]
        if len(points) >= 2:
            page.draw_polyline(points, color=color, width=stroke, stroke_opacity=a.opacity)


def images_to_pdf(files: list[InputFile], decision: AccessDecision) -> bytes:
    doc = fitz.open()
    try:
        for f in files:
            jpeg = _normalize_image(f)
            img_doc = fitz.open(stream=jpeg, filetype="jpeg")
            try:
                rect = img_doc[0].rect
            finally:
                img_doc.close()
            page = doc.new_page(width=rect.width, height=rect.height)
            page.insert_image(page.rect, stream=jpeg)
        apply_watermark_if_needed(doc, decision)
        return _save(doc)
    finally:
        doc.close()


def _normalize_image(f: InputFile) -> bytes:
    """RGB JPEG: PDF не умеет альфа-канал/палитру напрямую."""
    try:
        with Image.open(io.BytesIO(f.data)) as img:
            if img.mode != "RGB":
                img = img.convert("RGB")
            buf = io.BytesIO()
            img.save(buf, "JPEG", quality=92)
            return buf.getvalue()
    except (UnidentifiedImageError, OSError) as e:
        raise CorruptFileError(f"File {f.name} is not a valid image") from e


def analyze_pdf(file: InputFile) -> dict:
    try:
        doc = fitz.open(stream=file.data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise CorruptFileError(f"Failed to process {file.name}. Please ensure it's a valid PDF.") from e
    try:
        info = {
            "page_count": doc.page_count,
            "encrypted": bool(doc.needs_pass),
            "file_size": file.size,
            "title": None,
            "author": None,
            "page_width": None,
            "page_height": None,
        }
        if not doc.needs_pass:
            metadata = doc.metadata or {}
            info["title"] = metadata.get("title") or None
            info["author"] = metadata.get("author") or None
            if doc.page_count:
                rect = doc[0].rect
                info["page_width"] = round(rect.width, 2)
                info["page_height"] = round(rect.height, 2)
        return info
    finally:
        doc.close()
