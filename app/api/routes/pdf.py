"""
PDF tool routes. Каждый POST собирает файлы формы и отдаёт их PDFOperationService вместе с transform.
"""
import json
from collections.abc import Mapping

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile
from starlette.responses import Response

from app.api.deps import get_auth_context
from app.db.session import get_db
from app.errors.exceptions import FileValidationError
from app.paywall.claims import extract_one_time_claim
from app.paywall.models import AccessDecision, AuthContext
from app.pdf import operations as pdf_ops
from app.pdf.errors import InvalidOperationParamsError
from app.pdf.operations import InputFile
from app.schemas.operations import (
    AnalyzeResponse,
    Annotation,
    CompressResponse,
    ServiceStatusOut,
    SplitPartOut,
    SplitResponse,
)
from app.services.conversion import client as conversion
from app.services.operations.responses import (
    conversion_response,
    encode_b64,
    json_response,
    pdf_response,
)
from app.services.operations.service import OPERATIONS, PDFOperationService, Transform


router = APIRouter(prefix="/api/pdf", tags=["pdf"])

_annotations_adapter = TypeAdapter(list[Annotation])


async def read_upload(request: Request) -> tuple[list[InputFile], dict[str, str]]:
    """Файлы - все поля формы file/file0/file1...; остальные поля - параметры операции."""
    form = await request.form()
    files: list[InputFile] = []
    fields: dict[str, str] = {}
    for key, value in form.multi_items():
        if isinstance(value, UploadFile):
            if key.startswith("file"):
                files.append(
                    InputFile(
                        name=value.filename or "document.pdf",
                        content_type=(value.content_type or "").lower(),
                        data=await value.read(),
                    )
                )
        else:
            fields[key] = value
    return files, fields


async def _run(
    operation_type: str,
    request: Request,
    db: Session,
    auth: AuthContext,
    transform: Transform,
) -> Response:
    files, form = await read_upload(request)
    service = PDFOperationService(db, OPERATIONS[operation_type])
    claim = extract_one_time_claim(request)
    return await run_in_threadpool(service.handle, auth, claim, files, form, transform)


# ----- Transforms (files, decision, form) -> Response -----


def _merge(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    return pdf_response(pdf_ops.merge_pdfs(files, decision), "merged.pdf")


def _split(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    parts = pdf_ops.split_pdf(
        files[0],
        decision,
        form.get("mode") or "pages",
        pages=form.get("pages", ""),
        start=form.get("start"),
        end=form.get("end"),
        every=form.get("every"),
    )
    count = len(parts)
    body = SplitResponse(
        files=[SplitPartOut(filename=p.filename, data=encode_b64(p.data), size=p.size) for p in parts],
        message=f"PDF split into {count} document{'s' if count > 1 else ''}",
    )
    return json_response(body.model_dump(exclude={"success"}))


def _compress(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    quality = form.get("quality") or "medium"
    source = files[0]
    data = pdf_ops.compress_pdf(source, decision, quality)
    ratio = round((source.size - len(data)) / source.size * 100, 1) if source.size else 0.0
    body = CompressResponse(
        original_size=source.size,
        compressed_size=len(data),
        compression_ratio=ratio,
        data=encode_b64(data),
        message=f"PDF compressed successfully. Reduced size by {ratio}%",
    )
    return json_response(body.model_dump(by_alias=True, exclude={"success"}))


def _rearrange(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    raw = form.get("pageOrder")
    if not raw:
        raise InvalidOperationParamsError("Page order is required")
    try:
        page_order = [int(p) for p in json.loads(raw)]
    except (ValueError, TypeError) as e:
        raise InvalidOperationParamsError("Invalid page order") from e
    data = pdf_ops.rearrange_pdf(files[0], decision, page_order)
    return pdf_response(data, f"rearranged-{files[0].name}")


def _react_edit(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    raw = form.get("annotations") or "[]"
    try:
        annotations = _annotations_adapter.validate_json(raw)
    except ValidationError as e:
        raise InvalidOperationParamsError("Invalid annotations data") from e
    data = pdf_ops.annotate_pdf(files[0], decision, annotations)
    return pdf_response(data, f"edited-{files[0].name}")


def _image_to_pdf(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
    return pdf_response(pdf_ops.images_to_pdf(files, decision), "images-to-pdf.pdf")


def _conversion(operation_type: str, extension: str) -> Transform:
    kind = conversion.CONVERSION_KINDS[operation_type]

    def transform(files: list[InputFile], decision: AccessDecision, form: Mapping[str, str]) -> Response:
        source = files[0]
        options = _image_options(form) if operation_type == "PDF_TO_IMAGE" else None
        result = conversion.convert(
            kind,
            source.name,
            source.data,
            has_watermark_free_access=decision.has_watermark_free_access,
            options=options,
        )
        return conversion_response(result, f"{source.stem}{extension}")

    return transform


def _image_options(form: Mapping[str, str]) -> dict[str, str]:
    fmt = (form.get("format") or "png").lower()
    if fmt not in conversion.IMAGE_FORMATS:
        raise InvalidOperationParamsError(f"Invalid format. Valid formats: {', '.join(conversion.IMAGE_FORMATS)}")
    try:
        dpi = int(form.get("dpi") or 300)
        quality = int(form.get("quality") or 95)
    except ValueError as e:
        raise InvalidOperationParamsError("DPI and quality must be numbers") from e
    if not 72 <= dpi <= 600:
        raise InvalidOperationParamsError("DPI must be between 72 and 600")
    if not 1 <= quality <= 100:
        raise InvalidOperationParamsError("Quality must be between 1 and 100")
    options = {"format": fmt, "dpi": str(dpi), "quality": str(quality)}
    if form.get("pages"):
        options["pages"] = form["pages"]
    return options


_pdf_to_word = _conversion("PDF_TO_WORD", ".docx")
_pdf_to_excel = _conversion("PDF_TO_EXCEL", ".xlsx")
_pdf_to_powerpoint = _conversion("PDF_TO_POWERPOINT", ".pptx")
_pdf_to_image = _conversion("PDF_TO_IMAGE", "_images.zip")


# ----- Routes -----


@router.post("/merge")
async def merge(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("MERGE", request, db, auth, _merge)


@router.post("/split")
async def split(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("SPLIT", request, db, auth, _split)


@router.post("/compress")
async def compress(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("COMPRESS", request, db, auth, _compress)


@router.post("/rearrange")
async def rearrange(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("REARRANGE", request, db, auth, _rearrange)


@router.post("/react-edit")
async def react_edit(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("REACT_EDIT", request, db, auth, _react_edit)


@router.post("/image-to-pdf")
async def image_to_pdf(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("IMAGE_TO_PDF", request, db, auth, _image_to_pdf)


@router.post("/pdf-to-word")
async def pdf_to_word(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("PDF_TO_WORD", request, db, auth, _pdf_to_word)


@router.post("/pdf-to-excel")
async def pdf_to_excel(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("PDF_TO_EXCEL", request, db, auth, _pdf_to_excel)


@router.post("/pdf-to-powerpoint")
async def pdf_to_powerpoint(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("PDF_TO_POWERPOINT", request, db, auth, _pdf_to_powerpoint)


@router.post("/pdf-to-image")
async def pdf_to_image(request: Request, db: Session = Depends(get_db), auth: AuthContext = Depends(get_auth_context)):
    return await _run("PDF_TO_IMAGE", request, db, auth, _pdf_to_image)


async def _single_pdf(request: Request) -> InputFile:
    files, _ = await read_upload(request)
    if not files:
        raise FileValidationError("No file uploaded")
    return files[0]


@router.post("/analyze", response_model=AnalyzeResponse, response_model_by_alias=True)
async def analyze(request: Request) -> AnalyzeResponse:
    """Метаданные PDF без paywall: страницы, размер, шифрование."""
    source = await _single_pdf(request)
    info = await run_in_threadpool(pdf_ops.analyze_pdf, source)
    return AnalyzeResponse(**info)


@router.post("/rearrange/analyze")
async def rearrange_analyze(request: Request) -> dict:
    source = await _single_pdf(request)
    info = await run_in_threadpool(pdf_ops.analyze_pdf, source)
    return {"totalPages": info["page_count"], "message": "PDF analyzed successfully"}


@router.get("/service-status", response_model=ServiceStatusOut)
def service_status() -> ServiceStatusOut:
    return ServiceStatusOut(**conversion.check_service_status())
