import base64
import re

from starlette.responses import JSONResponse, Response

from app.services.conversion.client import ConversionResult

_UNSAFE_FILENAME_CHARS = re.compile(r'[<>:"/\\|?*]')
_NON_ASCII = re.compile(r"[^\x00-\x7F]")


def sanitize_filename(filename: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", _NON_ASCII.sub("_", filename)) or "document.pdf"


def pdf_response(data: bytes, filename: str) -> Response:
    return Response(
        content=data,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{sanitize_filename(filename)}"'},
    )


def json_response(payload: dict) -> JSONResponse:
    return JSONResponse({"success": True, **payload})


def encode_b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def conversion_response(result: ConversionResult, fallback_filename: str) -> Response:
    headers = {
        "Content-Disposition": result.content_disposition
        or f'attachment; filename="{sanitize_filename(fallback_filename)}"'
    }
    return Response(content=result.content, media_type=result.content_type, headers=headers)
