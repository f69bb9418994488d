"""Error handlers for the application"""
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.errors.exceptions import AppError
from app.pdf.errors import PdfTransformError

logger = logging.getLogger(__name__)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error", extra={"path": request.url.path, "status_code": exc.status_code, "error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, **exc.extra},
        headers=exc.headers,
    )


async def pdf_transform_error_handler(request: Request, exc: PdfTransformError) -> JSONResponse:
    logger.info("pdf_transform_error", extra={"path": request.url.path, "error": exc.category})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("db_error", extra={"path": request.url.path, "error": str(exc)})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(PdfTransformError, pdf_transform_error_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
