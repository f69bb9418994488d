"""
Transform errors. Категория ошибки определяет сообщение и HTTP-статус для клиента.
"""


class PdfTransformError(Exception):
    """Base transform failure (reported as 500 unless a subclass says otherwise)."""

    status_code = 500
    category = "internal"

    def __init__(self, message: str = "Internal server error") -> None:
        super().__init__(message)
        self.message = message


class CorruptFileError(PdfTransformError):
    """Input cannot be parsed (broken PDF or image)."""

    status_code = 400
    category = "corrupt"


class EncryptedPdfError(PdfTransformError):
    status_code = 400
    category = "password_protected"


class InvalidOperationParamsError(PdfTransformError):
    status_code = 400
    category = "invalid_params"


class ConversionUnavailableError(PdfTransformError):
    status_code = 503
    category = "service_unavailable"


class ConversionFailedError(PdfTransformError):
    """Conversion service answered with an error; its status is passed through."""

    status_code = 502
    category = "conversion_failed"

    def __init__(self, message: str = "Conversion failed", status_code: int | None = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code
