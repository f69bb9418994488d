from typing import Literal

from pydantic import BaseModel, Field, field_validator


OperationType = Literal[
    "MERGE",
    "SPLIT",
    "COMPRESS",
    "REARRANGE",
    "REACT_EDIT",
    "IMAGE_TO_PDF",
    "PDF_TO_WORD",
    "PDF_TO_EXCEL",
    "PDF_TO_POWERPOINT",
    "PDF_TO_IMAGE",
]

SplitMode = Literal["pages", "range", "every"]
CompressQuality = Literal["low", "medium", "high", "maximum"]


class Annotation(BaseModel):
    """Annotation drawn by the editor; coordinates are top-left based, in PDF points."""

    id: str | None = None
    type: Literal["text", "highlight", "rectangle", "circle", "line", "arrow", "drawing"]
    page_number: int = Field(..., alias="pageNumber", ge=1)
    x: float
    y: float
    width: float | None = None
    height: float | None = None
    text: str | None = None
    color: str = "#000000"
    font_size: float | None = Field(None, alias="fontSize")
    stroke_width: float | None = Field(None, alias="strokeWidth")
    opacity: float = Field(1.0, ge=0, le=1)
    points: list[dict[str, float]] | None = None

    model_config = {"populate_by_name": True}

    @field_validator("color")
    @classmethod
    def validate_color(cls, v: str) -> str:
        value = v.strip().lstrip("#")
        if len(value) != 6:
            raise ValueError("color must be a #rrggbb hex string")
        int(value, 16)
        return f"#{value.lower()}"

    def rgb(self) -> tuple[float, float, float]:
        value = self.color.lstrip("#")
        return tuple(int(value[i:i + 2], 16) / 255 for i in (0, 2, 4))


class SplitPartOut(BaseModel):
    filename: str
    data: str  # base64
    size: int


class SplitResponse(BaseModel):
    success: bool = True
    files: list[SplitPartOut]
    message: str


class CompressResponse(BaseModel):
    success: bool = True
    original_size: int = Field(..., serialization_alias="originalSize")
    compressed_size: int = Field(..., serialization_alias="compressedSize")
    compression_ratio: float = Field(..., serialization_alias="compressionRatio")
    data: str  # base64
    message: str


class AnalyzeResponse(BaseModel):
    page_count: int = Field(..., serialization_alias="pageCount")
    encrypted: bool
    file_size: int = Field(..., serialization_alias="fileSize")
    title: str | None = None
    author: str | None = None
    page_width: float | None = Field(None, serialization_alias="pageWidth")
    page_height: float | None = Field(None, serialization_alias="pageHeight")


class ServiceStatusOut(BaseModel):
    status: Literal["online", "degraded", "offline"]
    message: str
    service_url: str
