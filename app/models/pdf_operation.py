from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import BigInteger, Column, DateTime, String

from app.db.base import Base


class PdfOperation(Base):
    __tablename__ = "pdf_operations"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    type = Column(String, nullable=False, index=True)  # MERGE, SPLIT, COMPRESS, ...
    file_name = Column(String, nullable=True)
    file_size = Column(BigInteger, nullable=False, default=0)  # суммарный размер входных файлов
    status = Column(String, nullable=False, default="COMPLETED")  # COMPLETED / FAILED / PROCESSING
    result_url = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
