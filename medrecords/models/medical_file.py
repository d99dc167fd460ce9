import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, Enum, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medrecords.models.base import Base, utcnow
from medrecords.models.enums import FileCategory


class MedicalFile(Base):
    __tablename__ = "medical_files"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    file_name: Mapped[str] = mapped_column(String, nullable=False)  # user-supplied display name
    file_type: Mapped[FileCategory] = mapped_column(Enum(FileCategory, native_enum=False), nullable=False)
    file_path: Mapped[str] = mapped_column(String, unique=True, nullable=False)  # key into blob storage
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    upload_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    user_id: Mapped[str] = mapped_column(String, ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
    content_type: Mapped[str] = mapped_column(String, nullable=False, default="")

    user = relationship("User", back_populates="medical_files")
