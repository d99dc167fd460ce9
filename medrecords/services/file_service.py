from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import PurePath
from typing import BinaryIO

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from medrecords.core.config import settings
from medrecords.core.errors import NotFound, StorageFailure, ValidationError
from medrecords.models.enums import FileCategory
from medrecords.models.medical_file import MedicalFile
from medrecords.repositories import medical_files as file_repo
from medrecords.schemas.files import MedicalFileView
from medrecords.storage.blob_storage import MEDICAL_FILES, BlobStorage

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass
class UploadedFile:
    """The binary part of a multipart upload, already read into memory."""

    data: bytes
    file_name: str
    content_type: str | None


@dataclass
class FileAccess:
    stream: BinaryIO
    file_name: str
    content_type: str


def normalize_content_type(content_type: str | None) -> str:
    """`"Image/PNG; charset=binary"` -> `"image/png"`; empty string when absent."""
    return (content_type or "").split(";")[0].strip().lower()


def file_url(record: MedicalFile) -> str:
    return f"{settings.api_prefix}/files/{record.id}/view"


def to_view(record: MedicalFile) -> MedicalFileView:
    return MedicalFileView(
        id=str(record.id),
        file_name=record.file_name,
        file_type=FileCategory(record.file_type).value,
        file_size=int(record.file_size),
        upload_date=record.upload_date,
        content_type=record.content_type or DEFAULT_CONTENT_TYPE,
        file_url=file_url(record),
    )


def validate_upload(size: int, file_name: str | None, content_type: str | None, declared_category: str | None) -> FileCategory:
    """The one authoritative check for medical-file uploads.

    Content type and extension must BOTH be allow-listed.
    """
    if size <= 0:
        raise ValidationError("No file provided")
    if size > settings.max_file_size:
        limit_mb = settings.max_file_size // 1024 // 1024
        raise ValidationError(f"File size exceeds maximum allowed size of {limit_mb} MB")

    extension = PurePath(file_name or "").suffix.lower()
    allowed_extensions = [e.lower() for e in settings.allowed_extensions]
    if extension not in allowed_extensions:
        raise ValidationError("File type not allowed. Allowed types: " + ", ".join(allowed_extensions))

    normalized_type = normalize_content_type(content_type)
    if normalized_type not in [c.lower() for c in settings.allowed_content_types]:
        raise ValidationError("File content type not allowed")

    return FileCategory.parse(declared_category)


def upload(
    db: Session,
    storage: BlobStorage,
    owner_id: str,
    declared_name: str | None,
    declared_category: str | None,
    upload_file: UploadedFile,
) -> MedicalFileView:
    category = validate_upload(len(upload_file.data), upload_file.file_name, upload_file.content_type, declared_category)
    display_name = (declared_name or "").strip()
    if not display_name:
        raise ValidationError("File name is required")

    content_type = normalize_content_type(upload_file.content_type) or DEFAULT_CONTENT_TYPE
    path = storage.save(upload_file.data, upload_file.file_name, content_type, MEDICAL_FILES)

    record = MedicalFile(
        file_name=display_name,
        file_type=category,
        file_path=path,
        file_size=len(upload_file.data),
        user_id=owner_id,
        content_type=content_type,
    )
    try:
        record = file_repo.create(db, record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Metadata write failed for %s, removing blob: %s", path, e)
        try:
            storage.delete(path)
        except StorageFailure:
            logger.warning("Orphaned blob left behind at %s", path)
        raise StorageFailure("An error occurred while uploading the file") from e

    logger.info("User %s uploaded file %s (%d bytes)", owner_id, record.id, record.file_size)
    return to_view(record)


def list_files(db: Session, owner_id: str) -> list[MedicalFileView]:
    return [to_view(r) for r in file_repo.list_for_owner(db, owner_id)]


def _owned(db: Session, file_id: str, requester_id: str) -> MedicalFile | None:
    record = file_repo.get_by_id(db, file_id)
    if record is None or record.user_id != requester_id:
        return None
    return record


def fetch_for_access(db: Session, storage: BlobStorage, file_id: str, requester_id: str) -> FileAccess | None:
    """Open a file for its owner. None when absent or owned by someone else."""
    record = _owned(db, file_id, requester_id)
    if record is None:
        return None
    try:
        stream = storage.open(record.file_path)
    except NotFound:
        logger.warning("Metadata %s points at a missing blob %s", record.id, record.file_path)
        return None
    return FileAccess(
        stream=stream,
        file_name=record.file_name or "download",
        content_type=record.content_type or DEFAULT_CONTENT_TYPE,
    )


def delete(db: Session, storage: BlobStorage, file_id: str, requester_id: str) -> bool:
    record = _owned(db, file_id, requester_id)
    if record is None:
        return False

    path = record.file_path
    try:
        file_repo.delete(db, record)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Metadata delete failed for %s, blob %s kept: %s", file_id, path, e)
        raise StorageFailure("An error occurred while deleting the file") from e

    # The row removal is pending until commit; a StorageFailure here rolls it back.
    try:
        removed = storage.delete(path)
    except StorageFailure:
        db.rollback()
        raise
    if not removed:
        logger.warning("Blob %s was already gone; removing metadata %s", path, file_id)

    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Metadata delete failed for %s after blob removal, dangling path %s: %s", file_id, path, e)
        raise StorageFailure("An error occurred while deleting the file") from e

    logger.info("User %s deleted file %s", requester_id, file_id)
    return True
