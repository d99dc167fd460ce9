from collections.abc import Generator
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated

from fastapi import Depends, Request, UploadFile
from sqlalchemy.orm import Session

from medrecords.core.config import settings
from medrecords.core.errors import Unauthorized
from medrecords.database.session import SessionLocal
from medrecords.schemas.auth import PublicUser
from medrecords.services import auth_service
from medrecords.services.file_service import UploadedFile
from medrecords.storage.blob_storage import BlobStorage


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@lru_cache
def get_storage() -> BlobStorage:
    return BlobStorage(settings.storage_base_path)


DbDep = Annotated[Session, Depends(get_db)]
StorageDep = Annotated[BlobStorage, Depends(get_storage)]


def read_upload(upload: UploadFile, limit: int) -> UploadedFile:
    # One byte past the limit is enough for the service to reject oversized files.
    data = upload.file.read(limit + 1)
    return UploadedFile(data=data, file_name=upload.filename or "", content_type=upload.content_type)


@dataclass(frozen=True)
class RequestContext:
    """Identity of the caller, resolved once per request from the session cookie."""

    user: PublicUser
    token: str

    @property
    def user_id(self) -> str:
        return self.user.id


def get_session_token(request: Request) -> str | None:
    return request.cookies.get(settings.session_cookie_name) or None


def get_optional_context(db: DbDep, request: Request) -> RequestContext | None:
    token = get_session_token(request)
    user = auth_service.resolve(db, token)
    if user is None:
        return None
    return RequestContext(user=user, token=token)


def get_request_context(context: Annotated[RequestContext | None, Depends(get_optional_context)]) -> RequestContext:
    if context is None:
        raise Unauthorized()
    return context


ContextDep = Annotated[RequestContext, Depends(get_request_context)]
