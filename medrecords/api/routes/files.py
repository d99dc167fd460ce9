from typing import Annotated
from urllib.parse import quote

from fastapi import APIRouter, File, Form, UploadFile
from fastapi.responses import StreamingResponse

from medrecords.api.deps import ContextDep, DbDep, StorageDep, read_upload
from medrecords.core.config import settings
from medrecords.core.errors import NotFound
from medrecords.schemas.auth import MessageResponse
from medrecords.schemas.files import FileListResponse, FileResponse
from medrecords.services import file_service
from medrecords.storage.blob_storage import iter_blob

router = APIRouter()

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def content_disposition(kind: str, file_name: str) -> str:
    fallback = file_name.encode("ascii", "ignore").decode("ascii").replace('"', "").replace("\\", "") or "download"
    return f"{kind}; filename=\"{fallback}\"; filename*=UTF-8''{quote(file_name)}"


def _stream(db, storage, file_id: str, requester_id: str, kind: str) -> StreamingResponse:
    access = file_service.fetch_for_access(db, storage, file_id, requester_id)
    if access is None:
        raise NotFound()
    headers = dict(NO_CACHE_HEADERS)
    headers["Content-Disposition"] = content_disposition(kind, access.file_name)
    return StreamingResponse(iter_blob(access.stream), media_type=access.content_type, headers=headers)


@router.post("/upload", response_model=FileResponse)
def upload_file(
    db: DbDep,
    storage: StorageDep,
    ctx: ContextDep,
    file_name: Annotated[str, Form()],
    file_type: Annotated[str, Form()],
    file: Annotated[UploadFile, File()],
):
    uploaded = read_upload(file, settings.max_file_size)
    view = file_service.upload(db, storage, ctx.user_id, file_name, file_type, uploaded)
    return FileResponse(success=True, message="File uploaded successfully", file=view)


@router.get("", response_model=FileListResponse)
def list_files(db: DbDep, ctx: ContextDep):
    files = file_service.list_files(db, ctx.user_id)
    return FileListResponse(success=True, message="Files retrieved successfully", files=files)


@router.get("/{file_id}/view")
def view_file(file_id: str, db: DbDep, storage: StorageDep, ctx: ContextDep):
    return _stream(db, storage, file_id, ctx.user_id, "inline")


@router.get("/{file_id}/download")
def download_file(file_id: str, db: DbDep, storage: StorageDep, ctx: ContextDep):
    return _stream(db, storage, file_id, ctx.user_id, "attachment")


@router.delete("/{file_id}", response_model=MessageResponse)
def delete_file(file_id: str, db: DbDep, storage: StorageDep, ctx: ContextDep):
    if not file_service.delete(db, storage, file_id, ctx.user_id):
        raise NotFound()
    return MessageResponse(success=True, message="File deleted successfully")
