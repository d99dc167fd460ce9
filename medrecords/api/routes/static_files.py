import logging
from urllib.parse import unquote

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from medrecords.api.deps import StorageDep
from medrecords.core.errors import NotFound, ValidationError
from medrecords.storage.blob_storage import PROFILES, guess_content_type, iter_blob

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/staticfiles/{file_path:path}")
def static_file(file_path: str, storage: StorageDep):
    """Public blobs (profile pictures). Medical files only leave through the owner-checked /files routes."""
    path = unquote(file_path)
    if not path.startswith(f"{PROFILES}/"):
        raise NotFound("File not found")
    try:
        if not storage.exists(path):
            raise NotFound("File not found")
        stream = storage.open(path)
    except ValidationError:
        logger.warning("Rejected static file path %r", file_path)
        raise NotFound("File not found")

    content_type = guess_content_type(path)
    headers = {"Cache-Control": "public, max-age=3600"} if content_type.startswith("image/") else {}
    return StreamingResponse(iter_blob(stream), media_type=content_type, headers=headers)
