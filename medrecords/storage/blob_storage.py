import logging
import mimetypes
import re
import shutil
import uuid
from pathlib import Path, PurePosixPath
from typing import BinaryIO

from medrecords.core.errors import NotFound, StorageFailure, ValidationError

logger = logging.getLogger(__name__)

MEDICAL_FILES = "medical-files"
PROFILES = "profiles"
SUBFOLDERS = (MEDICAL_FILES, PROFILES)

_INVALID_NAME_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(name: str | None) -> str:
    """Strip directory parts and characters that are invalid in file names, collapse whitespace."""
    base = re.split(r"[\\/]", name or "")[-1]
    base = _INVALID_NAME_CHARS.sub("", base)
    base = _WHITESPACE.sub("_", base.strip())
    stem, dot, extension = base.rpartition(".")
    if dot and extension and not stem.strip(". "):
        # A stem-less name such as ".png" keeps its extension
        return f"file.{extension}"
    base = base.strip(". ")
    return base or "file"


class BlobStorage:
    """Byte streams on the local filesystem, keyed by POSIX paths relative to `base_path`."""

    def __init__(self, base_path: str | Path):
        self.base_path = Path(base_path).resolve()
        for sub in SUBFOLDERS:
            (self.base_path / sub).mkdir(parents=True, exist_ok=True)

    def resolve(self, storage_path: str) -> Path:
        parts = PurePosixPath(storage_path.replace("\\", "/")).parts
        if not parts or parts[0] == "/" or ".." in parts or ":" in parts[0]:
            raise ValidationError("Invalid storage path")
        full = (self.base_path / Path(*parts)).resolve()
        if not full.is_relative_to(self.base_path):
            raise ValidationError("Invalid storage path")
        return full

    def save(self, data: bytes | BinaryIO, suggested_name: str, content_type: str | None, subfolder: str) -> str:
        if subfolder not in SUBFOLDERS:
            raise ValidationError(f"Unknown storage folder: {subfolder}")

        clean = sanitize_filename(suggested_name)
        stem, suffix = Path(clean).stem, Path(clean).suffix.lower()
        folder = self.base_path / subfolder

        # Exclusive create: a name collision retries with a new random component.
        for _ in range(5):
            name = f"{stem}_{uuid.uuid4().hex[:12]}{suffix}"
            target = folder / name
            try:
                with open(target, "xb") as out:
                    if isinstance(data, (bytes, bytearray)):
                        out.write(data)
                    else:
                        shutil.copyfileobj(data, out)
            except FileExistsError:
                continue
            except OSError as e:
                logger.error("Blob write failed for %s: %s", target, e)
                try:
                    target.unlink(missing_ok=True)
                except OSError:
                    logger.warning("Could not remove partial blob %s", target)
                raise StorageFailure() from e
            relative = f"{subfolder}/{name}"
            logger.debug("Stored blob %s (%s)", relative, content_type or "unknown type")
            return relative

        raise StorageFailure("Could not allocate a unique storage path")

    def open(self, storage_path: str) -> BinaryIO:
        full = self.resolve(storage_path)
        if not full.is_file():
            raise NotFound("File not found")
        try:
            return open(full, "rb")
        except OSError as e:
            raise StorageFailure() from e

    def read(self, storage_path: str) -> bytes:
        with self.open(storage_path) as f:
            return f.read()

    def delete(self, storage_path: str) -> bool:
        full = self.resolve(storage_path)
        if not full.is_file():
            return False
        try:
            full.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Blob delete failed for %s: %s", storage_path, e)
            raise StorageFailure() from e
        return True

    def exists(self, storage_path: str) -> bool:
        try:
            return self.resolve(storage_path).is_file()
        except ValidationError:
            return False


def guess_content_type(storage_path: str) -> str:
    content_type, _ = mimetypes.guess_type(storage_path)
    return content_type or "application/octet-stream"


def iter_blob(stream: BinaryIO, chunk_size: int = 64 * 1024):
    try:
        while chunk := stream.read(chunk_size):
            yield chunk
    finally:
        stream.close()
