"""
Local-disk storage for uploaded case documents.

Files are written under ``settings.upload_dir`` with a generated name; the
user-supplied original name is only ever kept as metadata. Rows store the
path relative to the storage root so the root can move between hosts.
"""

import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from fastapi import UploadFile
from starlette.concurrency import run_in_threadpool

from app.common.base_models import utcnow
from app.common.errors import ValidationFailed
from app.config import settings

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "text/plain",
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
    }
)

CHUNK_SIZE = 1024 * 1024

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")


class UnsupportedFileType(ValidationFailed):
    def __init__(self, mime_type: Optional[str]):
        super().__init__(
            "Invalid file type. Only PDF, Word, Excel, text, and image files are allowed.",
            details=[{"field": "document", "mimeType": mime_type}],
        )


class FileTooLarge(ValidationFailed):
    def __init__(self, max_bytes: int):
        super().__init__(
            "File size exceeds the maximum allowed limit",
            details=[{"field": "document", "maxBytes": max_bytes}],
        )


@dataclass(frozen=True)
class StoredFile:
    filename: str
    relative_path: str
    size: int


def normalize_mime_type(content_type: Optional[str]) -> str:
    return (content_type or "").split(";", 1)[0].strip().lower()


def is_allowed_mime_type(content_type: Optional[str]) -> bool:
    return normalize_mime_type(content_type) in ALLOWED_MIME_TYPES


def safe_extension(original_name: Optional[str]) -> str:
    suffix = Path(original_name or "").suffix
    return suffix.lower() if _EXTENSION_RE.match(suffix) else ""


class LocalFileStorage:
    def __init__(self, root: str | Path, max_bytes: int, chunk_size: int = CHUNK_SIZE):
        self.root = Path(root).resolve()
        self.max_bytes = max_bytes
        self.chunk_size = chunk_size

    def path_for(self, relative_path: str) -> Path:
        path = (self.root / relative_path).resolve()
        if not path.is_relative_to(self.root):
            raise ValueError(f"Path escapes storage root: {relative_path!r}")
        return path

    def exists(self, relative_path: str) -> bool:
        try:
            return self.path_for(relative_path).is_file()
        except ValueError:
            return False

    async def save(self, upload: UploadFile) -> StoredFile:
        """Stream an upload to disk, removing any partial file on failure."""
        now = utcnow()
        filename = f"{uuid.uuid4().hex}{safe_extension(upload.filename)}"
        relative_path = f"{now:%Y}/{now:%m}/{filename}"
        target = self.path_for(relative_path)
        await run_in_threadpool(target.parent.mkdir, parents=True, exist_ok=True)

        # Disk IO stays off the event loop.
        size = 0
        try:
            fh = await run_in_threadpool(open, target, "wb")
            try:
                while chunk := await upload.read(self.chunk_size):
                    size += len(chunk)
                    if size > self.max_bytes:
                        raise FileTooLarge(self.max_bytes)
                    await run_in_threadpool(fh.write, chunk)
            finally:
                await run_in_threadpool(fh.close)
        except BaseException:
            target.unlink(missing_ok=True)
            raise

        return StoredFile(filename=filename, relative_path=relative_path, size=size)

    def remove(self, relative_path: str) -> bool:
        """Delete a stored file. Returns False when it was already gone."""
        try:
            path = self.path_for(relative_path)
        except ValueError:
            logger.warning("Refusing to delete path outside storage root: %s", relative_path)
            return False
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def remove_many(self, relative_paths: Iterable[str]) -> int:
        removed = 0
        for relative_path in relative_paths:
            try:
                if self.remove(relative_path):
                    removed += 1
                else:
                    logger.info("Stored file already missing: %s", relative_path)
            except OSError:
                logger.exception("Could not delete stored file %s", relative_path)
        return removed


_storage: Optional[LocalFileStorage] = None


def get_storage() -> LocalFileStorage:
    global _storage
    if _storage is None:
        _storage = LocalFileStorage(settings.upload_dir, settings.max_upload_size)
        _storage.root.mkdir(parents=True, exist_ok=True)
    return _storage
