"""
Blob storage on the local filesystem, organised in buckets with per-bucket
size caps and MIME allow-lists.

Object paths follow `{ownerId}/{contextId}/{timestampMillis}_{sanitizedFileName}`.
Uploads retry on I/O errors with exponential backoff and jitter; nothing else retries.
"""
import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_random_exponential

from leave_management.core.config import settings
from leave_management.core.exceptions import (
    BucketNotFoundError,
    FileSizeError,
    FileTypeError,
    NotFoundError,
    StorageError,
    StorageQuotaExceededError,
    ValidationError,
)
from leave_management.models.leave_document import LEAVE_DOCUMENT_MIME_TYPES, MAX_LEAVE_DOCUMENT_SIZE

logger = logging.getLogger(__name__)

LEAVE_DOCUMENTS_BUCKET = "leave-documents"
COMPANY_DOCUMENTS_BUCKET = "company-documents"
PROFILE_PHOTOS_BUCKET = "profile-photos"

MAX_FILE_NAME_LENGTH = 255


@dataclass(frozen=True)
class BucketConfig:
    name: str
    public: bool
    max_file_size: int
    allowed_mime_types: Tuple[str, ...]
    allowed_extensions: Tuple[str, ...]


BUCKETS: Dict[str, BucketConfig] = {
    LEAVE_DOCUMENTS_BUCKET: BucketConfig(
        name=LEAVE_DOCUMENTS_BUCKET,
        public=False,
        max_file_size=MAX_LEAVE_DOCUMENT_SIZE,
        allowed_mime_types=LEAVE_DOCUMENT_MIME_TYPES,
        allowed_extensions=(".pdf", ".jpg", ".jpeg", ".png", ".doc", ".docx"),
    ),
    COMPANY_DOCUMENTS_BUCKET: BucketConfig(
        name=COMPANY_DOCUMENTS_BUCKET,
        public=False,
        max_file_size=50 * 1024 * 1024,
        allowed_mime_types=(
            "application/pdf",
            "application/msword",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "application/vnd.ms-excel",
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "image/jpeg",
            "image/jpg",
            "image/png",
            "image/gif",
            "text/plain",
        ),
        allowed_extensions=(".pdf", ".doc", ".docx", ".xls", ".xlsx", ".jpg", ".jpeg", ".png", ".gif", ".txt"),
    ),
    PROFILE_PHOTOS_BUCKET: BucketConfig(
        name=PROFILE_PHOTOS_BUCKET,
        public=True,
        max_file_size=2 * 1024 * 1024,
        allowed_mime_types=("image/jpeg", "image/jpg", "image/png", "image/webp"),
        allowed_extensions=(".jpg", ".jpeg", ".png", ".webp"),
    ),
}


@dataclass
class IncomingFile:
    file_name: str
    content_type: Optional[str]
    content: bytes

    @classmethod
    def from_upload(cls, upload, max_size: int) -> "IncomingFile":
        """
        Reads a multipart upload, stopping one byte past `max_size` so an oversized
        file is rejected by `validate` without being loaded whole.
        """
        upload.file.seek(0)
        return cls(
            file_name=upload.filename or "",
            content_type=upload.content_type,
            content=upload.file.read(max_size + 1),
        )


def sanitize_file_name(file_name: str) -> str:
    """Keep letters, digits, dot, dash and underscore; everything else becomes '_'."""
    base = os.path.basename((file_name or "").replace("\\", "/"))
    cleaned = re.sub(r"[^A-Za-z0-9._-]", "_", base)
    cleaned = re.sub(r"_+", "_", cleaned).strip("._")
    if not cleaned:
        return "file"
    stem, ext = os.path.splitext(cleaned)
    # leave room for the timestamp prefix
    return stem[:200 - len(ext)] + ext


def build_object_path(owner_id, context_id, file_name: str, timestamp_ms: Optional[int] = None) -> str:
    timestamp_ms = timestamp_ms if timestamp_ms is not None else int(time.time() * 1000)
    return f"{owner_id}/{context_id}/{timestamp_ms}_{sanitize_file_name(file_name)}"


class LocalStorage:
    def __init__(self, root: str):
        self.root = Path(root)

    def bucket(self, name: str) -> BucketConfig:
        config = BUCKETS.get(name)
        if config is None:
            raise BucketNotFoundError(name)
        return config

    def validate(self, bucket: str, file_name: str, content_type: Optional[str], size: int) -> None:
        """Client-facing checks, run before any bytes are written."""
        config = self.bucket(bucket)
        if not file_name or len(file_name) > MAX_FILE_NAME_LENGTH:
            raise ValidationError(
                "Invalid file name",
                fields={"file_name": f"must be 1-{MAX_FILE_NAME_LENGTH} characters"},
            )
        if size <= 0:
            raise FileSizeError(f"File '{file_name}' is empty")
        if size > config.max_file_size:
            raise FileSizeError(
                f"File '{file_name}' exceeds the {config.max_file_size // (1024 * 1024)}MB limit"
            )
        if content_type not in config.allowed_mime_types:
            raise FileTypeError(f"File type '{content_type}' is not allowed")
        extension = os.path.splitext(file_name)[1].lower()
        if extension not in config.allowed_extensions:
            raise FileTypeError(f"File extension '{extension or '(none)'}' is not allowed")

    def upload(self, bucket: str, object_path: str, content: bytes, content_type: Optional[str]) -> str:
        """Bucket-level enforcement, independent of `validate`, then a retried write."""
        config = self.bucket(bucket)
        if len(content) > config.max_file_size:
            raise StorageQuotaExceededError(bucket, config.max_file_size)
        if content_type not in config.allowed_mime_types:
            raise FileTypeError(f"Bucket '{bucket}' does not accept '{content_type}'")

        target = self._resolve(bucket, object_path)
        try:
            self._write_with_retry(target, content)
        except (OSError, RetryError) as exc:
            logger.error(f"Upload to {bucket}/{object_path} failed: {exc}")
            raise StorageError(f"Upload failed after {settings.storage_upload_attempts} attempts") from exc
        logger.info(f"Stored object {bucket}/{object_path} ({len(content)} bytes)")
        return object_path

    def open_path(self, bucket: str, object_path: str) -> Path:
        target = self._resolve(bucket, object_path)
        if not target.is_file():
            raise NotFoundError("Stored file")
        return target

    def open_public(self, bucket: str, object_path: str) -> Path:
        """Like `open_path`, for unauthenticated reads; private buckets look empty."""
        if not self.bucket(bucket).public:
            raise NotFoundError("Stored file")
        return self.open_path(bucket, object_path)

    def remove(self, bucket: str, object_path: str) -> bool:
        """Best-effort delete; a missing object is not an error."""
        try:
            target = self._resolve(bucket, object_path)
            target.unlink(missing_ok=True)
            return True
        except OSError as exc:
            logger.warning(f"Could not remove {bucket}/{object_path}: {exc}")
            return False

    @retry(
        stop=stop_after_attempt(settings.storage_upload_attempts),
        wait=wait_random_exponential(multiplier=0.05, max=2),
        retry=retry_if_exception_type(OSError),
        reraise=True,
    )
    def _write_with_retry(self, target: Path, content: bytes) -> None:
        self._write_once(target, content)

    def _write_once(self, target: Path, content: bytes) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        partial = target.with_name(target.name + ".part")
        with open(partial, "wb") as f:
            f.write(content)
        os.replace(partial, target)

    def _resolve(self, bucket: str, object_path: str) -> Path:
        bucket_root = (self.root / self.bucket(bucket).name).resolve()
        target = (bucket_root / object_path).resolve()
        if bucket_root not in target.parents:
            raise ValidationError("Invalid storage path", fields={"storage_path": "escapes the bucket"})
        return target


_storage: Optional[LocalStorage] = None


def get_storage() -> LocalStorage:
    global _storage
    if _storage is None:
        _storage = LocalStorage(settings.storage_root)
    return _storage
