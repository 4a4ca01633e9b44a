"""
Pitch-deck upload validation and file storage strategies.

Two strategies exist: ``InlineFileStore`` embeds the base64-encoded bytes in
the entry record (no external dependency, fine for the small uploads allowed
on serverless deployments) and ``ObjectFileStore`` writes the bytes to an
S3-compatible bucket. Both point ``file_url`` at the API's own retrieval
route, so readers never need to know where the bytes live.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import quote

from contest_backend.errors import (
    DependencyUnavailable,
    FileTooLarge,
    UnsupportedFileType,
)
from contest_backend.schemas import DeckEntry
from contest_backend.storage import StorageClient

logger = logging.getLogger(__name__)

ALLOWED_FILE_TYPES = {
    "application/pdf": ".pdf",
    "application/vnd.ms-powerpoint": ".ppt",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": ".pptx",
}


@dataclass
class UploadedFile:
    filename: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass
class FilePayload:
    data: bytes
    file_name: str
    file_type: str

    @property
    def size(self) -> int:
        return len(self.data)


def _format_megabytes(num_bytes: int) -> str:
    return f"{num_bytes // (1024 * 1024)}MB"


def validate_upload(upload: UploadedFile, max_bytes: int) -> None:
    """Trust the declared MIME type; check it against the allow-list and size cap."""
    if upload.content_type not in ALLOWED_FILE_TYPES:
        raise UnsupportedFileType(
            reason="file-invalid", details={"fileType": upload.content_type}
        )
    if upload.size > max_bytes:
        raise FileTooLarge(
            f"File size exceeds {_format_megabytes(max_bytes)} limit.",
            reason="file-invalid",
            details={"fileSize": upload.size, "maxBytes": max_bytes},
        )


def retrieval_url(api_prefix: str, payment_intent_id: str) -> str:
    return f"{api_prefix.rstrip('/')}/files/{payment_intent_id}"


_HEADER_BREAKS = re.compile(r"[\r\n]+")
_UNSAFE_ASCII = re.compile(r'[^\x20-\x7e]|["\\]')


def content_disposition(filename: str) -> str:
    """
    Attachment header carrying the original name.

    Header values are latin-1 on the wire, so the plain ``filename`` is an
    ASCII fallback and the real name goes in ``filename*`` (RFC 5987).
    """
    name = _HEADER_BREAKS.sub("", filename).strip() or "download"
    fallback = _UNSAFE_ASCII.sub("_", name)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name, safe='')}"


def _decode_inline(entry: DeckEntry) -> Optional[bytes]:
    if not entry.file_data:
        return None
    try:
        return base64.b64decode(entry.file_data, validate=True)
    except (binascii.Error, ValueError):
        logger.warning(
            "Stored file data for %s is not valid base64", entry.payment_intent_id
        )
        return None


def _payload(entry: DeckEntry, data: bytes) -> FilePayload:
    return FilePayload(
        data=data,
        file_name=entry.file_name or f"{entry.payment_intent_id}.bin",
        file_type=entry.file_type or "application/octet-stream",
    )


class FileStore(Protocol):
    """Stores uploaded deck bytes and reads them back for an entry."""

    def store(self, payment_intent_id: str, upload: UploadedFile) -> dict:
        ...

    def load(self, entry: DeckEntry) -> Optional[FilePayload]:
        ...

    def discard(self, stored: dict) -> None:
        """Drop bytes written by ``store`` for an entry that was never kept."""
        ...


class InlineFileStore:
    def __init__(self, api_prefix: str = "/api"):
        self.api_prefix = api_prefix

    def store(self, payment_intent_id: str, upload: UploadedFile) -> dict:
        return {
            "file_data": base64.b64encode(upload.data).decode("ascii"),
            "file_name": upload.filename,
            "file_type": upload.content_type,
            "file_size": upload.size,
            "file_url": retrieval_url(self.api_prefix, payment_intent_id),
        }

    def load(self, entry: DeckEntry) -> Optional[FilePayload]:
        data = _decode_inline(entry)
        return _payload(entry, data) if data is not None else None

    def discard(self, stored: dict) -> None:
        # Bytes only ever lived in the rejected record.
        return None


class ObjectFileStore:
    def __init__(self, storage: StorageClient, api_prefix: str = "/api"):
        self.storage = storage
        self.api_prefix = api_prefix

    @staticmethod
    def object_key(payment_intent_id: str, filename: str, attempt_id: str) -> str:
        """
        Every upload attempt gets its own key, so a request that later loses
        the race for an intent can never overwrite the stored deck.
        """
        safe_name = filename.replace("/", "_").replace("\\", "_") or "upload"
        return f"entries/{payment_intent_id}/{attempt_id}-{safe_name}"

    def store(self, payment_intent_id: str, upload: UploadedFile) -> dict:
        key = self.object_key(payment_intent_id, upload.filename, uuid.uuid4().hex)
        self.storage.put_bytes(key, upload.data, upload.content_type)
        logger.info("Stored %d bytes for %s at %s", upload.size, payment_intent_id, key)
        return {
            "file_path": key,
            "file_name": upload.filename,
            "file_type": upload.content_type,
            "file_size": upload.size,
            "file_url": retrieval_url(self.api_prefix, payment_intent_id),
        }

    def load(self, entry: DeckEntry) -> Optional[FilePayload]:
        if entry.file_path:
            try:
                return _payload(entry, self.storage.get_bytes(entry.file_path))
            except FileNotFoundError:
                logger.warning("Stored object %s is missing", entry.file_path)
                return None
        # Entries written while the inline strategy was configured.
        data = _decode_inline(entry)
        return _payload(entry, data) if data is not None else None

    def discard(self, stored: dict) -> None:
        key = stored.get("file_path")
        if not key:
            return
        try:
            self.storage.delete(key)
        except DependencyUnavailable:
            logger.warning("Could not delete orphaned object %s", key)
            return
        logger.info("Deleted orphaned object %s", key)
