# Overview: Local disk storage for uploaded payment slip files.

"""
Slip File Storage

The database transaction never covers the file: the file is written first,
and callers delete it again (compensation) when the slip row cannot be
committed.

FILE POLICY:
- JPG / PNG / WEBP / HEIC / HEIF images or PDF, extension and MIME type must agree
- 10 MiB cap by default (SLIP_MAX_BYTES)
- Stored as <epoch-ms>-<random>-<sanitised base>.<ext>
"""

from __future__ import annotations

import logging
import os
import secrets
from dataclasses import dataclass

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from ..errors import StorageError, ValidationError
from ..time_utils import epoch_millis

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "image/heic",
    "image/heif",
    "application/pdf",
}
ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".heic", ".heif", ".pdf"}

DEFAULT_MAX_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class StoredFile:
    reference: str  # public path saved on the slip, e.g. /uploads/slips/<name>
    path: str       # absolute path on disk
    size: int


class LocalSlipStorage:
    def __init__(self, root_dir: str, url_prefix: str = "/uploads/slips", max_bytes: int = DEFAULT_MAX_BYTES):
        self.root_dir = os.path.abspath(root_dir)
        self.url_prefix = "/" + url_prefix.strip("/")
        self.max_bytes = max_bytes

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self, upload: FileStorage) -> str:
        """Return the normalised extension, or raise ValidationError."""
        if upload is None or not upload.filename:
            raise ValidationError("Slip file is required")
        ext = os.path.splitext(upload.filename)[1].lower()
        mimetype = (upload.mimetype or "").lower()
        if ext not in ALLOWED_EXTENSIONS or mimetype not in ALLOWED_MIME_TYPES:
            raise ValidationError("Slip file must be JPG/PNG/WEBP/HEIC/PDF and at most 10MB")
        return ext

    def stored_name(self, original_filename: str, ext: str) -> str:
        base = os.path.splitext(os.path.basename(original_filename or ""))[0]
        safe_base = secure_filename(base).replace(".", "_")[:40] or "slip"
        return f"{epoch_millis()}-{secrets.randbelow(10**9)}-{safe_base}{ext}"

    # ------------------------------------------------------------------
    # Write / delete
    # ------------------------------------------------------------------
    def save(self, upload: FileStorage) -> StoredFile:
        ext = self.validate(upload)
        name = self.stored_name(upload.filename, ext)
        path = os.path.join(self.root_dir, name)
        try:
            os.makedirs(self.root_dir, exist_ok=True)
            upload.save(path)
            size = os.path.getsize(path)
        except OSError as exc:
            raise StorageError(f"Could not store slip file: {exc}") from exc

        if size > self.max_bytes:
            self._remove(path)
            raise ValidationError("Slip file must be JPG/PNG/WEBP/HEIC/PDF and at most 10MB")
        if size == 0:
            self._remove(path)
            raise ValidationError("Slip file is empty")

        logger.info("Stored slip file %s (%d bytes)", name, size)
        return StoredFile(reference=f"{self.url_prefix}/{name}", path=path, size=size)

    def resolve(self, reference: str) -> str | None:
        """Map a stored reference back to a path inside root_dir (None for foreign/absolute URLs)."""
        if not reference or "://" in reference:
            return None
        name = os.path.basename(reference.rstrip("/"))
        if not name or name != secure_filename(name):
            return None
        return os.path.join(self.root_dir, name)

    def delete(self, reference: str) -> bool:
        """Delete a stored file. Missing files are not an error (returns False)."""
        path = self.resolve(reference)
        if path is None or not os.path.exists(path):
            return False
        self._remove(path)
        return True

    def _remove(self, path: str) -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageError(f"Could not delete slip file: {exc}") from exc
