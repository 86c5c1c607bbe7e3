"""Receipt image blob storage on the local filesystem."""

from __future__ import annotations

import mimetypes
import re
import time
from dataclasses import dataclass
from pathlib import Path

from .errors import NotFoundError, ValidationError

DEFAULT_ACCEPTED_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/webp"]
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024


@dataclass
class StoredBlob:
    path: str  # storage key, e.g. receipts/<user>/<ms>_<name>
    url: str


def sanitize_filename(filename: str) -> str:
    """Replace everything except letters, digits, dot and dash with '_'."""
    return re.sub(r"[^a-zA-Z0-9.-]", "_", filename or "image")


class BlobStorage:
    """Stores receipt images under ``root_dir`` keyed like a bucket path."""

    def __init__(
        self,
        root_dir: str | Path = "~/.config/receiptpal/blobs",
        base_url: str = "/images",
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        accepted_types: list[str] | None = None,
    ) -> None:
        self._root = Path(root_dir).expanduser()
        self._base_url = base_url.rstrip("/")
        self._max_file_size = max_file_size
        self._accepted_types = accepted_types or list(DEFAULT_ACCEPTED_TYPES)

    def validate_image(self, data: bytes, content_type: str | None) -> None:
        """Raises ValidationError for an empty, oversized or non-image upload."""
        if not data:
            raise ValidationError("No file provided")
        if content_type not in self._accepted_types:
            raise ValidationError(
                "Invalid file type. Please upload a JPEG, PNG, or WebP image."
            )
        if len(data) > self._max_file_size:
            raise ValidationError(
                f"File size exceeds {self._max_file_size // (1024 * 1024)}MB limit."
            )

    def _resolve(self, path: str) -> Path:
        full = (self._root / path).resolve()
        if not full.is_relative_to(self._root.resolve()):
            raise NotFoundError(f"Image not found: {path}")
        return full

    def upload_receipt_image(
        self,
        user_id: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> StoredBlob:
        """Validate and store a receipt image.

        Returns:
            The storage key and the URL it is served from.
        """
        content_type = content_type or mimetypes.guess_type(filename)[0]
        self.validate_image(data, content_type)

        timestamp = int(time.time() * 1000)
        key = f"receipts/{sanitize_filename(user_id)}/{timestamp}_{sanitize_filename(filename)}"
        target = self._resolve(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return StoredBlob(path=key, url=f"{self._base_url}/{key}")

    def read(self, path: str) -> bytes:
        """Return the bytes stored at ``path``.

        Raises:
            NotFoundError: If nothing is stored there.
        """
        target = self._resolve(path)
        if not target.is_file():
            raise NotFoundError(f"Image not found: {path}")
        return target.read_bytes()

    def delete(self, path: str) -> bool:
        """Delete a stored image. Returns False if it was already gone."""
        target = self._resolve(path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    @staticmethod
    def content_type(path: str) -> str:
        return mimetypes.guess_type(path)[0] or "image/jpeg"
