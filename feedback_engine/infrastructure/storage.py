"""
Blob storage for signature images.

Blobs are content-addressed: the reference handed back by ``store`` is
``blob://<sha256>``, so uploading the same image twice yields the same ref and
one file on disk.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Protocol

from .config import StorageConfig, get_settings
from .exceptions import StorageError
from .logging import get_logger

logger = get_logger(__name__)

REF_PREFIX = "blob://"


class BlobStore(Protocol):
    def store(self, data: bytes, content_type: str | None = None) -> str: ...

    def resolve(self, ref: str) -> str: ...


class LocalBlobStore:
    """Stores blobs as files under ``blob_dir`` and serves them from ``public_base_url``."""

    def __init__(self, config: StorageConfig | None = None):
        self.config = config or get_settings().storage
        self.root = Path(self.config.blob_dir)

    def _digest_from_ref(self, ref: str) -> str:
        if not ref.startswith(REF_PREFIX):
            raise StorageError(f"Unsupported blob reference {ref!r}", ref=ref)
        digest = ref[len(REF_PREFIX) :]
        if len(digest) != 64 or any(c not in "0123456789abcdef" for c in digest):
            raise StorageError(f"Malformed blob reference {ref!r}", ref=ref)
        return digest

    def store(self, data: bytes, content_type: str | None = None) -> str:
        if not data:
            raise StorageError("Refusing to store an empty blob")
        if len(data) > self.config.max_signature_bytes:
            raise StorageError(
                f"Blob of {len(data)} bytes exceeds limit of {self.config.max_signature_bytes}"
            )
        if content_type is not None and content_type not in self.config.allowed_content_types:
            raise StorageError(f"Content type {content_type!r} is not allowed")

        digest = hashlib.sha256(data).hexdigest()
        path = self.root / digest
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            if not path.exists():
                path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write blob: {e}") from e

        logger.info(f"Stored blob {digest[:12]} ({len(data)} bytes)")
        return f"{REF_PREFIX}{digest}"

    def resolve(self, ref: str) -> str:
        digest = self._digest_from_ref(ref)
        return f"{self.config.public_base_url.rstrip('/')}/{digest}"

    def path_for(self, ref: str) -> Path:
        return self.root / self._digest_from_ref(ref)
