"""Filesystem-backed DocumentStore.

Stands in for blob storage in development and in the simulation: every
document is written under ``document_store_path`` with a content-addressed
name, and the SHA-256 of the bytes is returned alongside its public URL.
"""

from __future__ import annotations

import asyncio
import hashlib
from pathlib import Path

from charter_coordinator.domain.collaborators import StoredDocument
from charter_coordinator.domain.exceptions import CollaboratorUnavailableError
from charter_coordinator.logging_config import get_logger

logger = get_logger(__name__)


def sha256_hex(blob: bytes) -> str:
    return hashlib.sha256(blob).hexdigest()


class LocalDocumentStore:
    def __init__(self, root: str | Path, public_url: str) -> None:
        self._root = Path(root)
        self._public_url = public_url.rstrip("/")

    async def persist(self, blob: bytes, name: str) -> StoredDocument:
        content_hash = sha256_hex(blob)
        filename = f"{content_hash[:16]}-{Path(name).name}"
        try:
            await asyncio.to_thread(self._write, filename, blob)
        except OSError as exc:
            logger.error("documents.persist_failed", name=name, error=str(exc))
            raise CollaboratorUnavailableError("Document store", str(exc)) from exc

        logger.info("documents.persisted", name=filename, size=len(blob))
        return StoredDocument(
            url=f"{self._public_url}/{filename}", content_hash=content_hash
        )

    def _write(self, filename: str, blob: bytes) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        (self._root / filename).write_bytes(blob)
