"""Remote document repositories.

The sync shell talks to the remote store only through the
``RemoteRepository`` protocol:

- ``GistRepository``: GitHub Gist, wrapping the blocking ``GistClient``
  with ``run_sync`` so requests run in worker threads.
- ``InMemoryRepository``: a dict-backed store with the same
  optimistic-concurrency rules, for tests and offline use.
"""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from typing import Protocol

from ..core.async_utils import run_sync
from ..core.client import GistClient, RemoteDocument
from ..errors import ConcurrentModificationError, NotFoundError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class RemoteRepository(Protocol):
    """Protocol that all remote document stores must satisfy."""

    async def create(self, description: str, content: str) -> RemoteDocument:
        ...  # pragma: no cover

    async def read(self, document_id: str) -> RemoteDocument:
        """Raises ``NotFoundError`` if the document does not exist."""
        ...  # pragma: no cover

    async def update(
        self,
        document_id: str,
        content: str,
        expected_version: str,
        description: str | None = None,
    ) -> RemoteDocument:
        """Raises ``ConcurrentModificationError`` on a stale version."""
        ...  # pragma: no cover

    async def exists(self, document_id: str) -> bool:
        ...  # pragma: no cover

    async def find_by_filename(self, filename: str) -> str | None:
        ...  # pragma: no cover

    async def whoami(self) -> str:
        """Account the store acts as; fails if the credentials are rejected."""
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# GitHub Gist
# ---------------------------------------------------------------------------


class GistRepository:
    """``RemoteRepository`` backed by the GitHub Gist API."""

    def __init__(self, client: GistClient) -> None:
        self.client = client

    async def create(self, description: str, content: str) -> RemoteDocument:
        return await run_sync(self.client.create, description, content)

    async def read(self, document_id: str) -> RemoteDocument:
        return await run_sync(self.client.read, document_id)

    async def update(
        self,
        document_id: str,
        content: str,
        expected_version: str,
        description: str | None = None,
    ) -> RemoteDocument:
        return await run_sync(
            self.client.update,
            document_id,
            content,
            expected_version,
            description,
        )

    async def exists(self, document_id: str) -> bool:
        return await run_sync(self.client.exists, document_id)

    async def find_by_filename(self, filename: str) -> str | None:
        return await run_sync(self.client.find_by_filename, filename)

    async def whoami(self) -> str:
        return await run_sync(self.client.validate_connection)


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class InMemoryRepository:
    """Dict-backed repository with version checks.

    Versions are increasing integers rendered as strings.  ``calls`` counts
    every operation by name so callers can assert how often the remote
    side was hit.

    Args:
        filename: Name of the bookmarks file each document holds.
    """

    def __init__(self, filename: str = "bookmarks.md") -> None:
        self.filename = filename
        self.documents: dict[str, dict] = {}
        self.calls: Counter[str] = Counter()
        self._ids = itertools.count(1)
        self._versions = itertools.count(1)

    def _next_version(self) -> str:
        return str(next(self._versions))

    def put(
        self,
        content: str,
        document_id: str | None = None,
        description: str = "",
        filename: str | None = None,
    ) -> RemoteDocument:
        """Store *content* directly, as another writer would."""
        document_id = document_id or f"doc-{next(self._ids)}"
        version = self._next_version()
        self.documents[document_id] = {
            "content": content,
            "version": version,
            "description": description,
            "filename": filename or self.filename,
        }
        return RemoteDocument(id=document_id, version=version)

    async def create(self, description: str, content: str) -> RemoteDocument:
        self.calls["create"] += 1
        document = self.put(content, description=description)
        logger.debug("Created in-memory document %s", document.id)
        return document

    async def read(self, document_id: str) -> RemoteDocument:
        self.calls["read"] += 1
        entry = self.documents.get(document_id)
        if entry is None:
            raise NotFoundError(f"Document {document_id} not found")
        return RemoteDocument(
            id=document_id, version=entry["version"], content=entry["content"]
        )

    async def update(
        self,
        document_id: str,
        content: str,
        expected_version: str,
        description: str | None = None,
    ) -> RemoteDocument:
        self.calls["update"] += 1
        entry = self.documents.get(document_id)
        if entry is None:
            raise NotFoundError(f"Document {document_id} not found")
        if entry["version"] != expected_version:
            raise ConcurrentModificationError(
                f"Document {document_id} changed remotely "
                f"(expected {expected_version}, found {entry['version']})",
                expected_version=expected_version,
                actual_version=entry["version"],
            )
        entry["content"] = content
        entry["version"] = self._next_version()
        if description is not None:
            entry["description"] = description
        return RemoteDocument(id=document_id, version=entry["version"])

    async def exists(self, document_id: str) -> bool:
        self.calls["exists"] += 1
        return document_id in self.documents

    async def find_by_filename(self, filename: str) -> str | None:
        self.calls["find_by_filename"] += 1
        for document_id, entry in self.documents.items():
            if entry["filename"] == filename:
                return document_id
        return None

    async def whoami(self) -> str:
        self.calls["whoami"] += 1
        return "in-memory"
