"""Sync shell: load, save and merge a bookmark tree against the remote document.

The ``SyncShell`` ties together the repository, local sync state, codec,
merge engine and lifecycle.  Every public method is a coroutine that
returns a ``Result``; failures never propagate as exceptions.

A full ``sync()``:

1. Resolves the document id (explicit, cached, configured, then search by
   filename).
2. Reads the remote text and its version.
3. Parses it and merges it with the local tree, using the stored
   ``last_synced`` time and merge base for that document.
4. Stops on conflicts, refreshes ``last_synced`` when nothing changed, or
   writes the merged tree with the version read in step 2.
5. Stores the new ``last_synced`` time, base and version once the local
   tree has incorporated the remote one.

Writes always carry the version stored in step 5, so a concurrent writer
makes the update fail with ``ConcurrentModificationError`` instead of
being overwritten.  A copy that never synced the document (no stored
version) cannot save over it at all; it has to sync first.  First-time
creation is guarded by a re-search and a time-boxed cooperative lock in
local storage.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from ..codec import generate, parse
from ..config import Config
from ..core.client import RemoteDocument
from ..errors import (
    BookmarkError,
    ConcurrentModificationError,
    ConflictUnresolvedError,
    NotFoundError,
    TransportError,
)
from ..result import Result, failure, success
from ..tree.metadata import (
    ensure_root_metadata_without_timestamp,
    now,
    purge_deleted,
    update_all_last_synced,
)
from ..tree.models import Root
from .lifecycle import EventDispatcher, Trigger, transition
from .merger import merge_roots, propagate_remote_deletions
from .models import (
    ConflictResolution,
    MergeConflict,
    MergeResult,
    SyncEvent,
    SyncPhase,
    SyncResult,
)
from .remote import RemoteRepository
from .state import SyncState

logger = logging.getLogger(__name__)


class SyncShell:
    """Orchestrate sync operations for one local tree and one remote document.

    Calls on one instance must be serialized by the caller; separate
    instances (other processes or devices) coordinate only through the
    remote version and the creation lock.

    Args:
        repository: Remote document store.
        state: Local sync state (cached id, sync times, bases, lock).
        config: Filename, description, fallback id, strategy and lock
            timings.
        dispatcher: Receives lifecycle events.
    """

    def __init__(
        self,
        repository: RemoteRepository,
        state: SyncState,
        config: Config,
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self.repository = repository
        self.state = state
        self.config = config
        self.dispatcher = dispatcher or EventDispatcher()

        self.phase = SyncPhase.IDLE
        self._events: list[SyncEvent] = []

    # ------------------------------------------------------------------
    # Lifecycle plumbing
    # ------------------------------------------------------------------

    def _begin(self) -> None:
        self._events = []

    def _advance(self, trigger: Trigger, detail: str | None = None) -> None:
        step = transition(self.phase, trigger, detail)
        self.phase = step.phase
        self._events.extend(step.events)
        self.dispatcher.dispatch(step.events)

    def _fail(self, operation: str, exc: BaseException) -> Result:
        """Move to ``error`` and return *exc* as a failed ``Result``.

        Anything outside the package's taxonomy (and not an ``OSError``)
        is wrapped in ``TransportError`` so callers can still branch on
        the kind.  ``error`` accepts a new start, so the next call on this
        shell proceeds normally.
        """
        if isinstance(exc, (BookmarkError, OSError)):
            logger.error("%s failed: %s", operation, exc)
        else:
            logger.exception("%s failed unexpectedly", operation)
            wrapped = TransportError(f"{operation} failed: {exc!r}")
            wrapped.__cause__ = exc
            exc = wrapped
        self._advance(Trigger.FAIL, str(exc))
        return failure(exc)

    def known_version(self, document_id: str) -> str | None:
        """Remote version of *document_id* the local tree last incorporated."""
        return self.state.get_version(document_id)

    def _remember(self, document_id: str, version: str) -> None:
        self.state.set_version(document_id, version)

    # ------------------------------------------------------------------
    # Document resolution
    # ------------------------------------------------------------------

    async def resolve_document_id(
        self, document_id: str | None = None
    ) -> str | None:
        """Resolve the target id: explicit, cached, configured, then search."""
        if document_id:
            return document_id
        cached = self.state.get_document_id()
        if cached:
            return cached
        if self.config.document_id:
            return self.config.document_id
        found = await self.repository.find_by_filename(self.config.filename)
        if found:
            logger.info(
                "Found existing document %s holding %s",
                found,
                self.config.filename,
            )
            self.state.set_document_id(found)
        return found

    async def _create_guarded(
        self, content: str, description: str | None
    ) -> tuple[RemoteDocument | None, str | None]:
        """Create the document unless another writer already did.

        Returns:
            ``(created, None)`` after creating, or ``(None, existing_id)``
            when a document holding the configured filename turned up.
        """
        existing = await self.repository.find_by_filename(self.config.filename)
        if existing:
            return None, existing

        if not self.state.acquire_create_lock(self.config.lock_timeout):
            logger.info(
                "Creation lock held elsewhere; waiting %.1fs",
                self.config.lock_wait,
            )
            await asyncio.sleep(self.config.lock_wait)
            existing = await self.repository.find_by_filename(
                self.config.filename
            )
            if existing:
                return None, existing
            if not self.state.acquire_create_lock(self.config.lock_timeout):
                logger.warning(
                    "Creation lock still held; creating document anyway"
                )

        try:
            created = await self.repository.create(
                description or self.config.description, content
            )
        finally:
            self.state.release_create_lock()
        logger.info("Created document %s", created.id)
        return created, None

    async def _update(
        self,
        document_id: str,
        content: str,
        description: str | None,
    ) -> RemoteDocument:
        version = self.state.get_version(document_id)
        if version is None:
            if not await self.repository.exists(document_id):
                raise NotFoundError(f"Document {document_id} not found")
            logger.warning(
                "No known version for %s; refusing to overwrite it unseen",
                document_id,
            )
            raise ConcurrentModificationError(
                f"Document {document_id} has remote content this copy never "
                "synced; sync before saving"
            )
        return await self.repository.update(
            document_id, content, version, description
        )

    def _after_write(
        self, document_id: str, root: Root, version: str
    ) -> Root:
        """Record a successful write and return the tree now in sync."""
        at = now()
        synced = update_all_last_synced(purge_deleted(root), at)
        self._remember(document_id, version)
        self.state.set_document_id(document_id)
        self.state.set_last_synced(document_id, at)
        self.state.set_base(document_id, synced)
        return synced

    def _parse_remote(self, document: RemoteDocument) -> Root:
        return ensure_root_metadata_without_timestamp(
            parse(document.content, stamp=False)
        )

    # ------------------------------------------------------------------
    # load / save
    # ------------------------------------------------------------------

    async def load(self, document_id: str | None = None) -> Result[Root]:
        """Read and parse the remote document.

        The returned tree is stamped as in sync with the remote copy and
        becomes the merge base for later syncs.
        """
        self._begin()
        try:
            self._advance(Trigger.START)
            target = await self.resolve_document_id(document_id)
            if target is None:
                raise NotFoundError(
                    f"No bookmark document found (looked for {self.config.filename})"
                )
            document = await self.repository.read(target)
            self._remember(target, document.version)
            root = parse(document.content)
            at = now()
            root = update_all_last_synced(root, at)
            self.state.set_document_id(target)
            self.state.set_last_synced(target, at)
            self.state.set_base(target, root)
        except Exception as exc:
            return self._fail("load", exc)
        logger.info("Loaded document %s (version %s)", target, document.version)
        self._advance(Trigger.DONE)
        return success(root)

    async def save(
        self,
        root: Root,
        document_id: str | None = None,
        description: str | None = None,
    ) -> Result[SyncResult]:
        """Write *root* to the remote document, creating it if needed.

        The update is conditioned on the stored version.  Without one (this
        copy never loaded or synced the document, or another writer created
        it first) the save fails with ``ConcurrentModificationError`` and
        the remote content is left untouched.
        """
        self._begin()
        created = False
        try:
            self._advance(Trigger.SAVE)
            content = generate(root)
            target = await self.resolve_document_id(document_id)
            written: RemoteDocument | None = None
            if target is not None:
                try:
                    written = await self._update(target, content, description)
                except NotFoundError:
                    if document_id:
                        raise
                    logger.warning(
                        "Cached document %s no longer exists; creating a new one",
                        target,
                    )
                    self.state.clear_document_id()
                    self.state.clear_document(target)
                    target = None
            if written is None:
                new_doc, existing = await self._create_guarded(
                    content, description
                )
                if new_doc is None:
                    assert existing is not None
                    self.state.set_document_id(existing)
                    raise ConcurrentModificationError(
                        f"Document {existing} was created by another writer; "
                        "sync to merge it before saving"
                    )
                written, created = new_doc, True
                target = written.id
            synced = self._after_write(target, root, written.version)
        except Exception as exc:
            return self._fail("save", exc)
        self._advance(Trigger.DONE)
        return success(
            SyncResult(
                document_id=target,
                version=written.version,
                merged_root=synced,
                has_changes=True,
                written=True,
                created=created,
                events=list(self._events),
            )
        )

    # ------------------------------------------------------------------
    # sync
    # ------------------------------------------------------------------

    async def sync(
        self, root: Root, document_id: str | None = None
    ) -> Result[SyncResult]:
        """Merge *root* with the remote document and write back if needed.

        Conflicts are returned in the ``SyncResult`` without writing.
        """
        return await self._sync(root, document_id, None)

    async def sync_with_conflict_resolution(
        self,
        root: Root,
        resolutions: list[ConflictResolution],
        document_id: str | None = None,
    ) -> Result[SyncResult]:
        """Like ``sync`` but applies *resolutions* before writing.

        Fails with ``ConflictUnresolvedError`` if any conflict is left
        without a decision.
        """
        return await self._sync(root, document_id, list(resolutions))

    async def _read_for_merge(
        self, document_id: str | None, explicit: bool
    ) -> RemoteDocument | None:
        if document_id is None:
            return None
        try:
            return await self.repository.read(document_id)
        except NotFoundError:
            if explicit:
                raise
            logger.warning("Document %s not found; it will be recreated", document_id)
            self.state.clear_document_id()
            self.state.clear_document(document_id)
            return None

    def _merge(
        self,
        root: Root,
        document: RemoteDocument,
        resolutions: list[ConflictResolution] | None,
    ) -> MergeResult:
        return merge_roots(
            root,
            self._parse_remote(document),
            last_synced=self.state.get_last_synced(document.id),
            base=self.state.get_base(document.id),
            strategy=self.config.strategy,
            resolutions=resolutions or (),
        )

    async def _sync(
        self,
        root: Root,
        document_id: str | None,
        resolutions: list[ConflictResolution] | None,
    ) -> Result[SyncResult]:
        self._begin()
        try:
            self._advance(Trigger.START)
            target = await self.resolve_document_id(document_id)
            document = await self._read_for_merge(target, bool(document_id))

            if document is None:
                new_doc, existing = await self._create_guarded(
                    generate(root), None
                )
                if new_doc is not None:
                    self._advance(Trigger.SAVE, "created")
                    synced = self._after_write(new_doc.id, root, new_doc.version)
                    self._advance(Trigger.DONE)
                    return success(
                        SyncResult(
                            document_id=new_doc.id,
                            version=new_doc.version,
                            merged_root=synced,
                            has_changes=True,
                            written=True,
                            created=True,
                            events=list(self._events),
                        )
                    )
                assert existing is not None
                self.state.set_document_id(existing)
                document = await self.repository.read(existing)

            self._advance(Trigger.LOADED)
            merged = self._merge(root, document, resolutions)

            if merged.conflicts:
                if resolutions is not None:
                    raise ConflictUnresolvedError(
                        f"{len(merged.conflicts)} conflict(s) remain unresolved",
                        merged.conflicts,
                    )
                self._advance(
                    Trigger.CONFLICTS, f"{len(merged.conflicts)} conflict(s)"
                )
                return success(
                    SyncResult(
                        document_id=document.id,
                        version=document.version,
                        conflicts=merged.conflicts,
                        has_changes=True,
                        events=list(self._events),
                    )
                )

            if not merged.has_changes:
                at = now()
                synced = update_all_last_synced(
                    purge_deleted(merged.merged_root), at
                )
                self._remember(document.id, document.version)
                self.state.set_last_synced(document.id, at)
                self.state.set_base(document.id, synced)
                self._advance(Trigger.DONE, "no changes")
                return success(
                    SyncResult(
                        document_id=document.id,
                        version=document.version,
                        merged_root=synced,
                        has_changes=False,
                        events=list(self._events),
                    )
                )

            self._advance(Trigger.SAVE)
            written = await self.repository.update(
                document.id,
                generate(merged.merged_root),
                document.version,
            )
            synced = self._after_write(
                document.id, merged.merged_root, written.version
            )
        except Exception as exc:
            return self._fail("sync", exc)

        self._advance(Trigger.DONE)
        return success(
            SyncResult(
                document_id=document.id,
                version=written.version,
                merged_root=synced,
                has_changes=True,
                written=True,
                events=list(self._events),
            )
        )

    async def check_conflicts(
        self, root: Root, document_id: str | None = None
    ) -> Result[list[MergeConflict]]:
        """Merge without writing and report the conflicts."""
        self._begin()
        try:
            self._advance(Trigger.START)
            target = await self.resolve_document_id(document_id)
            document = await self._read_for_merge(target, bool(document_id))
            if document is None:
                self._advance(Trigger.DONE)
                return success([])
            self._advance(Trigger.LOADED)
            merged = self._merge(root, document, None)
        except Exception as exc:
            return self._fail("check_conflicts", exc)
        if merged.conflicts:
            self._advance(Trigger.CONFLICTS, f"{len(merged.conflicts)} conflict(s)")
        else:
            self._advance(Trigger.DONE)
        return success(merged.conflicts)

    async def has_remote_changes(
        self, document_id: str | None = None
    ) -> Result[bool]:
        """Whether the remote version moved past the one this shell knows."""
        try:
            target = await self.resolve_document_id(document_id)
            if target is None:
                return success(False)
            document = await self.repository.read(target)
        except (BookmarkError, OSError) as exc:
            logger.warning("Remote change check failed: %s", exc)
            return failure(exc)
        except Exception as exc:
            logger.exception("Remote change check failed unexpectedly")
            return failure(TransportError(f"remote change check failed: {exc!r}"))
        known = self.state.get_version(target)
        return success(known is not None and known != document.version)

    # ------------------------------------------------------------------
    # Single-operation pair
    # ------------------------------------------------------------------

    async def sync_before_operation(
        self, root: Root, document_id: str | None = None
    ) -> Result[Root]:
        """Apply remote deletions and additions to *root* before an edit.

        Remembers the remote version so the matching
        ``save_after_operation`` writes without another read.  A missing
        remote document leaves *root* unchanged.
        """
        self._begin()
        try:
            self._advance(Trigger.START)
            target = await self.resolve_document_id(document_id)
            document = await self._read_for_merge(target, False)
            if document is None:
                self._advance(Trigger.DONE, "no remote document")
                return success(root)
            self._advance(Trigger.LOADED)
            updated = propagate_remote_deletions(
                root,
                parse(document.content, stamp=False),
                self.state.get_last_synced(document.id),
            )
            self._remember(document.id, document.version)
        except Exception as exc:
            return self._fail("sync_before_operation", exc)
        self._advance(Trigger.DONE)
        return success(updated)

    async def save_after_operation(
        self, root: Root, document_id: str | None = None
    ) -> Result[SyncResult]:
        """Write *root* after a local edit, using the version just read."""
        return await self.save(root, document_id)

    async def run_batch(
        self,
        root: Root,
        operation: Callable[[Root], Root],
        document_id: str | None = None,
    ) -> Result[SyncResult]:
        """One pre-sync, one local edit, one save.

        *operation* may apply any number of edits; the remote side is read
        once and written once regardless.
        """
        before = await self.sync_before_operation(root, document_id)
        if not before.ok:
            return failure(before.error)  # type: ignore[arg-type]
        try:
            edited = operation(before.unwrap())
        except BookmarkError as exc:
            logger.warning("Batch operation rejected: %s", exc)
            return failure(exc)
        except Exception as exc:
            self._begin()
            return self._fail("batch operation", exc)
        return await self.save_after_operation(edited, document_id)
