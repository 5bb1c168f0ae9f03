"""Periodic polling for remote document changes.

Usage::

    detector = RemoteChangeDetector(repository, "abc123", interval=10.0,
                                    on_change=handle_change)
    async with detector:
        ...  # handle_change(document) fires when the version moves

The first successful poll only records a baseline unless
``initial_version`` is given.  Writes made by this process should be
reported with ``acknowledge()`` so they are not mistaken for remote
changes.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Union

from ..core.client import RemoteDocument
from ..errors import BookmarkError
from .remote import RemoteRepository

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[RemoteDocument], Union[None, Awaitable[None]]]


class RemoteChangeDetector:
    """Poll a remote document's version and report changes.

    Args:
        repository: Where the document lives.
        document_id: Document to watch.
        interval: Seconds between polls.
        on_change: Called (or awaited) with the changed document.
        initial_version: Version already known to the caller.
    """

    DEFAULT_INTERVAL = 10.0

    def __init__(
        self,
        repository: RemoteRepository,
        document_id: str,
        interval: float | None = None,
        on_change: ChangeCallback | None = None,
        initial_version: str | None = None,
    ) -> None:
        self.repository = repository
        self.document_id = document_id
        self.interval = interval or self.DEFAULT_INTERVAL
        self.on_change = on_change
        self.last_version = initial_version
        self.paused = False
        self._task: asyncio.Task[Any] | None = None
        self._stop_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def acknowledge(self, version: str) -> None:
        """Record a version this process wrote itself."""
        self.last_version = version

    def pause(self) -> None:
        self.paused = True

    def resume(self) -> None:
        self.paused = False

    async def check_once(self) -> bool:
        """Poll once.

        Returns:
            True if the remote version moved since the last poll.  Errors
            are logged and reported as no change.
        """
        try:
            document = await self.repository.read(self.document_id)
        except BookmarkError as exc:
            logger.warning("Remote change check for %s failed: %s", self.document_id, exc)
            return False

        previous = self.last_version
        self.last_version = document.version
        if previous is None or previous == document.version:
            return False

        logger.info(
            "Remote document %s changed (%s -> %s)",
            self.document_id,
            previous,
            document.version,
        )
        if self.on_change is not None:
            outcome = self.on_change(document)
            if inspect.isawaitable(outcome):
                await outcome
        return True

    async def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            if not self.paused:
                try:
                    await self.check_once()
                except Exception:
                    # A failing callback must not end the watch.
                    logger.exception(
                        "Change handling for %s failed; polling continues",
                        self.document_id,
                    )
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                continue

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._poll_loop())
        logger.debug("Watching %s every %.1fs", self.document_id, self.interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.debug("Stopped watching %s", self.document_id)

    async def __aenter__(self) -> RemoteChangeDetector:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()
