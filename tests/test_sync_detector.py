"""Tests for remote change polling."""

from __future__ import annotations

import asyncio

from bookmarkdown.sync.detector import RemoteChangeDetector
from bookmarkdown.sync.remote import InMemoryRepository


class TestCheckOnce:
    """Tests for RemoteChangeDetector.check_once()."""

    async def test_first_poll_records_baseline(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        detector = RemoteChangeDetector(repository, doc.id)
        assert await detector.check_once() is False
        assert detector.last_version == doc.version

    async def test_version_change_calls_callback(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        seen = []
        detector = RemoteChangeDetector(
            repository, doc.id, on_change=seen.append, initial_version=doc.version
        )
        assert await detector.check_once() is False
        repository.put("# Dev\n# New\n", document_id=doc.id)
        assert await detector.check_once() is True
        assert [d.content for d in seen] == ["# Dev\n# New\n"]
        assert await detector.check_once() is False

    async def test_async_callback_is_awaited(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        seen = []

        async def _on_change(document) -> None:
            seen.append(document.version)

        detector = RemoteChangeDetector(
            repository, doc.id, on_change=_on_change, initial_version="0"
        )
        assert await detector.check_once() is True
        assert seen == [doc.version]

    async def test_acknowledged_write_is_not_a_change(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        detector = RemoteChangeDetector(repository, doc.id, initial_version=doc.version)
        written = repository.put("# Mine\n", document_id=doc.id)
        detector.acknowledge(written.version)
        assert await detector.check_once() is False

    async def test_read_errors_are_no_change(self, caplog) -> None:
        detector = RemoteChangeDetector(
            InMemoryRepository(), "missing", initial_version="1"
        )
        assert await detector.check_once() is False
        assert "Remote change check for missing failed" in caplog.text
        assert detector.last_version == "1"


class TestPolling:
    """Tests for start/stop, pause and the context manager."""

    async def test_default_interval(self) -> None:
        detector = RemoteChangeDetector(InMemoryRepository(), "doc")
        assert detector.interval == RemoteChangeDetector.DEFAULT_INTERVAL

    async def test_start_and_stop(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        detector = RemoteChangeDetector(repository, doc.id, interval=0.01)
        await detector.start()
        assert detector.is_running
        await asyncio.sleep(0.05)
        await detector.stop()
        assert not detector.is_running
        assert repository.calls["read"] >= 1

    async def test_context_manager_detects_change(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        changed = asyncio.Event()
        detector = RemoteChangeDetector(
            repository,
            doc.id,
            interval=0.01,
            on_change=lambda document: changed.set(),
            initial_version=doc.version,
        )
        async with detector:
            repository.put("# Other\n", document_id=doc.id)
            await asyncio.wait_for(changed.wait(), timeout=2)
        assert not detector.is_running

    async def test_failing_callback_keeps_polling(self, caplog) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        seen = []
        first, second = asyncio.Event(), asyncio.Event()

        def _on_change(document) -> None:
            seen.append(document.version)
            if len(seen) == 1:
                first.set()
                raise RuntimeError("handler broke")
            second.set()

        detector = RemoteChangeDetector(
            repository,
            doc.id,
            interval=0.01,
            on_change=_on_change,
            initial_version=doc.version,
        )
        async with detector:
            repository.put("# One\n", document_id=doc.id)
            await asyncio.wait_for(first.wait(), timeout=2)
            await asyncio.sleep(0.03)
            assert detector.is_running
            repository.put("# Two\n", document_id=doc.id)
            await asyncio.wait_for(second.wait(), timeout=2)
        assert len(seen) == 2
        assert "polling continues" in caplog.text

    async def test_paused_detector_does_not_poll(self) -> None:
        repository = InMemoryRepository()
        doc = repository.put("# Dev\n")
        detector = RemoteChangeDetector(repository, doc.id, interval=0.01)
        detector.pause()
        async with detector:
            await asyncio.sleep(0.05)
        assert repository.calls["read"] == 0
        detector.resume()
        assert detector.paused is False

    async def test_stop_without_start(self) -> None:
        detector = RemoteChangeDetector(InMemoryRepository(), "doc")
        await detector.stop()
        assert not detector.is_running
