"""Tests for the sync lifecycle state machine and event dispatcher."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from bookmarkdown.sync.lifecycle import EventDispatcher, Trigger, transition
from bookmarkdown.sync.models import SyncPhase

T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestTransition:
    """Tests for transition()."""

    def test_full_cycle(self) -> None:
        phase = SyncPhase.IDLE
        seen = []
        for trigger in (Trigger.START, Trigger.LOADED, Trigger.SAVE, Trigger.DONE):
            step = transition(phase, trigger)
            seen.append(step.phase)
            phase = step.phase
        assert seen == [
            SyncPhase.LOADING_REMOTE,
            SyncPhase.MERGING,
            SyncPhase.SAVING,
            SyncPhase.IDLE,
        ]

    def test_event_describes_the_change(self) -> None:
        step = transition(SyncPhase.MERGING, Trigger.CONFLICTS, "2 conflict(s)", at=T1)
        assert step.phase is SyncPhase.CONFLICT_PENDING
        (event,) = step.events
        assert event.name == "conflicts"
        assert event.previous is SyncPhase.MERGING
        assert event.phase is SyncPhase.CONFLICT_PENDING
        assert event.detail == "2 conflict(s)"
        assert event.at == T1

    @pytest.mark.parametrize("phase", list(SyncPhase))
    def test_fail_is_allowed_everywhere(self, phase) -> None:
        assert transition(phase, Trigger.FAIL).phase is SyncPhase.ERROR

    def test_error_recovers_on_start(self) -> None:
        assert transition(SyncPhase.ERROR, Trigger.START).phase is SyncPhase.LOADING_REMOTE

    def test_conflict_pending_can_reset(self) -> None:
        assert transition(SyncPhase.CONFLICT_PENDING, Trigger.RESET).phase is SyncPhase.IDLE

    @pytest.mark.parametrize(
        "phase, trigger",
        [
            (SyncPhase.IDLE, Trigger.LOADED),
            (SyncPhase.SAVING, Trigger.START),
            (SyncPhase.IDLE, Trigger.CONFLICTS),
        ],
    )
    def test_illegal_transitions_raise(self, phase, trigger) -> None:
        with pytest.raises(ValueError, match="Illegal sync transition"):
            transition(phase, trigger)


class TestEventDispatcher:
    """Tests for EventDispatcher."""

    def test_subscribers_receive_events(self) -> None:
        dispatcher = EventDispatcher()
        received = []
        dispatcher.subscribe(received.append)
        events = transition(SyncPhase.IDLE, Trigger.START).events
        dispatcher.dispatch(events)
        assert [e.name for e in received] == ["start"]

    def test_unsubscribe(self) -> None:
        dispatcher = EventDispatcher()
        received = []
        unsubscribe = dispatcher.subscribe(received.append)
        unsubscribe()
        unsubscribe()
        dispatcher.dispatch(transition(SyncPhase.IDLE, Trigger.START).events)
        assert received == []

    def test_failing_subscriber_does_not_stop_others(self, caplog) -> None:
        dispatcher = EventDispatcher()
        received = []

        def _broken(event):
            raise RuntimeError("boom")

        dispatcher.subscribe(_broken)
        dispatcher.subscribe(received.append)
        dispatcher.dispatch(transition(SyncPhase.IDLE, Trigger.START).events)
        assert len(received) == 1
        assert "subscriber failed" in caplog.text
