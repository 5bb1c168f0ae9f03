"""Sync lifecycle as a pure state machine.

``transition()`` maps the current ``SyncPhase`` and a ``Trigger`` to the
next phase plus the events describing the change.  It never notifies
anyone itself; the shell hands the events to an ``EventDispatcher``,
which owns the subscriber list.

Normal cycle::

    idle -> loading_remote -> merging -> saving -> idle
                                      \\-> conflict_pending

``error`` is reachable from every phase via ``Trigger.FAIL``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from ..tree.metadata import now
from .models import SyncEvent, SyncPhase

logger = logging.getLogger(__name__)


class Trigger(str, Enum):
    """Inputs that move the lifecycle forward."""

    START = "start"
    LOADED = "loaded"
    CONFLICTS = "conflicts"
    SAVE = "save"
    DONE = "done"
    FAIL = "fail"
    RESET = "reset"


_TRANSITIONS: dict[tuple[SyncPhase, Trigger], SyncPhase] = {
    (SyncPhase.IDLE, Trigger.START): SyncPhase.LOADING_REMOTE,
    (SyncPhase.IDLE, Trigger.SAVE): SyncPhase.SAVING,
    (SyncPhase.LOADING_REMOTE, Trigger.LOADED): SyncPhase.MERGING,
    (SyncPhase.LOADING_REMOTE, Trigger.SAVE): SyncPhase.SAVING,
    (SyncPhase.LOADING_REMOTE, Trigger.DONE): SyncPhase.IDLE,
    (SyncPhase.MERGING, Trigger.CONFLICTS): SyncPhase.CONFLICT_PENDING,
    (SyncPhase.MERGING, Trigger.SAVE): SyncPhase.SAVING,
    (SyncPhase.MERGING, Trigger.DONE): SyncPhase.IDLE,
    (SyncPhase.CONFLICT_PENDING, Trigger.START): SyncPhase.LOADING_REMOTE,
    (SyncPhase.CONFLICT_PENDING, Trigger.SAVE): SyncPhase.SAVING,
    (SyncPhase.CONFLICT_PENDING, Trigger.RESET): SyncPhase.IDLE,
    (SyncPhase.SAVING, Trigger.DONE): SyncPhase.IDLE,
    (SyncPhase.ERROR, Trigger.START): SyncPhase.LOADING_REMOTE,
    (SyncPhase.ERROR, Trigger.SAVE): SyncPhase.SAVING,
    (SyncPhase.ERROR, Trigger.RESET): SyncPhase.IDLE,
}


@dataclass(frozen=True)
class Transition:
    """Result of applying a trigger."""

    phase: SyncPhase
    events: tuple[SyncEvent, ...] = ()


def transition(
    phase: SyncPhase,
    trigger: Trigger,
    detail: str | None = None,
    at: datetime | None = None,
) -> Transition:
    """Compute the next phase for *trigger*.

    Args:
        phase: Current phase.
        trigger: What happened.
        detail: Optional text attached to the emitted event.
        at: Event time (default now).

    Returns:
        The new phase and the events to dispatch.

    Raises:
        ValueError: If *trigger* is not allowed in *phase*.
    """
    if trigger is Trigger.FAIL:
        target = SyncPhase.ERROR
    else:
        target = _TRANSITIONS.get((phase, trigger))
        if target is None:
            raise ValueError(
                f"Illegal sync transition: {trigger.value} in phase {phase.value}"
            )
    event = SyncEvent(
        name=trigger.value,
        phase=target,
        previous=phase,
        detail=detail,
        at=at or now(),
    )
    return Transition(phase=target, events=(event,))


Subscriber = Callable[[SyncEvent], None]


@dataclass
class EventDispatcher:
    """Delivers lifecycle events to subscribers.

    A failing subscriber is logged and skipped; it never breaks the sync
    operation that produced the event.
    """

    subscribers: list[Subscriber] = field(default_factory=list)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register *callback*; returns a function that unregisters it."""
        self.subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self.subscribers:
                self.subscribers.remove(callback)

        return _unsubscribe

    def dispatch(self, events: tuple[SyncEvent, ...] | list[SyncEvent]) -> None:
        for event in events:
            for callback in list(self.subscribers):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Sync event subscriber failed for %s", event.name
                    )
