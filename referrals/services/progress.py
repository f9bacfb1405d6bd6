"""
referrals/services/progress.py

Single-producer progress channel between a referral run and its subscriber.

The run thread calls ``emit`` for every phase change and counter update; the
transport reads events back with ``get``/``iter_events`` and encodes them as
server-sent events. Phases move ``fetching -> processing -> complete`` or to
``error`` from anywhere, and exactly one terminal event ends the stream.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator

from referrals.schemas.progress import (
    CompleteEvent,
    ErrorEvent,
    FetchingEvent,
    ProcessingEvent,
    ProgressEvent,
)

logger = logging.getLogger(__name__)

TERMINAL_PHASES = frozenset({"complete", "error"})

_ALLOWED_TRANSITIONS: dict[str | None, frozenset[str]] = {
    None: frozenset({"fetching", "error"}),
    "fetching": frozenset({"fetching", "processing", "error"}),
    "processing": frozenset({"processing", "complete", "error"}),
}


class ProgressStateError(RuntimeError):
    """
    Raised on an illegal phase transition, a decreasing counter, or emission after termination.
    """


def encode_sse(event: ProgressEvent) -> str:
    """
    Render one event as a server-sent-events frame.
    """

    return f"data: {event.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


class ProgressEmitter:
    """
    Ordered, bounded event channel for one run and one subscriber.

    Once the subscriber disconnects (``close``), emitted events are validated
    and then discarded; the producer never sees an error for it.
    """

    def __init__(self, *, maxsize: int = 100, put_timeout_seconds: float = 0.1) -> None:
        self._queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=max(1, maxsize))
        self._put_timeout_seconds = put_timeout_seconds
        self._disconnected = threading.Event()
        self._phase: str | None = None
        self._current = 0
        self._total = 0
        self.emitted = 0
        self.discarded = 0

    @property
    def phase(self) -> str | None:
        return self._phase

    @property
    def terminated(self) -> bool:
        return self._phase in TERMINAL_PHASES

    @property
    def disconnected(self) -> bool:
        return self._disconnected.is_set()

    def emit(self, event: ProgressEvent) -> bool:
        """
        Validate and enqueue an event. Returns False when it was discarded.
        """

        event = self._advance(event)
        if self.disconnected:
            self.discarded += 1
            return False

        while not self.disconnected:
            try:
                self._queue.put(event, timeout=self._put_timeout_seconds)
            except queue.Full:
                continue
            self.emitted += 1
            return True

        self.discarded += 1
        return False

    def fetching(self, current: int, total: int) -> bool:
        return self.emit(FetchingEvent(current=current, total=total))

    def processing(self, current: int, total: int, contact_lookups: int) -> bool:
        return self.emit(ProcessingEvent(current=current, total=total, contact_lookups=contact_lookups))

    def complete(self, event: CompleteEvent) -> bool:
        return self.emit(event)

    def error(self, message: str, **kwargs) -> bool:
        return self.emit(ErrorEvent(error=message, **kwargs))

    def close(self) -> None:
        """
        Mark the subscriber as gone. Safe to call more than once, from any thread.

        Queued events are left in place; a producer blocked on a full queue
        notices the flag at its next put timeout and discards.
        """

        if not self._disconnected.is_set() and not self.terminated:
            logger.info("Progress subscriber disconnected phase=%s", self._phase)
        self._disconnected.set()

    def get(self, timeout: float | None = None) -> ProgressEvent | None:
        """
        Next event in emission order, or None if nothing arrived within ``timeout``
        or the subscriber already closed.
        """

        if self.disconnected:
            return None
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def iter_events(self, poll_seconds: float = 0.5) -> Iterator[ProgressEvent]:
        """
        Yield events until the terminal one has been yielded or the subscriber closed.
        """

        while not self.disconnected:
            event = self.get(timeout=poll_seconds)
            if event is None:
                continue
            yield event
            if event.phase in TERMINAL_PHASES:
                return

    def _advance(self, event: ProgressEvent) -> ProgressEvent:
        phase = event.phase
        if self.terminated:
            raise ProgressStateError(f"Cannot emit '{phase}' after the stream ended with '{self._phase}'.")
        if phase not in _ALLOWED_TRANSITIONS[self._phase]:
            raise ProgressStateError(f"Illegal progress transition {self._phase!r} -> {phase!r}.")

        if isinstance(event, (FetchingEvent, ProcessingEvent)):
            if phase == self._phase:
                if event.current < self._current:
                    raise ProgressStateError(
                        f"Progress counter went backwards in '{phase}': {self._current} -> {event.current}."
                    )
                if event.total < self._total:
                    event = event.model_copy(update={"total": self._total})
            self._current = event.current
            self._total = event.total

        self._phase = phase
        return event
