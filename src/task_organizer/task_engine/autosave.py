"""Debounced auto-save for field edits.

Edits accumulate in a local buffer.  Each edit cancels and restarts a quiet
period timer; when it expires the whole buffer goes out as one field-update
request.  Closing the edit session cancels a pending timer so no stale write
lands after the user has left.

A rejected save is reported once and never retried automatically; the buffer
keeps the user's edits for a manual :meth:`DebouncedSaver.retry`.
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional, Protocol

from loguru import logger

from ..constants import DEFAULT_AUTOSAVE_DELAY_SECONDS
from .errors import EngineError, Failure
from .interfaces import MutationSink


class _Timer(Protocol):
    def start(self) -> None: ...

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], _Timer]


def _daemon_timer(interval: float, function: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(interval, function)
    timer.daemon = True
    return timer


class DebouncedSaver:
    """Buffer edits for one task and save them after a quiet period."""

    def __init__(
        self,
        task_id: str,
        sink: MutationSink,
        *,
        delay: float = DEFAULT_AUTOSAVE_DELAY_SECONDS,
        timer_factory: TimerFactory = _daemon_timer,
        on_failure: Optional[Callable[[Failure], None]] = None,
        on_saved: Optional[Callable[[dict[str, Any]], None]] = None,
    ) -> None:
        self.task_id = task_id
        self._sink = sink
        self._delay = delay
        self._timer_factory = timer_factory
        self._on_failure = on_failure
        self._on_saved = on_saved
        self._lock = threading.Lock()
        self._pending: dict[str, Any] = {}
        self._timer: Optional[_Timer] = None
        self._closed = False
        self.last_failure: Optional[Failure] = None

    # -- state ----------------------------------------------------------------

    @property
    def pending(self) -> dict[str, Any]:
        with self._lock:
            return dict(self._pending)

    @property
    def is_scheduled(self) -> bool:
        return self._timer is not None

    @property
    def closed(self) -> bool:
        return self._closed

    # -- editing --------------------------------------------------------------

    def edit(self, **fields: Any) -> None:
        """Record field edits and restart the quiet period."""
        if not fields:
            return
        with self._lock:
            if self._closed:
                logger.warning("Ignoring edit on closed session for task {}", self.task_id)
                return
            self._pending.update(fields)
            self._cancel_timer()
            self._timer = self._timer_factory(self._delay, self._fire)
            self._timer.start()

    def flush(self) -> bool:
        """Send the buffer now.  Returns ``True`` when nothing is left unsaved."""
        with self._lock:
            self._cancel_timer()
            if self._closed:
                return not self._pending
            fields = dict(self._pending)
        if not fields:
            return True
        return self._send(fields)

    def retry(self) -> bool:
        """Manual retry after a rejected save."""
        return self.flush()

    def close(self) -> dict[str, Any]:
        """End the session: cancel any pending save and return unsaved fields."""
        with self._lock:
            self._closed = True
            self._cancel_timer()
            return dict(self._pending)

    # -- internals ------------------------------------------------------------

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self) -> None:
        with self._lock:
            self._timer = None
            if self._closed or not self._pending:
                return
            fields = dict(self._pending)
        self._send(fields)

    def _send(self, fields: dict[str, Any]) -> bool:
        try:
            self._sink.request_field_update(self.task_id, fields)
        except EngineError as exc:
            self.last_failure = exc.failure
            logger.warning("Auto-save rejected for task {}: {}", self.task_id, exc.failure.message)
            if self._on_failure is not None:
                self._on_failure(exc.failure)
            return False

        with self._lock:
            # Keep anything edited again while the request was in flight.
            for key, value in fields.items():
                if key in self._pending and self._pending[key] is value:
                    del self._pending[key]
            self.last_failure = None
        logger.debug("Auto-saved {} field(s) for task {}", len(fields), self.task_id)
        if self._on_saved is not None:
            self._on_saved(fields)
        return True
