"""State-change notification hook.

Every successful processing-state write is logged as a ``state_change``
event and offered to registered listeners.  No push delivery exists
today; listeners are the attachment point for one (a WebSocket fan-out,
a pub/sub publisher).

# ─── HOW NOTIFICATION WORKS ────────────────────────────────────────────
#
#   DocumentCoordinator ──notify()──→ StateChangeNotifier ──callback()──→ listener
#
#   - Listeners registered for a document id only see that document;
#     listeners registered with document_id=None see every document.
#   - Listener errors are caught and logged, so one broken listener
#     cannot fail a coordinator write.
#   - Both sync and async callbacks are supported.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import structlog

from queue_processor.models.coordination import ProcessingState
from queue_processor.utils.logging import get_logger

_ALL = "*"


class StateChangeNotifier:
    """Broadcasts :class:`ProcessingState` writes to listener callbacks."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Callable]] = {}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    def register_listener(self, callback: Callable, document_id: str | None = None) -> None:
        """Register an async or sync callable accepting ``(state)``."""
        key = document_id or _ALL
        listeners = self._listeners.setdefault(key, [])
        if callback not in listeners:
            listeners.append(callback)

    def unregister_listener(self, callback: Callable, document_id: str | None = None) -> None:
        listeners = self._listeners.get(document_id or _ALL, [])
        if callback in listeners:
            listeners.remove(callback)

    async def notify(self, state: ProcessingState) -> None:
        self._logger.info(
            "state_change",
            documentId=state.document_id,
            status=state.status.value,
            currentStep=state.progress.current_step,
            percentage=state.progress.percentage,
            timestamp=state.last_updated_at.isoformat(),
        )

        listeners = [*self._listeners.get(state.document_id, []), *self._listeners.get(_ALL, [])]
        for callback in listeners:
            try:
                result = callback(state)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as exc:
                self._logger.warning(
                    "state_listener_error",
                    documentId=state.document_id,
                    error=str(exc),
                    callback=getattr(callback, "__name__", repr(callback)),
                )
