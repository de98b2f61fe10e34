"""
Lifecycle and progress notifications for operators.

Handlers may be plain functions or coroutine functions. A failing handler is
logged and never affects the relayer.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

STARTED = "started"
STOPPED = "stopped"
OPERATION_DETECTED = "operationDetected"
PROOF_SUBMITTED = "proofSubmitted"
PROOF_SKIPPED = "proofSkipped"
SUBMISSION_FAILED = "submissionFailed"
CONSENSUS_REACHED = "consensusReached"
OPERATION_EXECUTED = "operationExecuted"

Handler = Callable[[dict[str, Any]], Any]


class EventEmitter:
    """Minimal named-event dispatcher."""

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> None:
        self._handlers[event].append(handler)

    def emit(self, event: str, **payload: Any) -> None:
        """Call every handler registered for ``event`` with ``payload``."""
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    task = asyncio.ensure_future(result)
                    self._pending.add(task)
                    task.add_done_callback(self._handler_done)
            except Exception as e:
                logger.error(f"Handler for '{event}' failed: {e}", exc_info=True)

    def _handler_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and (exc := task.exception()) is not None:
            logger.error(f"Async event handler failed: {exc}")
