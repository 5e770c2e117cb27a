"""
notify/dispatch.py -- Fire-and-forget delivery through a NotificationSink.

Account operations must not wait for mail delivery, and a delivery failure
must never fail the request that triggered it. NotificationDispatcher submits
each send to a ThreadPoolExecutor and logs any exception raised by the sink.

With executor=None the send runs inline, still with failures logged and
swallowed. Tests use that mode so assertions can run right after the call.

Layer rule: no imports from api/, auth/, or projects/.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import Executor, Future

from notify.sinks import NotificationSink

logger = logging.getLogger("uptrack.notify")


class NotificationDispatcher:
    def __init__(self, sink: NotificationSink, executor: Executor | None = None) -> None:
        self.sink = sink
        self.executor = executor

    def confirmation(self, email: str, name: str, token: str) -> bool:
        return self._fire("confirmation", self.sink.send_confirmation, email, name, token)

    def password_reset(self, email: str, name: str, token: str) -> bool:
        return self._fire("password_reset", self.sink.send_password_reset, email, name, token)

    def _fire(self, kind: str, send: Callable[..., None], email: str, name: str, token: str) -> bool:
        """Run or schedule `send`. Returns False only if it could not be run or scheduled.

        In pooled mode True means "queued"; the outcome of the delivery itself
        is only visible in the log.
        """
        if self.executor is None:
            try:
                send(email, name, token)
            except Exception:
                logger.exception("Failed to deliver %s notification to %s", kind, email)
                return False
            return True

        try:
            future = self.executor.submit(send, email, name, token)
        except RuntimeError:
            # Executor already shut down (process is stopping).
            logger.exception("Could not queue %s notification to %s", kind, email)
            return False
        future.add_done_callback(lambda f: _log_failure(f, kind, email))
        return True

    def close(self) -> None:
        """Wait for queued deliveries, then release the worker threads."""
        if self.executor is not None:
            self.executor.shutdown(wait=True)


def _log_failure(future: Future, kind: str, email: str) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error("Failed to deliver %s notification to %s: %r", kind, email, exc)
