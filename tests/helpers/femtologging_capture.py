"""Capture structured log calls made through ``sitg_bot.logging``.

The event loggers in :mod:`sitg_bot.observability` accept any object with a
femtologging-compatible ``log`` method. :class:`FakeLogger` records those
calls synchronously, so assertions do not have to wait for femtologging's
worker thread.

Usage
-----
>>> from sitg_bot.observability import OutboxEventLogger
>>> sink = FakeLogger()
>>> OutboxEventLogger(sink).log_claimed(worker_id="bot-worker-1", count=2)
>>> sink.has_event("outbox.claimed")
True

"""

from __future__ import annotations


class FakeLogger:
    """Collects femtologging-style log calls for assertions.

    Attributes
    ----------
    calls
        ``(level, message, exc_info)`` tuples in the order they were logged.

    """

    def __init__(self) -> None:
        """Start with no captured calls."""
        self.calls: list[tuple[str, str, object | None]] = []

    def log(
        self,
        level: str,
        message: str,
        /,
        *,
        exc_info: object | None = None,
        stack_info: bool = False,
    ) -> str:
        """Record the call and echo the message like femtologging does."""
        del stack_info
        self.calls.append((level, message, exc_info))
        return message

    def messages(self, level: str | None = None) -> list[str]:
        """Return logged messages, optionally filtered by level."""
        return [msg for lvl, msg, _ in self.calls if level is None or lvl == level]

    def has_event(self, event: str) -> bool:
        """Return True when a message for ``event`` was logged."""
        return any(msg.startswith(f"[{event}]") for _, msg, _ in self.calls)
