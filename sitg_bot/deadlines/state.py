"""Single-file durable state for the local deadline path.

:class:`BotStateStore` keeps delivery dedup keys, pending deadlines and a
``repo_id -> installation`` cache in one JSON document. Every mutation
rewrites the file through a temporary sibling followed by
:func:`os.replace`, so a crash mid-write leaves the previous version intact.
Inside a running event loop the write happens on a worker thread and only
the newest snapshot is written; :meth:`BotStateStore.aclose` waits for it.

The store is file-local and therefore only safe for a single worker
process; multi-instance deployments rely on the backend outbox instead.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import os
import tempfile
import typing as typ
from pathlib import Path

import msgspec

from sitg_bot.common.time import utcnow
from sitg_bot.logging import format_event, get_logger, log_exception, log_warning

from .models import RepoInstallation, ScheduledDeadline

if typ.TYPE_CHECKING:
    from sitg_bot.common.time import Clock

logger = get_logger(__name__)

STATE_VERSION = 1


class BotState(msgspec.Struct, kw_only=True):
    """On-disk state document."""

    version: int = STATE_VERSION
    dedup_keys: dict[str, float] = msgspec.field(default_factory=dict)
    deadlines: dict[str, ScheduledDeadline] = msgspec.field(default_factory=dict)
    repo_installations: dict[str, RepoInstallation] = msgspec.field(
        default_factory=dict
    )


class BotStateStore:
    """Load, query and atomically persist :class:`BotState`."""

    def __init__(self, path: Path | str, *, clock: Clock = utcnow) -> None:
        """Bind the store to ``path`` and load whatever is already there."""
        self._path = Path(path)
        self._clock = clock
        self._state = self._load()
        self._pending: bytes | None = None
        self._writer: asyncio.Task[None] | None = None

    @property
    def path(self) -> Path:
        """Location of the state file."""
        return self._path

    # Deadlines

    def pending_deadlines(self) -> list[ScheduledDeadline]:
        """Return every persisted deadline, earliest first."""
        return sorted(self._state.deadlines.values(), key=lambda d: d.deadline_at)

    def put_deadline(self, deadline: ScheduledDeadline) -> None:
        """Persist ``deadline``, replacing any record with the same id."""
        self._state.deadlines[deadline.challenge_id] = deadline
        self._flush()

    def remove_deadline(self, challenge_id: str) -> None:
        """Forget a deadline; unknown ids are ignored."""
        if self._state.deadlines.pop(challenge_id, None) is not None:
            self._flush()

    def get_deadline(self, challenge_id: str) -> ScheduledDeadline | None:
        """Return the persisted deadline for ``challenge_id``, if any."""
        return self._state.deadlines.get(challenge_id)

    # Dedup keys

    def has_dedup_key(self, key: str) -> bool:
        """Return True when ``key`` is present and not yet expired."""
        self._gc_dedup()
        return key in self._state.dedup_keys

    def put_dedup_key(self, key: str, ttl: dt.timedelta) -> None:
        """Record ``key`` until ``ttl`` from now."""
        self._gc_dedup(flush=False)
        expires_at = self._clock() + ttl
        self._state.dedup_keys[key] = expires_at.timestamp()
        self._flush()

    # Repository installation cache

    def remember_repo_installation(
        self,
        repo_id: int,
        installation_id: int,
        full_name: str | None = None,
    ) -> None:
        """Cache the installation currently serving ``repo_id``."""
        self._state.repo_installations[str(repo_id)] = RepoInstallation(
            installation_id=installation_id,
            full_name=full_name,
            updated_at=self._clock(),
        )
        self._flush()

    def get_repo_installation(self, repo_id: int) -> RepoInstallation | None:
        """Return the cached installation for ``repo_id``, if any."""
        return self._state.repo_installations.get(str(repo_id))

    # Internals

    def _gc_dedup(self, *, flush: bool = True) -> None:
        now = self._clock().timestamp()
        expired = [k for k, exp in self._state.dedup_keys.items() if exp <= now]
        for key in expired:
            del self._state.dedup_keys[key]
        if expired and flush:
            self._flush()

    def _load(self) -> BotState:
        try:
            raw = self._path.read_bytes()
        except FileNotFoundError:
            return BotState()
        try:
            return msgspec.json.decode(raw, type=BotState)
        except msgspec.DecodeError as exc:
            # ValidationError subclasses DecodeError.
            log_warning(
                logger,
                format_event(
                    "state.load_failed",
                    path=self._path,
                    error_type=type(exc).__name__,
                    error=str(exc),
                ),
            )
            return BotState()

    async def aclose(self) -> None:
        """Wait for any background write to reach disk."""
        writer, self._writer = self._writer, None
        if writer is not None and writer.get_loop() is asyncio.get_running_loop():
            await writer

    def _flush(self) -> None:
        payload = msgspec.json.encode(self._state)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(payload)
            return
        # Only the newest snapshot matters; a queued one is superseded.
        self._pending = payload
        if (
            self._writer is None
            or self._writer.done()
            or self._writer.get_loop() is not loop
        ):
            self._writer = loop.create_task(self._drain(), name="bot-state-writer")

    async def _drain(self) -> None:
        while self._pending is not None:
            payload, self._pending = self._pending, None
            try:
                await asyncio.to_thread(self._write, payload)
            except OSError as exc:
                log_exception(
                    logger, format_event("state.write_failed", path=self._path), exc
                )

    def _write(self, payload: bytes) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            Path(tmp_name).replace(self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


__all__ = ["STATE_VERSION", "BotState", "BotStateStore"]
