"""Lock coordinator driving the acquire/release protocol."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum

from consul_lock.core.config import LockOptions
from consul_lock.core.constants import NO_INDEX, NO_INDEX_RETRY_SECONDS
from consul_lock.core.exceptions import APIError, LockContendedError
from consul_lock.core.locks.backends import ConsulKVBackend, ReadResult
from consul_lock.core.logging import with_log_context


class AcquireStatus(Enum):
    """Outcome of a single acquisition attempt."""

    ACQUIRED = "acquired"
    CONTENDED = "contended"  # Held by another session when read
    RACE_LOST = "race_lost"  # Free when read, taken before our write


@dataclass
class AcquireResult:
    status: AcquireStatus
    session_id: str | None = None
    holder_session: str | None = None


class LockCoordinator:
    """Acquires and releases one named lock against the coordination backend.

    Correctness is delegated to the backend's conditional write; the
    coordinator holds no local lock state.
    """

    def __init__(
        self,
        backend: ConsulKVBackend | None = None,
        options: LockOptions | None = None,
        *,
        logger: logging.Logger | None = None,
    ):
        self.backend = backend or ConsulKVBackend()
        self.options = options or LockOptions()
        self.logger = logger or logging.getLogger(__name__)

    def acquire(self, key: str) -> str:
        """Obtain the lock for ``key`` and return the owning session ID.

        Raises:
            LockContendedError: Key is held and blocking is disabled
            APIError: Transport, status or decode failure; never retried
        """
        log = with_log_context(self.logger, lock_key=key)
        index = NO_INDEX
        while True:
            read = self.backend.read(key, index)
            if read.index is not NO_INDEX:
                index = read.index
                log.debug("new index %s", index)

            result = self._attempt(key, read, log)
            if result.status is AcquireStatus.ACQUIRED:
                log.debug("Acquired lock with session %s", result.session_id)
                return result.session_id

            if not self.options.blocking:
                raise LockContendedError(key, holder_session=result.holder_session)
            log.debug("Lock %s; waiting for a change since index %s", result.status.value, index)
            if index is NO_INDEX:
                # No index to long-poll on; pace the plain reads instead.
                time.sleep(NO_INDEX_RETRY_SECONDS)

    def _attempt(self, key: str, read: ReadResult, log: logging.LoggerAdapter) -> AcquireResult:
        if not read.eligible:
            holder = read.entry.session if read.entry else None
            return AcquireResult(status=AcquireStatus.CONTENDED, holder_session=holder)

        session = self.backend.create_session(key, self.options.lock_delay)
        try:
            granted = self.backend.acquire(key, session.id)
        except APIError:
            self._destroy_quietly(session.id, log)
            raise
        if granted:
            return AcquireResult(status=AcquireStatus.ACQUIRED, session_id=session.id)

        log.debug("Lost acquire race; destroying session %s", session.id)
        self._destroy_quietly(session.id, log)
        return AcquireResult(status=AcquireStatus.RACE_LOST)

    def _destroy_quietly(self, session_id: str, log: logging.LoggerAdapter) -> None:
        try:
            self.backend.destroy_session(session_id)
        except APIError as e:
            log.debug("Ignoring session cleanup failure for %s: %s", session_id, e)

    def release(self, key: str, session_id: str) -> None:
        """Delete the entry, then destroy the session.

        The entry goes first so that a contender granted the key after our
        session ends can never have its fresh entry deleted by us. Both calls
        are attempted; the first failure is raised afterwards.
        """
        first_error: APIError | None = None
        try:
            self.backend.delete(key)
        except APIError as e:
            first_error = e
        try:
            self.backend.destroy_session(session_id)
        except APIError as e:
            first_error = first_error or e
        if first_error is not None:
            raise first_error
        self.logger.debug("Released lock %s (session %s)", key, session_id)
