"""Distributed locking against the coordination backend.

This package keeps the HTTP protocol in ``backends`` and the
acquire/release loop in ``manager`` so callers use a stable API.
"""

from consul_lock.core.locks.backends import (
    ConsulKVBackend,
    KVEntry,
    ReadResult,
    ReadStatus,
    SessionHandle,
)
from consul_lock.core.locks.manager import AcquireStatus, LockCoordinator

__all__ = [
    "AcquireStatus",
    "ConsulKVBackend",
    "KVEntry",
    "LockCoordinator",
    "ReadResult",
    "ReadStatus",
    "SessionHandle",
]
