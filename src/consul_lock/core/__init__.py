"""Core module - Foundation components shared by the locking and process layers.

This module provides the basic building blocks used throughout the application:
- Version information
- Custom exceptions
- Configuration dataclasses
- Constants and defaults
"""

from consul_lock.core.version import __version__

from consul_lock.core.exceptions import (
    ConsulLockError,
    ConfigurationError,
    APIError,
    LockContendedError,
    ProcessStartError,
)

from consul_lock.core.config import (
    BackendConfig,
    LockOptions,
    LogConfig,
    SessionCreateMode,
    normalize_address,
    parse_duration,
)

from consul_lock.core.constants import (
    DEFAULT_CONSUL_ADDR,
    DEFAULT_LOCK_DELAY,
    DEFAULT_LOCK_PREFIX,
    DEFAULT_WAIT,
    EXIT_CODE_ERROR,
    NO_INDEX,
    TRAP_SIGNALS,
)

__all__ = [
    # Version
    '__version__',
    # Exceptions
    'ConsulLockError',
    'ConfigurationError',
    'APIError',
    'LockContendedError',
    'ProcessStartError',
    # Config dataclasses
    'BackendConfig',
    'LockOptions',
    'LogConfig',
    'SessionCreateMode',
    'normalize_address',
    'parse_duration',
    # Constants
    'DEFAULT_CONSUL_ADDR',
    'DEFAULT_LOCK_DELAY',
    'DEFAULT_LOCK_PREFIX',
    'DEFAULT_WAIT',
    'EXIT_CODE_ERROR',
    'NO_INDEX',
    'TRAP_SIGNALS',
]
