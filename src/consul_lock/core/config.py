"""Configuration dataclasses for consul-lock.

These dataclasses centralize all configuration options for type safety
and easy testing. They can be created from command-line arguments, the
environment, or used directly in code.
"""

from __future__ import annotations

import argparse
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urlsplit

from consul_lock.core.constants import (
    DEFAULT_CONSUL_ADDR,
    DEFAULT_LOCK_DELAY,
    DEFAULT_LOCK_PREFIX,
    DEFAULT_LOG_LEVEL,
    DEFAULT_WAIT,
    ENV_CONSUL_ADDR,
    ENV_CONSUL_TOKEN,
    ENV_DEBUG,
    ENV_LOCK_PREFIX,
    ENV_LOCK_WAIT,
    ENV_LOG_LEVEL,
    ENV_SESSION_MODE,
    EXIT_CODE_ERROR,
    HTTP_TIMEOUT_MARGIN_SECONDS,
)
from consul_lock.core.exceptions import ConfigurationError

_DURATION_PATTERN = re.compile(r"^(?P<value>\d+(?:\.\d+)?)(?P<unit>ms|s|m)$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0}


def parse_duration(value: str) -> float:
    """Convert a backend duration string (``10s``, ``500ms``, ``1m``) to seconds."""
    match = _DURATION_PATTERN.match(value.strip())
    if match is None:
        raise ConfigurationError(f"Invalid duration '{value}'", field="wait", details="expected e.g. 10s, 500ms, 1m")
    return float(match.group("value")) * _DURATION_UNITS[match.group("unit")]


def normalize_address(address: str) -> str:
    """Return an ``http(s)://host:port`` base URL without a trailing slash."""
    candidate = address.strip()
    if "://" not in candidate:
        candidate = f"http://{candidate}"
    parts = urlsplit(candidate)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigurationError(f"Invalid backend address '{address}'", field=ENV_CONSUL_ADDR)
    return candidate.rstrip("/")


class SessionCreateMode(Enum):
    """How the session-create request is shaped."""

    STRUCTURED = "structured"  # JSON body with LockDelay and Name
    EMPTY = "empty"  # No body, backend defaults apply


def _parse_session_mode(value: str) -> SessionCreateMode:
    value = value.strip().lower()
    if not value:
        return SessionCreateMode.STRUCTURED
    try:
        return SessionCreateMode(value)
    except ValueError:
        choices = ", ".join(mode.value for mode in SessionCreateMode)
        raise ConfigurationError(
            f"Invalid session mode '{value}'", field=ENV_SESSION_MODE, details=f"expected one of: {choices}"
        ) from None


@dataclass
class LockOptions:
    """Per-invocation locking behavior.

    Attributes:
        blocking: Wait for the lock instead of failing fast (default: True)
        lock_delay: Session LockDelay in seconds, enforced by the backend (default: 15)
        exit_code: Exit code when the lock is contended and blocking is off (default: 111)
    """

    blocking: bool = True
    lock_delay: int = DEFAULT_LOCK_DELAY
    exit_code: int = EXIT_CODE_ERROR

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> LockOptions:
        """Create options from parsed command-line arguments."""
        lock_delay = getattr(args, "lock_delay", DEFAULT_LOCK_DELAY)
        if lock_delay < 0:
            raise ConfigurationError("Lock delay must not be negative", field="lock_delay")
        return cls(
            blocking=not getattr(args, "no_wait", False),
            lock_delay=lock_delay,
            exit_code=0 if getattr(args, "exit_zero", False) else EXIT_CODE_ERROR,
        )


@dataclass
class BackendConfig:
    """Connection settings for the coordination backend.

    Attributes:
        address: Base URL of the HTTP API (default: http://localhost:8500)
        prefix: KV namespace that lock keys live under (default: locks)
        wait: Long-poll wait sent with blocking reads (default: 10s)
        token: Optional ACL token sent as X-Consul-Token
        session_mode: Shape of the session-create request (default: structured)
    """

    address: str = DEFAULT_CONSUL_ADDR
    prefix: str = DEFAULT_LOCK_PREFIX
    wait: str = DEFAULT_WAIT
    token: str | None = None
    session_mode: SessionCreateMode = SessionCreateMode.STRUCTURED

    @property
    def timeout(self) -> float:
        """HTTP timeout that always outlasts one long-poll."""
        return parse_duration(self.wait) + HTTP_TIMEOUT_MARGIN_SECONDS

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BackendConfig:
        """Create configuration from environment variables."""
        env = os.environ if environ is None else environ
        wait = env.get(ENV_LOCK_WAIT, DEFAULT_WAIT).strip() or DEFAULT_WAIT
        parse_duration(wait)
        return cls(
            address=normalize_address(env.get(ENV_CONSUL_ADDR, "") or DEFAULT_CONSUL_ADDR),
            prefix=(env.get(ENV_LOCK_PREFIX, "") or DEFAULT_LOCK_PREFIX).strip("/"),
            wait=wait,
            token=env.get(ENV_CONSUL_TOKEN) or None,
            session_mode=_parse_session_mode(env.get(ENV_SESSION_MODE, "")),
        )


@dataclass
class LogConfig:
    """Configuration for logging behavior.

    Attributes:
        level: Logging level string (default: "WARNING")
        format: "text" or "json" (default: "text")
    """

    level: str = DEFAULT_LOG_LEVEL
    format: str = "text"

    @classmethod
    def from_args(cls, args: argparse.Namespace, environ: Mapping[str, str] | None = None) -> LogConfig:
        """Resolve level with priority: CLI flag > DEBUG toggle > LOG_LEVEL > default."""
        env = os.environ if environ is None else environ
        level = getattr(args, "log_level", None)
        if level is None:
            if env.get(ENV_DEBUG):
                level = "DEBUG"
            else:
                level = env.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL)
        return cls(level=level, format=getattr(args, "log_format", "text"))
