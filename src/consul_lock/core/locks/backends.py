"""Coordination backend client.

Design principles:
- Ownership is defined by backend state only: a KV entry whose Session
  field names the holder.
- The acquire write is the sole mutation that grants a lock; this client
  never emulates locking locally.
- Every call either returns decoded data or raises APIError. Nothing here
  retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import quote

import requests

from consul_lock.core.config import BackendConfig, SessionCreateMode
from consul_lock.core.constants import (
    CONSUL_INDEX_HEADER,
    CONSUL_TOKEN_HEADER,
    NO_INDEX,
    SESSION_NAME_PREFIX,
)
from consul_lock.core.exceptions import APIError

logger = logging.getLogger(__name__)

# Hints attached to unexpected statuses so the one-line error is actionable
_STATUS_HINTS: dict[int, str] = {
    400: "Bad request (check the key name and lock delay)",
    403: "Permission denied (ACL token missing or lacks key/session write)",
    429: "Rate limited by the agent",
    500: "Backend error (session may be invalid or expired)",
    503: "Backend unavailable (no cluster leader?)",
}


@dataclass
class KVEntry:
    """Backend record for a single key."""

    key: str
    create_index: int = 0
    modify_index: int = 0
    lock_index: int = 0
    flags: int = 0
    value: str | None = None
    session: str = ""

    @property
    def locked(self) -> bool:
        return self.session != ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KVEntry:
        try:
            return cls(
                key=str(data["Key"]),
                create_index=int(data.get("CreateIndex", 0)),
                modify_index=int(data.get("ModifyIndex", 0)),
                lock_index=int(data.get("LockIndex", 0)),
                flags=int(data.get("Flags", 0)),
                value=data.get("Value"),
                session=str(data.get("Session") or ""),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise APIError("Malformed KV entry", operation="read", details=repr(data), original_error=e) from e


@dataclass
class SessionHandle:
    """Ephemeral ownership token created by the backend."""

    id: str
    name: str = ""
    lock_delay: int | None = None


class ReadStatus(Enum):
    """Outcome of a KV read, as far as lock eligibility is concerned."""

    NOT_FOUND = "not_found"  # Key never created
    UNLOCKED = "unlocked"  # Entry exists, no session
    LOCKED = "locked"  # Entry held by a session


@dataclass
class ReadResult:
    """A classified KV read plus the index to watch from next."""

    status: ReadStatus
    index: int | None = NO_INDEX
    entry: KVEntry | None = None

    @property
    def eligible(self) -> bool:
        return self.status is not ReadStatus.LOCKED


def parse_index(headers: Any) -> int | None:
    """Return the watch index from response headers, or NO_INDEX when absent."""
    raw = headers.get(CONSUL_INDEX_HEADER)
    if not raw:
        return NO_INDEX
    try:
        return int(raw)
    except ValueError:
        logger.debug("Ignoring unparseable %s header: %r", CONSUL_INDEX_HEADER, raw)
        return NO_INDEX


class ConsulKVBackend:
    """HTTP client for the KV store and session endpoints."""

    name = "consul"

    def __init__(self, config: BackendConfig | None = None, session: requests.Session | None = None):
        self.config = config or BackendConfig()
        self.http = session or requests.Session()
        if self.config.token:
            self.http.headers[CONSUL_TOKEN_HEADER] = self.config.token

    def kv_path(self, key: str) -> str:
        return f"/v1/kv/{self.config.prefix}/{quote(key, safe='/')}"

    def read(self, key: str, index: int | None = NO_INDEX) -> ReadResult:
        """Read the entry for ``key``; long-poll when an index is known."""
        params = None
        if index is not NO_INDEX:
            params = {"wait": self.config.wait, "index": index}
        response = self._call("GET", self.kv_path(key), operation="read", params=params)
        new_index = parse_index(response.headers)

        if response.status_code == requests.codes.not_found:
            return ReadResult(status=ReadStatus.NOT_FOUND, index=new_index)
        if response.status_code != requests.codes.ok:
            raise APIError(
                f"Unexpected response reading {self.kv_path(key)}",
                status_code=response.status_code,
                operation="read",
                details=_STATUS_HINTS.get(response.status_code),
            )

        payload = self._decode(response, operation="read")
        if not isinstance(payload, list) or not payload or not isinstance(payload[0], dict):
            raise APIError(f"Invalid response {self.kv_path(key)}", operation="read", details=repr(payload))
        entry = KVEntry.from_dict(payload[0])
        logger.debug("KV entry %r", entry)
        status = ReadStatus.LOCKED if entry.locked else ReadStatus.UNLOCKED
        return ReadResult(status=status, index=new_index, entry=entry)

    def create_session(self, key: str, lock_delay: int) -> SessionHandle:
        """Create a session to own ``key``; lock delay is passed through untouched."""
        body = None
        name = ""
        if self.config.session_mode is SessionCreateMode.STRUCTURED:
            name = f"{SESSION_NAME_PREFIX}{key}"
            body = {"LockDelay": f"{lock_delay}s", "Name": name}
            logger.debug("Session request body %s", body)
        response = self._call("PUT", "/v1/session/create", operation="session create", json=body)
        self._expect_ok(response, "session create")
        payload = self._decode(response, operation="session create")
        if not isinstance(payload, dict) or not payload.get("ID"):
            raise APIError("Invalid session response", operation="session create", details=repr(payload))
        handle = SessionHandle(id=str(payload["ID"]), name=name, lock_delay=lock_delay)
        logger.debug("Created session %s", handle.id)
        return handle

    def acquire(self, key: str, session_id: str) -> bool:
        """Conditional write: true only if ``key`` was unheld at write time."""
        response = self._call("PUT", self.kv_path(key), operation="acquire", params={"acquire": session_id})
        return self._expect_bool(response, "acquire")

    def destroy_session(self, session_id: str) -> bool:
        response = self._call("PUT", f"/v1/session/destroy/{session_id}", operation="session destroy")
        return self._expect_bool(response, "session destroy")

    def delete(self, key: str) -> bool:
        response = self._call("DELETE", self.kv_path(key), operation="delete")
        return self._expect_bool(response, "delete")

    def _call(self, method: str, path: str, *, operation: str, **kwargs: Any) -> requests.Response:
        url = f"{self.config.address}{path}"
        logger.debug("callAPI %s %s params=%s", method, url, kwargs.get("params"))
        try:
            response = self.http.request(method, url, timeout=self.config.timeout, **kwargs)
        except requests.RequestException as e:
            raise APIError("Backend request failed", operation=operation, details=str(e), original_error=e) from e
        logger.debug(
            "%s %s -> %s (index=%s)",
            method,
            path,
            response.status_code,
            response.headers.get(CONSUL_INDEX_HEADER),
        )
        return response

    @staticmethod
    def _decode(response: requests.Response, *, operation: str) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise APIError(
                "Malformed response body",
                status_code=response.status_code,
                operation=operation,
                details=response.text[:200],
                original_error=e,
            ) from e

    @staticmethod
    def _expect_ok(response: requests.Response, operation: str) -> None:
        if response.status_code != requests.codes.ok:
            raise APIError(
                "Invalid status",
                status_code=response.status_code,
                operation=operation,
                details=_STATUS_HINTS.get(response.status_code),
            )

    def _expect_bool(self, response: requests.Response, operation: str) -> bool:
        self._expect_ok(response, operation)
        payload = self._decode(response, operation=operation)
        if not isinstance(payload, bool):
            raise APIError("Expected a boolean response", operation=operation, details=repr(payload))
        return payload
