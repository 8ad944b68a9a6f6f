"""In-memory stand-ins for the coordination backend, mounted as requests transport adapters"""

from __future__ import annotations

import json
import threading
import time
import uuid
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, unquote, urlsplit

import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict


@dataclass
class RecordedRequest:
    method: str
    path: str
    params: dict[str, str]
    headers: dict[str, str] = field(default_factory=dict)
    body: object = None

    @classmethod
    def from_prepared(cls, request: requests.PreparedRequest) -> RecordedRequest:
        url = urlsplit(request.url)
        body = request.body
        if isinstance(body, bytes):
            body = body.decode("utf-8")
        return cls(
            method=request.method,
            path=unquote(url.path),
            params=dict(parse_qsl(url.query)),
            headers=dict(request.headers),
            body=json.loads(body) if body else None,
        )


def build_response(
    request: requests.PreparedRequest,
    status: int,
    payload: object = None,
    *,
    index: int | None = None,
    raw: bytes | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.request = request
    response.url = request.url
    response.encoding = "utf-8"
    response.headers = CaseInsensitiveDict({"Content-Type": "application/json"})
    if index is not None:
        response.headers["X-Consul-Index"] = str(index)
    if raw is not None:
        response._content = raw
    elif payload is not None:
        response._content = json.dumps(payload).encode("utf-8")
    else:
        response._content = b""
    return response


def reply(status: int, payload: object = None, *, index: int | None = None, raw: bytes | None = None) -> dict:
    """Canned response for ScriptedConsul."""
    return {"status": status, "payload": payload, "index": index, "raw": raw}


class ScriptedConsul(BaseAdapter):
    """Adapter that answers requests from a fixed script, in order."""

    def __init__(self, *script: dict | Exception):
        super().__init__()
        self.script = list(script)
        self.requests: list[RecordedRequest] = []

    def send(self, request, **kwargs):
        self.requests.append(RecordedRequest.from_prepared(request))
        if not self.script:
            raise AssertionError(f"Unexpected request {request.method} {request.url}")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return build_response(request, item["status"], item["payload"], index=item["index"], raw=item["raw"])

    def close(self):
        pass

    def gets(self) -> list[RecordedRequest]:
        return [r for r in self.requests if r.method == "GET"]


class FakeConsul(BaseAdapter):
    """In-memory KV store with sessions, blocking queries and acquire semantics."""

    def __init__(self, max_wait: float = 0.5):
        super().__init__()
        self.entries: dict[str, dict] = {}
        self.sessions: dict[str, dict] = {}
        self.index = 1
        self.max_wait = max_wait
        self.sessions_created = 0
        self.sessions_destroyed = 0
        self.session_bodies: list[object] = []
        self.requests: list[RecordedRequest] = []
        self.failures: dict[tuple[str, str], int] = {}
        self.before_acquire = None
        self._cond = threading.Condition(threading.RLock())

    # ----- test helpers -----

    def hold(self, key: str, name: str = "other-holder") -> str:
        """Lock ``key`` (full KV path, e.g. ``locks/job``) with a fresh session."""
        with self._cond:
            session_id = self._create_session({"Name": name})
            assert self._acquire(key, session_id)
            return session_id

    def destroy(self, session_id: str) -> None:
        with self._cond:
            self._destroy_session(session_id)

    def holder(self, key: str) -> str | None:
        with self._cond:
            entry = self.entries.get(key)
            return entry.get("Session") if entry else None

    def fail(self, method: str, path_prefix: str, status: int) -> None:
        self.failures[(method, path_prefix)] = status

    def gets(self, key: str | None = None) -> list[RecordedRequest]:
        with self._cond:
            return [
                r for r in self.requests
                if r.method == "GET" and (key is None or r.path == f"/v1/kv/{key}")
            ]

    # ----- adapter -----

    def send(self, request, **kwargs):
        recorded = RecordedRequest.from_prepared(request)
        with self._cond:
            self.requests.append(recorded)
        for (method, prefix), status in self.failures.items():
            if recorded.method == method and recorded.path.startswith(prefix):
                return build_response(request, status, raw=b"forced failure")

        path, params = recorded.path, recorded.params
        if path.startswith("/v1/kv/"):
            key = path[len("/v1/kv/"):]
            if recorded.method == "GET":
                return self._get(request, key, params)
            if recorded.method == "PUT" and "acquire" in params:
                if self.before_acquire is not None:
                    self.before_acquire(key)
                with self._cond:
                    if params["acquire"] not in self.sessions:
                        return build_response(request, 500, raw=b"invalid session")
                    return build_response(request, 200, self._acquire(key, params["acquire"]))
            if recorded.method == "DELETE":
                with self._cond:
                    if self.entries.pop(key, None) is not None:
                        self._bump()
                    return build_response(request, 200, True)
        if path == "/v1/session/create" and recorded.method == "PUT":
            with self._cond:
                self.session_bodies.append(recorded.body)
                return build_response(request, 200, {"ID": self._create_session(recorded.body or {})})
        if path.startswith("/v1/session/destroy/") and recorded.method == "PUT":
            with self._cond:
                self._destroy_session(path.rsplit("/", 1)[1])
                return build_response(request, 200, True)
        return build_response(request, 404, raw=b"unknown endpoint")

    def close(self):
        pass

    def _get(self, request, key, params):
        with self._cond:
            if "index" in params:
                target = int(params["index"])
                deadline = time.monotonic() + self.max_wait
                while self._key_index(key) <= target:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
            entry = self.entries.get(key)
            index = self._key_index(key)
            if entry is None:
                return build_response(request, 404, index=index)
            return build_response(request, 200, [dict(entry)], index=index)

    def _key_index(self, key: str) -> int:
        entry = self.entries.get(key)
        return entry["ModifyIndex"] if entry else self.index

    def _bump(self) -> int:
        self.index += 1
        self._cond.notify_all()
        return self.index

    def _create_session(self, body: dict) -> str:
        session_id = str(uuid.uuid4())
        self.sessions[session_id] = dict(body)
        self.sessions_created += 1
        return session_id

    def _acquire(self, key: str, session_id: str) -> bool:
        entry = self.entries.get(key)
        if entry is not None and entry.get("Session") and entry["Session"] != session_id:
            return False
        index = self._bump()
        if entry is None:
            entry = {"Key": key, "CreateIndex": index, "LockIndex": 0, "Flags": 0, "Value": None}
            self.entries[key] = entry
        if entry.get("Session") != session_id:
            entry["LockIndex"] += 1
        entry["Session"] = session_id
        entry["ModifyIndex"] = index
        return True

    def _destroy_session(self, session_id: str) -> None:
        if self.sessions.pop(session_id, None) is None:
            return
        self.sessions_destroyed += 1
        for entry in self.entries.values():
            if entry.get("Session") == session_id:
                del entry["Session"]
                entry["ModifyIndex"] = self._bump()


def mounted_session(adapter: BaseAdapter) -> requests.Session:
    session = requests.Session()
    session.mount("http://", adapter)
    return session

