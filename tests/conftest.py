"""Pytest fixtures for odpush tests."""
import json
import threading
import time

import pytest

from odpush.core.config import TOKEN_URL
from odpush.core.config_store import ConfigStore
from odpush.models.remote import RemoteCredential, RemoteSettings
from odpush.utils.obscure import plain

MIB = 1024 * 1024
UPLOAD_URL = "https://upload.example.test/session/1"
FAR_FUTURE = "2099-01-01T00:00:00Z"


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code=200, json_data=None, text=None):
        self.status_code = status_code
        self._json = json_data
        self.text = text if text is not None else (json.dumps(json_data) if json_data is not None else "")

    def json(self):
        if self._json is None:
            raise ValueError("No JSON body")
        return self._json


class FakeSession:
    """Records every request and delegates the answer to a handler."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def request(self, method, url, **kwargs):
        with self._lock:
            self.calls.append((method, url, kwargs))
        result = self.handler(method, url, kwargs)
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        pass

    def calls_matching(self, method, fragment=""):
        with self._lock:
            return [c for c in self.calls if c[0] == method and fragment in c[1]]


class FakeDrive:
    """A fake Graph drive plus identity endpoint.

    ``chunk_statuses`` maps a chunk start offset to a list of statuses
    returned (in order) before the chunk is accepted.
    """

    def __init__(self, drive_id="drive-1", put_delay=0.0):
        self.drive_id = drive_id
        self.put_delay = put_delay
        self.chunk_statuses = {}
        self.token_statuses = []
        self.session_status = 200
        self.quota_status = 200
        self.received = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.dispatch_log = []
        self.on_dispatch = None
        self._lock = threading.Lock()
        self.session = FakeSession(self.handle)

    def handle(self, method, url, kwargs):
        if url == TOKEN_URL:
            return self._token()
        if method == "POST" and url.endswith(":/createUploadSession"):
            if self.session_status != 200:
                return FakeResponse(self.session_status, text="session refused")
            return FakeResponse(200, {"uploadUrl": UPLOAD_URL, "expirationDateTime": "2099-01-01T00:00:00Z"})
        if method == "PUT" and url == UPLOAD_URL:
            return self._chunk(kwargs)
        if method == "GET" and url.endswith(f"/drives/{self.drive_id}"):
            if self.quota_status != 200:
                return FakeResponse(self.quota_status, text="forbidden")
            return FakeResponse(
                200,
                {"id": self.drive_id, "quota": {"total": 100, "used": 40, "remaining": 60, "deleted": 5}},
            )
        return FakeResponse(404, text=f"unexpected {method} {url}")

    def _token(self):
        if self.token_statuses:
            status = self.token_statuses.pop(0)
            if status != 200:
                return FakeResponse(status, text="invalid_grant")
        return FakeResponse(
            200,
            {"access_token": "fresh-access", "refresh_token": "rotated-refresh", "expires_in": 3600},
        )

    def _chunk(self, kwargs):
        content_range = kwargs["headers"]["Content-Range"]
        span, total = content_range[len("bytes "):].split("/")
        start, end = (int(v) for v in span.split("-"))
        total = int(total)

        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
            self.dispatch_log.append(start)
            if self.on_dispatch:
                self.on_dispatch(start)
            statuses = self.chunk_statuses.get(start)
            status = statuses.pop(0) if statuses else None

        try:
            if self.put_delay:
                time.sleep(self.put_delay)
            if status is not None:
                return FakeResponse(status, text=f"status {status}")
            with self._lock:
                self.received.append((start, end + 1, len(kwargs["data"])))
            if end + 1 == total:
                return FakeResponse(201, {"id": "item-1", "name": "file.bin", "size": total, "webUrl": "https://onedrive.example/file.bin"})
            return FakeResponse(202, {"nextExpectedRanges": [f"{end + 1}-"]})
        finally:
            with self._lock:
                self.in_flight -= 1

    def puts_for(self, start):
        return [c for c in self.session.calls_matching("PUT") if c[2]["headers"]["Content-Range"].startswith(f"bytes {start}-")]


def make_config(expiry=FAR_FUTURE, remotes=("oned",), extra_lines=""):
    sections = []
    for name in remotes:
        token = json.dumps(
            {"access_token": f"{name}-access", "token_type": "Bearer", "refresh_token": f"{name}-refresh", "expiry": expiry}
        )
        sections.append(
            f"[{name}]\n"
            "type = onedrive\n"
            f"client_id = {name}-client\n"
            f"client_secret = {name}-secret\n"
            f"token = {token}\n"
            "drive_id = drive-1\n"
            "drive_type = business\n"
            f"{extra_lines}"
        )
    return "\n".join(sections).encode("utf-8")


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def remote_table():
    return {"oned": RemoteSettings(root_folder="Public", base_url="https://index.example.test")}


@pytest.fixture
def config_store(remote_table):
    return ConfigStore.parse(make_config(), decoder=plain, remote_table=remote_table)


@pytest.fixture
def credential():
    return RemoteCredential(
        name="oned",
        client_id="client",
        client_secret="secret",
        refresh_token="refresh",
        access_token="access",
        expiry=time.time() + 3600,
        drive_id="drive-1",
        drive_type="business",
    )
