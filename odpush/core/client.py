"""Shared Microsoft Graph transport for odpush."""

import threading
import time
from urllib.parse import quote

import requests

from odpush.core.config import GRAPH_API_ENDPOINT, REQUEST_TIMEOUT
from odpush.core.errors import UploadCancelled
from odpush.stats import OperationStats


class GraphClient:
    """Owns the pooled HTTP session every outbound call goes through."""

    def __init__(self, session=None, timeout=REQUEST_TIMEOUT, base_url=GRAPH_API_ENDPOINT):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")
        self.stats = OperationStats()

    def drive_url(self, drive_id):
        """Base URL for Graph calls against a specific drive."""
        return f"{self.base_url}/drives/{drive_id}"

    def item_path_url(self, drive_id, remote_path, action=None):
        """URL addressing a drive item by path, optionally with an action segment."""
        url = f"{self.drive_url(drive_id)}/root:/{quote(remote_path)}:"
        if action:
            url = f"{url}/{action}"
        return url

    def request(self, method, url, cancel=None, **kwargs) -> requests.Response:
        """Send a request unless the cancel event is already set."""
        check_cancelled(cancel)
        kwargs.setdefault("timeout", self.timeout)
        return self.session.request(method, url, **kwargs)

    def close(self):
        self.session.close()


class CancelScope:
    """A cancel event that also trips when its parent event is set."""

    poll_interval = 0.1

    def __init__(self, parent=None):
        self.parent = parent
        self._event = threading.Event()

    def set(self):
        self._event.set()

    def is_set(self):
        return self._event.is_set() or (self.parent is not None and self.parent.is_set())

    def wait(self, timeout):
        """Sleep up to ``timeout`` seconds; True as soon as either event is set."""
        deadline = time.monotonic() + timeout
        while not self.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            self._event.wait(min(remaining, self.poll_interval))
        return True


def check_cancelled(cancel, message="Operation cancelled"):
    if cancel is not None and cancel.is_set():
        raise UploadCancelled(message)


def wait_or_cancel(cancel, seconds, message="Operation cancelled"):
    """Sleep between retries, waking early if the cancel event is set."""
    if seconds <= 0:
        check_cancelled(cancel, message)
        return
    if cancel is None:
        time.sleep(seconds)
    elif cancel.wait(seconds):
        raise UploadCancelled(message)


def response_text(response, limit=2000):
    """Best-effort body text for error reporting."""
    try:
        return response.text[:limit]
    except (AttributeError, TypeError, ValueError):
        return ""
