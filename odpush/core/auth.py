"""Authentication module for odpush: OAuth2 refresh-token lifecycle."""

import dataclasses
import threading
import time

import requests
from rich.console import Console

from odpush.core.client import GraphClient, response_text
from odpush.core.config import TOKEN_SAFETY_MARGIN, TOKEN_URL
from odpush.core.errors import TokenError
from odpush.models.remote import RemoteCredential

console = Console(stderr=True)

REFRESH_ATTEMPTS = 2


class TokenManager:
    """Keeps each remote's access token valid, refreshing it before expiry.

    Credentials built from the config store are cached per remote name. Each
    remote has its own lock so concurrent callers share a single refresh.
    """

    def __init__(
        self,
        config_store,
        client=None,
        safety_margin=TOKEN_SAFETY_MARGIN,
        clock=time.time,
        token_url=TOKEN_URL,
    ):
        self.config_store = config_store
        self.client = client or GraphClient()
        self.safety_margin = safety_margin
        self.clock = clock
        self.token_url = token_url
        self._cache = {}
        self._locks = {}
        self._registry_lock = threading.Lock()

    def ensure_valid(self, credential: RemoteCredential, now=None, cancel=None) -> RemoteCredential:
        """Refresh ``credential`` in place unless it outlives the safety margin."""
        now = self.clock() if now is None else now
        if credential.is_valid(now, self.safety_margin):
            return credential

        error = None
        for attempt in range(1, REFRESH_ATTEMPTS + 1):
            try:
                self._refresh(credential, now, cancel)
                return credential
            except TokenError as e:
                error = e
                if attempt < REFRESH_ATTEMPTS:
                    console.print(
                        f"[yellow]Token refresh for '{credential.name}' failed "
                        f"(attempt {attempt}/{REFRESH_ATTEMPTS}): {e}[/yellow]"
                    )
        raise error

    def credential_for(self, name, cancel=None) -> RemoteCredential:
        """Return a snapshot of the cached, valid credential for ``name``."""
        with self._registry_lock:
            lock = self._locks.setdefault(name, threading.Lock())

        with lock:
            credential = self._cache.get(name)
            if credential is None:
                credential = self.config_store.get(name)
                self._cache[name] = credential
            self.ensure_valid(credential, cancel=cancel)
            return dataclasses.replace(credential, extra=dict(credential.extra))

    def invalidate(self, name=None):
        """Drop one cached credential, or all of them."""
        with self._registry_lock:
            names = list(self._locks) if name is None else [name]
            locks = [self._locks.setdefault(n, threading.Lock()) for n in names]

        for n, lock in zip(names, locks):
            with lock:
                self._cache.pop(n, None)

    @staticmethod
    def get_headers(credential: RemoteCredential):
        """Constructs the default headers for API requests."""
        if not credential.access_token:
            raise TokenError(f"Remote '{credential.name}' has no access token")
        return {"Authorization": f"Bearer {credential.access_token}"}

    def _refresh(self, credential, now, cancel):
        data = {
            "client_id": credential.client_id,
            "client_secret": credential.client_secret,
            "refresh_token": credential.refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            response = self.client.request("POST", self.token_url, cancel=cancel, data=data)
        except requests.exceptions.RequestException as e:
            raise TokenError(
                f"Token refresh for '{credential.name}' failed: {e}", cause=e
            ) from e

        if not 200 <= response.status_code < 300:
            raise TokenError(
                f"Token endpoint rejected refresh for '{credential.name}'",
                status=response.status_code,
                body=response_text(response),
            )

        try:
            payload = response.json()
            access_token = payload["access_token"]
            expires_in = float(payload["expires_in"])
        except (ValueError, KeyError, TypeError) as e:
            raise TokenError(
                f"Malformed token response for '{credential.name}'",
                status=response.status_code,
                body=response_text(response),
                cause=e,
            ) from e

        if not access_token:
            raise TokenError(f"Empty access token returned for '{credential.name}'")

        credential.access_token = access_token
        if payload.get("refresh_token"):
            credential.refresh_token = payload["refresh_token"]
        credential.expiry = now + expires_in
        self.client.stats.update(token_refreshes=1)
