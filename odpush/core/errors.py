"""Exception hierarchy for odpush."""

from typing import Optional


class OdpushError(Exception):
    """Base class for every error raised by odpush."""


class ConfigError(OdpushError):
    """Missing or malformed credential section or key."""


class ValidationError(OdpushError):
    """Caller input violates size, chunk or path constraints."""


class TokenError(OdpushError):
    """The refresh-token exchange failed."""

    def __init__(self, message, status=None, body=None, cause=None):
        super().__init__(message)
        self.status = status
        self.body = body
        self.cause = cause


class SessionError(OdpushError):
    """Upload-session creation or chunk transport failed."""

    def __init__(self, message, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body

    def __str__(self):
        text = super().__str__()
        if self.status is not None:
            text = f"{text} (HTTP {self.status})"
        if self.body:
            text = f"{text}: {self.body[:500]}"
        return text


class UploadError(SessionError):
    """A chunk exhausted its retries; the whole upload is aborted."""

    def __init__(
        self,
        message,
        status=None,
        body="",
        chunk_index=None,
        offset=None,
        last_acknowledged_offset=0,
    ):
        super().__init__(message, status=status, body=body)
        self.chunk_index = chunk_index
        self.offset = offset
        self.last_acknowledged_offset = last_acknowledged_offset


class UploadCancelled(UploadError):
    """The caller's cancel event was set while the upload was in flight."""


class QuotaError(OdpushError):
    """Drive quota could not be read."""


class InternalError(OdpushError):
    """Unexpected runtime fault converted at the package boundary."""
