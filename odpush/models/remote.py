"""Remote and credential models for odpush."""

from dataclasses import dataclass, field
from typing import Optional, Dict


@dataclass(frozen=True)
class RemoteSettings:
    """Per-deployment settings for a remote: upload root and index URL."""

    root_folder: str = ""
    base_url: Optional[str] = None


@dataclass
class RemoteCredential:
    """OAuth2 credentials and drive coordinates for one remote."""

    name: str
    client_id: str
    client_secret: str
    refresh_token: str
    access_token: str = ""
    expiry: float = 0.0  # epoch seconds
    drive_id: str = ""
    drive_type: str = ""
    base_url: Optional[str] = None
    root_folder: str = ""
    extra: Dict[str, str] = field(default_factory=dict)

    def is_valid(self, now: float, margin: float) -> bool:
        """True while the access token outlives ``now + margin``."""
        return bool(self.access_token) and now + margin < self.expiry

    def download_url(self, remote_folder: str, file_name: str) -> Optional[str]:
        """Build the public index URL for an uploaded file."""
        if not self.base_url:
            return None
        parts = [self.base_url.rstrip("/")]
        folder = (remote_folder or "").strip("/")
        if folder:
            parts.append(folder)
        parts.append(file_name)
        return "/".join(parts)


@dataclass
class TokenGrant:
    """Token material handed to trusted callers."""

    access_token: str
    refresh_token: str
    expires_in: int
    client_id: str
    client_secret: str
    drive_id: str
    drive_type: str
    base_url: Optional[str]
    root_path: str

    @classmethod
    def from_credential(cls, credential: RemoteCredential, now: float) -> "TokenGrant":
        return cls(
            access_token=credential.access_token,
            refresh_token=credential.refresh_token,
            expires_in=max(0, int(credential.expiry - now)),
            client_id=credential.client_id,
            client_secret=credential.client_secret,
            drive_id=credential.drive_id,
            drive_type=credential.drive_type,
            base_url=credential.base_url,
            root_path=credential.root_folder,
        )
