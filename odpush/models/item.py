"""Drive item and quota models for odpush."""

from dataclasses import dataclass
from typing import Optional, Dict, Any


@dataclass
class ItemMetadata:
    """Represents an uploaded file in OneDrive."""

    id: str
    name: str
    size: int
    web_url: Optional[str] = None
    download_url: Optional[str] = None

    @classmethod
    def from_api_response(cls, item: Dict[str, Any]) -> "ItemMetadata":
        """Create an ItemMetadata object from OneDrive API response data."""
        return cls(
            id=item.get("id", ""),
            name=item.get("name", ""),
            size=int(item.get("size", 0)),
            web_url=item.get("webUrl"),
        )


@dataclass
class Quota:
    """Storage capacity accounting for a drive, in bytes."""

    total: int
    used: int
    remaining: int
    deleted: int

    @classmethod
    def from_api_response(cls, quota: Dict[str, Any]) -> "Quota":
        return cls(
            total=int(quota.get("total", 0)),
            used=int(quota.get("used", 0)),
            remaining=int(quota.get("remaining", 0)),
            deleted=int(quota.get("deleted", 0)),
        )
