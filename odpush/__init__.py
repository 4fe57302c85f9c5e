"""odpush - chunked, resumable OneDrive uploads from rclone credentials."""

from .client import OneDrivePushClient
from .core.auth import TokenManager
from .core.config_store import ConfigStore
from .services.upload import ResumableUploader, partition
from .services.quota import QuotaReporter
from .stats import OperationStats

__version__ = "0.1.0"
__all__ = [
    "OneDrivePushClient",
    "TokenManager",
    "ConfigStore",
    "ResumableUploader",
    "partition",
    "QuotaReporter",
    "OperationStats",
]
