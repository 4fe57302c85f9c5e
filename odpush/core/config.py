"""Configuration constants for odpush."""

import json
import os

from odpush.core.errors import ConfigError
from odpush.models.remote import RemoteSettings

# Microsoft Graph API constants
GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
TOKEN_URL = "https://login.microsoftonline.com/common/oauth2/v2.0/token"

# Upload limits
MIB = 1024 * 1024
MIN_CHUNK_SIZE = 2 * MIB
MAX_CHUNK_SIZE = 32 * MIB
MAX_FILE_SIZE = 5 * 1024 * MIB  # 5 GiB
MIN_PARALLELISM = 1
MAX_PARALLELISM = 4
DEFAULT_CHUNK_SIZE_MB = 10
DEFAULT_MAX_RETRIES = 5
DEFAULT_RETRY_DELAY = 10.0  # seconds

# Token lifecycle
TOKEN_SAFETY_MARGIN = 300  # seconds
REQUEST_TIMEOUT = 30  # seconds
CHUNK_TIMEOUT = 300  # seconds

# Credential fields
REQUIRED_KEYS = ("client_id", "client_secret", "token", "drive_id")
# rclone stores onedrive secrets in plain text; obscured keys are opt-in.
OBSCURED_KEYS = ()
DEFAULT_OBSCURE_VERSION = 1

# Environment variable names
ENV_RCLONE_CONFIG = "ODPUSH_RCLONE_CONFIG"
ENV_REMOTES_FILE = "ODPUSH_REMOTES_FILE"
ENV_OBSCURED_KEYS = "ODPUSH_OBSCURED_KEYS"
DEFAULT_RCLONE_CONFIG = os.path.join("~", ".config", "rclone", "rclone.conf")


def get_config_path():
    """Resolve the credential file path from the environment."""
    return os.path.expanduser(os.getenv(ENV_RCLONE_CONFIG) or DEFAULT_RCLONE_CONFIG)


def get_obscured_keys(value=None):
    """Comma-separated key names from ``value`` or ``ODPUSH_OBSCURED_KEYS``."""
    raw = value if value is not None else os.getenv(ENV_OBSCURED_KEYS)
    if not raw:
        return OBSCURED_KEYS
    return tuple(key.strip() for key in raw.split(",") if key.strip())


def load_remote_table(path=None) -> dict[str, RemoteSettings]:
    """Load the ``remote -> {root_folder, base_url}`` table from a JSON file.

    Falls back to ``ODPUSH_REMOTES_FILE`` and returns an empty table when
    neither is set.
    """
    path = path or os.getenv(ENV_REMOTES_FILE)
    if not path:
        return {}

    try:
        with open(os.path.expanduser(path), "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigError(f"Cannot read remote table {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Remote table {path} must be a JSON object")

    table = {}
    for name, entry in data.items():
        if not isinstance(entry, dict):
            raise ConfigError(f"Remote table entry '{name}' must be an object")
        table[name] = RemoteSettings(
            root_folder=entry.get("root_folder", "") or "",
            base_url=entry.get("base_url"),
        )
    return table
