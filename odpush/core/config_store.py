"""Credential store for odpush, reading rclone-style configuration files."""

import json
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from rich.console import Console

from odpush.core.config import OBSCURED_KEYS, REQUIRED_KEYS
from odpush.core.errors import ConfigError
from odpush.models.remote import RemoteCredential, RemoteSettings
from odpush.utils.helpers import parse_rfc3339
from odpush.utils.obscure import reveal

console = Console(stderr=True)

_KNOWN_KEYS = {
    "type",
    "client_id",
    "client_secret",
    "token",
    "drive_id",
    "drive_type",
    "root_folder",
}


def parse_sections(raw: bytes) -> Dict[str, Dict[str, str]]:
    """Split INI-style text into ``{section: {key: value}}`` in file order."""
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ConfigError(f"Credential file is not valid UTF-8: {e}") from e

    sections: Dict[str, Dict[str, str]] = {}
    current = None

    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line or line[0] in "#;":
            continue

        if line.startswith("[") and line.endswith("]"):
            name = line[1:-1].strip()
            if not name:
                raise ConfigError(f"Empty section name on line {lineno}")
            current = sections.setdefault(name, {})
            continue

        if "=" not in line:
            raise ConfigError(f"Expected 'key = value' on line {lineno}")
        if current is None:
            raise ConfigError(f"Key outside of any section on line {lineno}")

        key, value = line.split("=", 1)
        current[key.strip()] = value.strip()

    return sections


class ConfigStore:
    """Parsed credential sections, turned into RemoteCredential records on demand."""

    def __init__(
        self,
        sections: Dict[str, Dict[str, str]],
        decoder: Callable[[str], str] = reveal,
        remote_table: Optional[Mapping[str, RemoteSettings]] = None,
        obscured_keys: Iterable[str] = OBSCURED_KEYS,
    ):
        self._sections = sections
        self.decoder = decoder
        self.remote_table = dict(remote_table or {})
        self.obscured_keys = frozenset(obscured_keys)

    @classmethod
    def parse(cls, raw: bytes, **kwargs) -> "ConfigStore":
        """Parse raw credential-file bytes."""
        return cls(parse_sections(raw), **kwargs)

    @classmethod
    def from_file(cls, path, **kwargs) -> "ConfigStore":
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise ConfigError(f"Cannot read credential file {path}: {e}") from e
        return cls.parse(raw, **kwargs)

    def list_remotes(self) -> List[str]:
        """All section names, in file order."""
        return list(self._sections)

    def get(self, name: str) -> RemoteCredential:
        """Build a fresh credential for ``name``."""
        section = self._sections.get(name)
        if section is None:
            raise ConfigError(f"Remote '{name}' not found in credential file")

        missing = [key for key in REQUIRED_KEYS if not section.get(key)]
        if missing:
            raise ConfigError(
                f"Remote '{name}' is missing required keys: {', '.join(missing)}"
            )

        values = {
            key: self._decode(name, key, value) for key, value in section.items()
        }
        token = self._parse_token(name, values["token"])
        settings = self.remote_table.get(name, RemoteSettings())

        return RemoteCredential(
            name=name,
            client_id=values["client_id"],
            client_secret=values["client_secret"],
            refresh_token=token["refresh_token"],
            access_token=token.get("access_token", "") or "",
            expiry=token["expiry"],
            drive_id=values["drive_id"],
            drive_type=values.get("drive_type", ""),
            base_url=settings.base_url,
            root_folder=values.get("root_folder", settings.root_folder),
            extra={k: v for k, v in values.items() if k not in _KNOWN_KEYS},
        )

    def load_all(self) -> Dict[str, RemoteCredential]:
        """Credentials for every section that parses; broken ones are reported and skipped."""
        credentials = {}
        for name in self.list_remotes():
            try:
                credentials[name] = self.get(name)
            except ConfigError as e:
                console.print(f"[yellow]Skipping remote '{name}': {e}[/yellow]")
        return credentials

    def _decode(self, name, key, value):
        if key not in self.obscured_keys:
            return value
        try:
            return self.decoder(value)
        except ConfigError as e:
            raise ConfigError(f"Remote '{name}': cannot decode '{key}': {e}") from e

    @staticmethod
    def _parse_token(name, raw_token):
        try:
            token = json.loads(raw_token)
        except ValueError as e:
            raise ConfigError(f"Remote '{name}': token is not valid JSON") from e

        if not isinstance(token, dict) or not token.get("refresh_token"):
            raise ConfigError(f"Remote '{name}': token has no refresh_token")

        expiry = token.get("expiry")
        if expiry:
            try:
                token["expiry"] = parse_rfc3339(str(expiry)).timestamp()
            except ValueError as e:
                raise ConfigError(
                    f"Remote '{name}': cannot parse token expiry '{expiry}'"
                ) from e
        else:
            token["expiry"] = 0.0
        return token
