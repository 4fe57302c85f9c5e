"""Tests for the rclone-style credential store."""
import json
from datetime import datetime, timezone

import pytest

from conftest import make_config
from odpush.core.config import ENV_OBSCURED_KEYS, get_obscured_keys, load_remote_table
from odpush.core.config_store import ConfigStore, parse_sections
from odpush.core.errors import ConfigError
from odpush.models.remote import RemoteSettings
from odpush.utils.obscure import obscure, plain


class TestParseSections:
    """Test suite for the INI grammar."""

    def test_sections_in_file_order(self):
        """Test list_remotes keeps file order."""
        store = ConfigStore.parse(make_config(remotes=("zeta", "alpha", "mid")), decoder=plain)
        assert store.list_remotes() == ["zeta", "alpha", "mid"]

    def test_comments_and_blank_lines_ignored(self):
        raw = b"# comment\n; another\n\n[a]\nkey = value\n"
        assert parse_sections(raw) == {"a": {"key": "value"}}

    def test_value_may_contain_equals(self):
        raw = b"[a]\nkey = x=y=z\n"
        assert parse_sections(raw)["a"]["key"] == "x=y=z"

    def test_key_outside_section(self):
        with pytest.raises(ConfigError):
            parse_sections(b"key = value\n")

    def test_line_without_equals(self):
        with pytest.raises(ConfigError):
            parse_sections(b"[a]\njust text\n")


class TestConfigStoreGet:
    """Test suite for building credentials."""

    def test_builds_credential(self, config_store):
        """Test a full section becomes a RemoteCredential."""
        credential = config_store.get("oned")

        assert credential.client_id == "oned-client"
        assert credential.client_secret == "oned-secret"
        assert credential.refresh_token == "oned-refresh"
        assert credential.access_token == "oned-access"
        assert credential.drive_id == "drive-1"
        assert credential.drive_type == "business"
        assert credential.expiry == datetime(2099, 1, 1, tzinfo=timezone.utc).timestamp()

    def test_remote_table_applied(self, config_store):
        credential = config_store.get("oned")
        assert credential.root_folder == "Public"
        assert credential.base_url == "https://index.example.test"

    def test_root_folder_override(self, remote_table):
        """Test a section's root_folder beats the remote table."""
        store = ConfigStore.parse(
            make_config(extra_lines="root_folder = Override\n"),
            decoder=plain,
            remote_table=remote_table,
        )
        assert store.get("oned").root_folder == "Override"

    def test_unknown_keys_preserved(self):
        store = ConfigStore.parse(make_config(extra_lines="region = global\n"), decoder=plain)
        assert store.get("oned").extra == {"region": "global"}

    def test_each_get_is_fresh(self, config_store):
        first = config_store.get("oned")
        first.access_token = "mutated"
        assert config_store.get("oned").access_token == "oned-access"

    def test_missing_remote(self, config_store):
        with pytest.raises(ConfigError, match="not found"):
            config_store.get("nope")

    @pytest.mark.parametrize("key", ["client_id", "client_secret", "token", "drive_id"])
    def test_missing_required_key(self, key):
        """Test every required key is enforced."""
        lines = [line for line in make_config().decode().splitlines() if not line.startswith(f"{key} =")]
        store = ConfigStore.parse("\n".join(lines).encode(), decoder=plain)
        with pytest.raises(ConfigError, match=key):
            store.get("oned")

    def test_token_not_json(self):
        store = ConfigStore.parse(
            b"[a]\nclient_id = c\nclient_secret = s\ntoken = {broken\ndrive_id = d\n", decoder=plain
        )
        with pytest.raises(ConfigError, match="JSON"):
            store.get("a")

    def test_token_without_refresh_token(self):
        token = json.dumps({"access_token": "x", "expiry": "2099-01-01T00:00:00Z"})
        raw = f"[a]\nclient_id = c\nclient_secret = s\ntoken = {token}\ndrive_id = d\n".encode()
        with pytest.raises(ConfigError, match="refresh_token"):
            ConfigStore.parse(raw, decoder=plain).get("a")

    def test_nanosecond_expiry(self):
        """Test rclone's nine-digit fractional seconds parse."""
        store = ConfigStore.parse(make_config(expiry="2024-03-01T10:00:00.123456789+02:00"), decoder=plain)
        expected = datetime(2024, 3, 1, 8, 0, 0, 123456, tzinfo=timezone.utc).timestamp()
        assert store.get("oned").expiry == pytest.approx(expected)

    def test_unparsable_expiry(self):
        store = ConfigStore.parse(make_config(expiry="yesterday"), decoder=plain)
        with pytest.raises(ConfigError, match="expiry"):
            store.get("oned")


class TestObscuredSecrets:
    """Test suite for decoding obscured values."""

    def test_plain_text_secret_by_default(self):
        """Test an rclone onedrive secret, written in clear, loads with the defaults."""
        raw = make_config().replace(b"oned-secret", b"Ab1~cD2.eF3_gH4-iJ5kL6mN7")
        assert ConfigStore.parse(raw).get("oned").client_secret == "Ab1~cD2.eF3_gH4-iJ5kL6mN7"

    def test_obscured_client_secret_revealed(self):
        raw = make_config().replace(b"oned-secret", obscure("real-secret").encode())
        store = ConfigStore.parse(raw, obscured_keys=("client_secret",))
        assert store.get("oned").client_secret == "real-secret"

    def test_custom_obscured_keys(self):
        raw = make_config().replace(b"oned-client", obscure("real-client").encode())
        store = ConfigStore.parse(raw, obscured_keys=("client_id",))
        credential = store.get("oned")
        assert credential.client_id == "real-client"
        assert credential.client_secret == "oned-secret"

    def test_undecodable_secret(self):
        with pytest.raises(ConfigError, match="client_secret"):
            ConfigStore.parse(make_config(), obscured_keys=("client_secret",)).get("oned")

    def test_obscured_keys_from_argument(self, monkeypatch):
        monkeypatch.setenv(ENV_OBSCURED_KEYS, "token")
        assert get_obscured_keys(" client_secret, client_id ,") == ("client_secret", "client_id")

    def test_obscured_keys_from_environment(self, monkeypatch):
        monkeypatch.setenv(ENV_OBSCURED_KEYS, "client_secret")
        assert get_obscured_keys() == ("client_secret",)

    def test_no_obscured_keys_by_default(self, monkeypatch):
        monkeypatch.delenv(ENV_OBSCURED_KEYS, raising=False)
        assert get_obscured_keys() == ()


class TestLoadAll:
    """Test suite for loading every remote at once."""

    def test_broken_remote_skipped(self):
        raw = make_config(remotes=("good",)) + b"\n[broken]\nclient_id = x\n"
        credentials = ConfigStore.parse(raw, decoder=plain).load_all()
        assert list(credentials) == ["good"]


class TestRemoteTable:
    """Test suite for the JSON remote table."""

    def test_load(self, tmp_path):
        path = tmp_path / "remotes.json"
        path.write_text(json.dumps({"oned": {"root_folder": "Public", "base_url": "https://x"}, "bare": {}}))

        table = load_remote_table(str(path))

        assert table["oned"] == RemoteSettings(root_folder="Public", base_url="https://x")
        assert table["bare"] == RemoteSettings()

    def test_no_path_is_empty(self, monkeypatch):
        monkeypatch.delenv("ODPUSH_REMOTES_FILE", raising=False)
        assert load_remote_table() == {}

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "remotes.json"
        path.write_text("[not an object]")
        with pytest.raises(ConfigError):
            load_remote_table(str(path))

    def test_from_file_missing(self, tmp_path):
        with pytest.raises(ConfigError):
            ConfigStore.from_file(str(tmp_path / "missing.conf"))
