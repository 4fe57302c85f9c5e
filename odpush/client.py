"""Entry points for odpush: upload, token issuance and quota reporting."""

from contextlib import contextmanager

from rich.console import Console

from odpush.core.auth import TokenManager
from odpush.core.client import GraphClient
from odpush.core.config import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_OBSCURE_VERSION,
    DEFAULT_RETRY_DELAY,
    MIB,
    get_config_path,
    get_obscured_keys,
    load_remote_table,
)
from odpush.core.config_store import ConfigStore
from odpush.core.errors import InternalError, OdpushError, UploadCancelled, ValidationError
from odpush.models.item import ItemMetadata, Quota
from odpush.models.remote import TokenGrant
from odpush.services.quota import QuotaReporter
from odpush.services.upload import ResumableUploader, validate_upload
from odpush.utils.helpers import join_remote_path
from odpush.utils.obscure import get_decoder

console = Console(stderr=True)


@contextmanager
def _boundary(operation):
    """Convert unexpected faults into InternalError."""
    try:
        yield
    except OdpushError:
        raise
    except Exception as e:
        raise InternalError(f"Unexpected error during {operation}: {e}") from e


class OneDrivePushClient:
    """Wires the config store, token manager and services around one HTTP session."""

    def __init__(
        self,
        config_store: ConfigStore,
        session=None,
        max_retries=DEFAULT_MAX_RETRIES,
        retry_delay=DEFAULT_RETRY_DELAY,
        out_of_order_tolerant=False,
        limiter=None,
        token_manager=None,
    ):
        if config_store is None:
            raise InternalError("OneDrivePushClient requires a config store")

        self.config_store = config_store
        self.client = GraphClient(session)
        self.token_manager = token_manager or TokenManager(config_store, self.client)
        self.uploader = ResumableUploader(
            self.client,
            self.token_manager,
            max_retries=max_retries,
            retry_delay=retry_delay,
            out_of_order_tolerant=out_of_order_tolerant,
            limiter=limiter,
        )
        self.quota_reporter = QuotaReporter(self.client, self.token_manager)

    @classmethod
    def from_environment(
        cls,
        config_path=None,
        remotes_file=None,
        obscured_keys=None,
        obscure_version=DEFAULT_OBSCURE_VERSION,
        **kwargs,
    ):
        """Build a client from ``ODPUSH_RCLONE_CONFIG`` and ``ODPUSH_REMOTES_FILE``.

        ``obscured_keys`` is a comma-separated list of config keys stored in
        rclone's obscured form; ``ODPUSH_OBSCURED_KEYS`` is used when omitted.
        """
        config_store = ConfigStore.from_file(
            config_path or get_config_path(),
            decoder=get_decoder(obscure_version),
            remote_table=load_remote_table(remotes_file),
            obscured_keys=get_obscured_keys(obscured_keys),
        )
        return cls(config_store, **kwargs)

    @property
    def stats(self):
        return self.client.stats

    def list_remotes(self):
        return self.config_store.list_remotes()

    def upload(
        self,
        remote_name,
        stream,
        size,
        remote_folder,
        remote_file_name,
        chunk_size_mb,
        parallelism=1,
        cancel=None,
        progress_callback=None,
    ) -> ItemMetadata:
        """Upload a stream of known size to ``remote_folder/remote_file_name``."""
        with _boundary("upload"):
            if not remote_file_name:
                raise ValidationError("File name is required")
            if not isinstance(chunk_size_mb, int):
                raise ValidationError(f"Chunk size must be a whole number of MiB, got {chunk_size_mb!r}")
            chunk_size = chunk_size_mb * MIB
            validate_upload(
                size,
                join_remote_path(remote_folder, remote_file_name),
                chunk_size,
                parallelism,
                self.uploader.max_retries,
                self.uploader.retry_delay,
            )

            credential = self.token_manager.credential_for(remote_name, cancel=cancel)
            remote_path = join_remote_path(
                credential.root_folder, remote_folder, remote_file_name
            )
            item = self.uploader.run(
                credential,
                stream,
                size,
                remote_path,
                chunk_size,
                parallelism=parallelism,
                cancel=cancel,
                progress_callback=progress_callback,
            )
            item.download_url = credential.download_url(remote_folder, remote_file_name)
            return item

    def get_token(self, remote_name, cancel=None) -> TokenGrant:
        """Hand out a valid token and client secrets.

        Reachable only by trusted callers: nothing here authenticates them.
        """
        with _boundary("token issuance"):
            credential = self.token_manager.credential_for(remote_name, cancel=cancel)
            return TokenGrant.from_credential(credential, self.token_manager.clock())

    def get_quota(self, remote_name, cancel=None) -> Quota:
        with _boundary("quota lookup"):
            credential = self.token_manager.credential_for(remote_name, cancel=cancel)
            return self.quota_reporter.get_quota(credential, cancel=cancel)

    def get_all_quotas(self, cancel=None) -> dict[str, Quota]:
        """Quota for every configured remote; failing remotes are left out."""
        quotas = {}
        for name in self.config_store.list_remotes():
            try:
                quotas[name] = self.get_quota(name, cancel=cancel)
            except UploadCancelled:
                raise
            except OdpushError as e:
                console.print(f"[yellow]Skipping quota for remote '{name}': {e}[/yellow]")
        return quotas

    def close(self):
        self.client.close()
