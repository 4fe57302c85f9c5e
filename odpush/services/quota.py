"""Drive quota reporting for odpush."""

import requests

from odpush.core.auth import TokenManager
from odpush.core.client import response_text
from odpush.core.errors import QuotaError, TokenError
from odpush.models.item import Quota


class QuotaReporter:
    """Reads capacity accounting for a single remote's drive."""

    def __init__(self, client, token_manager=None):
        self.client = client
        self.token_manager = token_manager

    def get_quota(self, credential, cancel=None) -> Quota:
        """Fetch total/used/remaining/deleted bytes from the drive resource."""
        try:
            if self.token_manager is not None:
                credential = self.token_manager.credential_for(credential.name, cancel=cancel)
            headers = TokenManager.get_headers(credential)
        except TokenError as e:
            raise QuotaError(f"Not authorized to read quota for '{credential.name}': {e}") from e

        url = self.client.drive_url(credential.drive_id)
        try:
            response = self.client.request("GET", url, cancel=cancel, headers=headers)
        except requests.exceptions.RequestException as e:
            raise QuotaError(f"Failed to fetch quota for '{credential.name}': {e}") from e

        if not 200 <= response.status_code < 300:
            raise QuotaError(
                f"Failed to fetch quota for '{credential.name}' "
                f"(HTTP {response.status_code}): {response_text(response, 500)}"
            )

        try:
            quota = response.json()["quota"]
            return Quota.from_api_response(quota)
        except (ValueError, KeyError, TypeError) as e:
            raise QuotaError(f"Drive response for '{credential.name}' has no quota") from e
