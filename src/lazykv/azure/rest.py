"""Azure Resource Manager and Key Vault data-plane calls over HTTPS.

Every request carries a bearer token from ``TokenCache`` for the tenant that
owns the subscription.  HTTP failures become ``AzureClientError`` with an
``ErrorKind`` derived from the status code.
"""

import logging
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import requests

from lazykv.azure.client import AzureClientError
from lazykv.azure.credential import TokenCache
from lazykv.constants import (
    ARM_ENDPOINT,
    ARM_SCOPE,
    CONTAINERAPPS_API_VERSION,
    HTTP_TIMEOUT_SECONDS,
    KEYVAULT_ARM_API_VERSION,
    KEYVAULT_DATA_API_VERSION,
    VAULT_SCOPE,
)
from lazykv.models import (
    ErrorKind,
    Resource,
    ResourceKind,
    SecretAttributes,
    SecretMeta,
    SecretValue,
)

logger = logging.getLogger(__name__)


def classify_status(status: int) -> ErrorKind:
    if status == 401:
        return ErrorKind.NOT_AUTHENTICATED
    if status == 403:
        return ErrorKind.ACCESS_DENIED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status in (408, 429) or status >= 500:
        return ErrorKind.NETWORK_OR_THROTTLING
    return ErrorKind.UNKNOWN


def resource_group_of(resource_id: str) -> str:
    """Extract the resource group name from an ARM resource id."""
    parts = resource_id.split("/")
    for i, part in enumerate(parts[:-1]):
        if part.lower() == "resourcegroups":
            return parts[i + 1]
    return ""


def _iso_from_epoch(value: Any) -> str | None:
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc).isoformat()


def _attributes(raw: dict[str, Any] | None) -> SecretAttributes | None:
    if raw is None:
        return None
    return SecretAttributes(
        enabled=raw.get("enabled"),
        created=_iso_from_epoch(raw.get("created")),
        updated=_iso_from_epoch(raw.get("updated")),
        expires=_iso_from_epoch(raw.get("exp")),
        not_before=_iso_from_epoch(raw.get("nbf")),
    )


class AzureRestClient:
    """Lists resources and reads/writes Key Vault secrets via REST.

    Args:
        tokens: Source of bearer tokens.
        session: Optional ``requests.Session`` (shared connection pool).
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        tokens: TokenCache,
        session: requests.Session | None = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
    ) -> None:
        self._tokens = tokens
        self._session = session or requests.Session()
        self._timeout = timeout

    # ------------------------------------------------------------------
    # Resource Manager
    # ------------------------------------------------------------------

    def list_key_vaults(self, subscription_id: str, tenant_id: str) -> list[Resource]:
        url = (
            f"{ARM_ENDPOINT}/subscriptions/{subscription_id}"
            f"/providers/Microsoft.KeyVault/vaults?api-version={KEYVAULT_ARM_API_VERSION}"
        )
        return [
            Resource(
                id=item["id"],
                name=item["name"],
                kind=ResourceKind.KEY_VAULT,
                subscription_id=subscription_id,
                resource_group=resource_group_of(item["id"]),
                location=item.get("location", ""),
                endpoint=(item.get("properties") or {}).get("vaultUri", ""),
            )
            for item in self._paged(url, ARM_SCOPE, tenant_id)
        ]

    def list_container_apps(self, subscription_id: str, tenant_id: str) -> list[Resource]:
        url = (
            f"{ARM_ENDPOINT}/subscriptions/{subscription_id}"
            f"/providers/Microsoft.App/containerApps?api-version={CONTAINERAPPS_API_VERSION}"
        )
        return [
            Resource(
                id=item["id"],
                name=item["name"],
                kind=ResourceKind.CONTAINER_APP,
                subscription_id=subscription_id,
                resource_group=resource_group_of(item["id"]),
                location=item.get("location", ""),
            )
            for item in self._paged(url, ARM_SCOPE, tenant_id)
        ]

    def list_container_app_secrets(self, app: Resource, tenant_id: str) -> list[SecretMeta]:
        """Return the app's secrets including their values (``listSecrets``)."""
        url = f"{ARM_ENDPOINT}{app.id}/listSecrets?api-version={CONTAINERAPPS_API_VERSION}"
        body = self._request("POST", url, ARM_SCOPE, tenant_id)
        return [
            SecretMeta(name=item.get("name", ""), value=item.get("value"))
            for item in body.get("value", [])
        ]

    # ------------------------------------------------------------------
    # Key Vault data plane
    # ------------------------------------------------------------------

    def list_vault_secrets(self, vault: Resource, tenant_id: str) -> list[SecretMeta]:
        url = f"{vault.vault_uri}/secrets?api-version={KEYVAULT_DATA_API_VERSION}"
        secrets = []
        for item in self._paged(url, VAULT_SCOPE, tenant_id):
            secrets.append(
                SecretMeta(
                    name=item["id"].rstrip("/").rsplit("/", 1)[-1],
                    content_type=item.get("contentType"),
                    attributes=_attributes(item.get("attributes")),
                )
            )
        return secrets

    def get_vault_secret(self, vault: Resource, name: str, tenant_id: str) -> SecretValue:
        url = f"{vault.vault_uri}/secrets/{quote(name)}?api-version={KEYVAULT_DATA_API_VERSION}"
        body = self._request("GET", url, VAULT_SCOPE, tenant_id)
        return SecretValue(
            name=name,
            value=body.get("value", ""),
            content_type=body.get("contentType"),
            attributes=_attributes(body.get("attributes")),
        )

    def set_vault_secret(self, vault: Resource, name: str, value: str, tenant_id: str) -> None:
        url = f"{vault.vault_uri}/secrets/{quote(name)}?api-version={KEYVAULT_DATA_API_VERSION}"
        self._request("PUT", url, VAULT_SCOPE, tenant_id, json={"value": value})

    def delete_vault_secret(self, vault: Resource, name: str, tenant_id: str) -> None:
        """Soft-delete a secret (recoverable until purged)."""
        url = f"{vault.vault_uri}/secrets/{quote(name)}?api-version={KEYVAULT_DATA_API_VERSION}"
        self._request("DELETE", url, VAULT_SCOPE, tenant_id)

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _paged(self, url: str, scope: str, tenant_id: str) -> Iterator[dict[str, Any]]:
        next_url: str | None = url
        while next_url:
            body = self._request("GET", next_url, scope, tenant_id)
            yield from body.get("value", [])
            next_url = body.get("nextLink")

    def _request(
        self,
        method: str,
        url: str,
        scope: str,
        tenant_id: str,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        token = self._tokens.get_token(tenant_id, scope)
        headers = {"Authorization": f"Bearer {token.access_token}"}
        logger.debug("%s %s", method, url.split("?", 1)[0])
        try:
            response = self._session.request(
                method, url, headers=headers, json=json, timeout=self._timeout
            )
        except requests.RequestException as exc:
            raise AzureClientError(
                f"{method} {url.split('?', 1)[0]} failed: {exc}",
                kind=ErrorKind.NETWORK_OR_THROTTLING,
            ) from exc

        if response.status_code >= 400:
            raise AzureClientError(
                f"{method} {url.split('?', 1)[0]} returned {response.status_code}: "
                f"{_error_message(response)}",
                kind=classify_status(response.status_code),
            )
        if not response.content:
            return {}
        return response.json()


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text.strip() or response.reason
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or response.reason
    return response.reason
