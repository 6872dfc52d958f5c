"""Data source protocol and implementations.

A data source is the remote side of every fetch: it talks to Azure (or to
in-memory demo data) and raises ``SourceError`` when something goes wrong.
It never caches; ``lazykv.fetchers`` layers the cache on top.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from typing import Protocol

from lazykv.azure.client import AzureCliClient, AzureClientError
from lazykv.azure.credential import TokenCache
from lazykv.azure.rest import AzureRestClient
from lazykv.constants import (
    MOCK_ACCOUNTS,
    MOCK_CONTAINER_APPS,
    MOCK_LOCATION,
    MOCK_RESOURCE_GROUP,
    MOCK_VAULTS,
)
from lazykv.models import (
    Account,
    ErrorKind,
    Resource,
    ResourceKind,
    SecretAttributes,
    SecretMeta,
    SecretValue,
    SourceError,
)

logger = logging.getLogger(__name__)


class DataSource(Protocol):
    """Protocol that all secret backends must satisfy."""

    def fetch_accounts(self) -> list[Account]: ...

    def fetch_resource_list(self, subscription_id: str) -> list[Resource]:
        """Return the Key Vaults and Container Apps of one subscription."""
        ...

    def fetch_secret_list(self, resource: Resource) -> list[SecretMeta]: ...

    def fetch_secret_value(self, resource: Resource, name: str) -> SecretValue: ...

    def set_secret(self, resource: Resource, name: str, value: str) -> None:
        """Create or update a secret."""
        ...

    def delete_secret(self, resource: Resource, name: str) -> None: ...

    def switch_tenant(self, tenant_id: str) -> None:
        """Called when the active account moves to *tenant_id*."""
        ...

    def reset(self) -> None:
        """Drop any credentials or client state; called on a full refresh."""
        ...


def _sorted(resources: list[Resource]) -> list[Resource]:
    return sorted(resources, key=lambda r: r.name.lower())


class MockSource:
    """In-memory source seeded from the demo data in ``lazykv.constants``.

    Args:
        latency: Seconds every fetch sleeps before answering, to make the
            loading indicators and cascading visible in demo mode.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._latency = latency
        self._lock = threading.Lock()
        self._accounts = [
            Account(
                id=a["id"],
                name=a["name"],
                tenant_id=a["tenant"],
                user_name=a["user"],
                is_default=i == 0,
                state="Enabled",
            )
            for i, a in enumerate(MOCK_ACCOUNTS)
        ]
        self._resources: dict[str, list[Resource]] = {}
        self._secrets: dict[str, dict[str, str]] = {}
        for sub_id, vaults in MOCK_VAULTS.items():
            for name, secrets in vaults.items():
                self._add(sub_id, name, ResourceKind.KEY_VAULT, secrets)
        for sub_id, apps in MOCK_CONTAINER_APPS.items():
            for name, secrets in apps.items():
                self._add(sub_id, name, ResourceKind.CONTAINER_APP, secrets)

    def _add(self, sub_id: str, name: str, kind: ResourceKind, secrets: dict[str, str]) -> None:
        provider = "Microsoft.KeyVault/vaults" if kind is ResourceKind.KEY_VAULT else "Microsoft.App/containerApps"
        resource = Resource(
            id=f"/subscriptions/{sub_id}/resourceGroups/{MOCK_RESOURCE_GROUP}/providers/{provider}/{name}",
            name=name,
            kind=kind,
            subscription_id=sub_id,
            resource_group=MOCK_RESOURCE_GROUP,
            location=MOCK_LOCATION,
        )
        self._resources.setdefault(sub_id, []).append(resource)
        self._secrets[resource.id] = dict(secrets)

    def _wait(self) -> None:
        if self._latency:
            time.sleep(self._latency)

    def fetch_accounts(self) -> list[Account]:
        self._wait()
        return list(self._accounts)

    def fetch_resource_list(self, subscription_id: str) -> list[Resource]:
        self._wait()
        return _sorted(self._resources.get(subscription_id, []))

    def fetch_secret_list(self, resource: Resource) -> list[SecretMeta]:
        self._wait()
        with self._lock:
            secrets = dict(self._store(resource))
        if resource.kind is ResourceKind.CONTAINER_APP:
            return [SecretMeta(name=k, value=v) for k, v in secrets.items()]
        return [SecretMeta(name=k, attributes=SecretAttributes(enabled=True)) for k in secrets]

    def fetch_secret_value(self, resource: Resource, name: str) -> SecretValue:
        self._wait()
        with self._lock:
            value = self._store(resource).get(name)
        if value is None:
            raise SourceError(f"Secret '{name}' not found in {resource.name}", ErrorKind.NOT_FOUND)
        return SecretValue(name=name, value=value, attributes=SecretAttributes(enabled=True))

    def set_secret(self, resource: Resource, name: str, value: str) -> None:
        self._wait()
        with self._lock:
            self._store(resource)[name] = value

    def delete_secret(self, resource: Resource, name: str) -> None:
        self._wait()
        with self._lock:
            self._store(resource).pop(name, None)

    def switch_tenant(self, tenant_id: str) -> None:
        pass

    def reset(self) -> None:
        pass

    def _store(self, resource: Resource) -> dict[str, str]:
        try:
            return self._secrets[resource.id]
        except KeyError:
            raise SourceError(f"Resource '{resource.name}' not found", ErrorKind.NOT_FOUND) from None


class AzureSource:
    """DataSource backed by the Azure CLI (accounts, tokens, Container App
    writes) and the REST APIs (listings, Key Vault data plane).
    """

    def __init__(self, cli: AzureCliClient, rest: AzureRestClient, tokens: TokenCache) -> None:
        self._cli = cli
        self._rest = rest
        self._tokens = tokens
        self._tenants: dict[str, str] = {}
        self._current_tenant: str | None = None

    def fetch_accounts(self) -> list[Account]:
        accounts = self._cli.list_accounts()
        self._tenants = {a.id: a.tenant_id for a in accounts}
        default = next((a for a in accounts if a.is_default), None)
        if default is not None and self._current_tenant is None:
            self._current_tenant = default.tenant_id
        return accounts

    def fetch_resource_list(self, subscription_id: str) -> list[Resource]:
        """Fetch Key Vaults and Container Apps of a subscription in parallel."""
        tenant = self._tenant_of(subscription_id)
        with ThreadPoolExecutor(max_workers=2) as executor:
            vaults = executor.submit(self._rest.list_key_vaults, subscription_id, tenant)
            apps = executor.submit(self._rest.list_container_apps, subscription_id, tenant)
            return _sorted(vaults.result()) + _sorted(apps.result())

    def fetch_secret_list(self, resource: Resource) -> list[SecretMeta]:
        tenant = self._tenant_of(resource.subscription_id)
        if resource.kind is ResourceKind.CONTAINER_APP:
            return self._rest.list_container_app_secrets(resource, tenant)
        return self._rest.list_vault_secrets(resource, tenant)

    def fetch_secret_value(self, resource: Resource, name: str) -> SecretValue:
        tenant = self._tenant_of(resource.subscription_id)
        if resource.kind is ResourceKind.KEY_VAULT:
            return self._rest.get_vault_secret(resource, name, tenant)
        for secret in self._rest.list_container_app_secrets(resource, tenant):
            if secret.name == name:
                return SecretValue(name=name, value=secret.value or "")
        raise AzureClientError(
            f"Secret '{name}' not found in Container App configuration", ErrorKind.NOT_FOUND
        )

    def set_secret(self, resource: Resource, name: str, value: str) -> None:
        if resource.kind is ResourceKind.CONTAINER_APP:
            self._cli.set_container_app_secret(resource, name, value)
        else:
            self._rest.set_vault_secret(resource, name, value, self._tenant_of(resource.subscription_id))

    def delete_secret(self, resource: Resource, name: str) -> None:
        if resource.kind is ResourceKind.CONTAINER_APP:
            self._cli.remove_container_app_secret(resource, name)
        else:
            self._rest.delete_vault_secret(resource, name, self._tenant_of(resource.subscription_id))

    def switch_tenant(self, tenant_id: str) -> None:
        if tenant_id == self._current_tenant:
            return
        logger.info("tenant changed from %s to %s", self._current_tenant, tenant_id)
        self._current_tenant = tenant_id
        self._tokens.clear_cache()

    def reset(self) -> None:
        self._tokens.clear_cache()

    def _tenant_of(self, subscription_id: str) -> str:
        # Unknown subscriptions fall back to the CLI's default tenant.
        return self._tenants.get(subscription_id, "")


def build_azure_source(az_path: str, http_timeout: float, refresh_margin_seconds: int) -> AzureSource:
    """Wire the CLI client, token cache and REST client together."""
    cli = AzureCliClient(az_path)
    tokens = TokenCache(cli.get_access_token, refresh_margin=timedelta(seconds=refresh_margin_seconds))
    rest = AzureRestClient(tokens, timeout=http_timeout)
    return AzureSource(cli, rest, tokens)
