"""Cache-aside fetch operations.

Every load looks in the shared ``TTLCache`` first and only calls the data
source on a miss.  Source failures come back as ``FetchResult.failure`` so
callers can render them at the level they belong to; a failed fetch is never
disguised as an empty listing and never cached.
"""

import logging

from lazykv.cache import TTLCache
from lazykv.models import (
    Account,
    FetchError,
    FetchResult,
    MutationKind,
    MutationRequest,
    MutationResult,
    Resource,
    ResourceKind,
    SecretMeta,
    SecretValue,
    SourceError,
)
from lazykv.sources import DataSource

logger = logging.getLogger(__name__)

ACCOUNTS_KEY = "accounts"


def resources_key(subscription_id: str) -> str:
    return f"resources:{subscription_id}"


def secrets_key(resource: Resource) -> str:
    if resource.kind is ResourceKind.CONTAINER_APP:
        return f"caappsecrets:{resource.name}"
    return f"secrets:{resource.name}"


def secret_value_prefix(resource: Resource) -> str:
    # Trailing colon keeps "kv1" from matching "kv10".
    if resource.kind is ResourceKind.CONTAINER_APP:
        return f"caappsecretvalue:{resource.name}:"
    return f"secretvalue:{resource.name}:"


def secret_value_key(resource: Resource, name: str) -> str:
    return f"{secret_value_prefix(resource)}{name}"


class ResourceFetchers:
    """Loads accounts, resources, secret listings and secret values.

    Args:
        source: Where misses are fetched from.
        cache: Shared cache owned by the application.
    """

    def __init__(self, source: DataSource, cache: TTLCache) -> None:
        self.source = source
        self.cache = cache

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def are_accounts_cached(self) -> bool:
        return ACCOUNTS_KEY in self.cache

    def are_resources_cached(self, subscription_id: str) -> bool:
        return resources_key(subscription_id) in self.cache

    def are_secrets_cached(self, resource: Resource) -> bool:
        return secrets_key(resource) in self.cache

    def is_secret_value_cached(self, resource: Resource, name: str) -> bool:
        return secret_value_key(resource, name) in self.cache

    def cached_secret_value(self, resource: Resource, name: str) -> SecretValue | None:
        return self.cache.get(secret_value_key(resource, name))

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------

    def load_accounts(self) -> FetchResult[list[Account]]:
        return self._load(ACCOUNTS_KEY, self.source.fetch_accounts)

    def load_resources(self, subscription_id: str) -> FetchResult[list[Resource]]:
        return self._load(
            resources_key(subscription_id),
            lambda: self.source.fetch_resource_list(subscription_id),
        )

    def load_secrets(self, resource: Resource) -> FetchResult[list[SecretMeta]]:
        result = self._load(secrets_key(resource), lambda: self.source.fetch_secret_list(resource))
        if result.ok and not result.cached and resource.kind is ResourceKind.CONTAINER_APP:
            # The listing already carries every value.
            for meta in result.value or []:
                if meta.value is not None:
                    self.cache.set(
                        secret_value_key(resource, meta.name),
                        SecretValue(name=meta.name, value=meta.value),
                    )
        return result

    def load_secret_value(self, resource: Resource, name: str) -> FetchResult[SecretValue]:
        return self._load(
            secret_value_key(resource, name),
            lambda: self.source.fetch_secret_value(resource, name),
        )

    def _load(self, key, fetch) -> FetchResult:
        _missing = object()
        hit = self.cache.get(key, _missing)
        if hit is not _missing:
            return FetchResult.success(hit, cached=True)
        try:
            value = fetch()
        except SourceError as exc:
            logger.warning("fetch %s failed (%s): %s", key, exc.kind.name, exc)
            return FetchResult.failure(FetchError.from_exception(exc))
        self.cache.set(key, value)
        return FetchResult.success(value)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    def invalidate_secrets(self, resource: Resource) -> None:
        """Forget a resource's secret listing and every cached value of it."""
        self.cache.invalidate(secrets_key(resource))
        self.cache.invalidate_prefix(secret_value_prefix(resource))

    def clear(self) -> None:
        """Drop every cached listing and value, and reset the source's credentials."""
        self.cache.clear()
        self.source.reset()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply(self, request: MutationRequest) -> MutationResult:
        """Run a SET or DELETE against the source.

        On success the affected resource's listing and values are invalidated
        so the next load sees the change.  Failures are returned, not raised.
        """
        try:
            if request.kind is MutationKind.DELETE:
                self.source.delete_secret(request.resource, request.name)
            else:
                self.source.set_secret(request.resource, request.name, request.value or "")
        except SourceError as exc:
            logger.warning(
                "%s %s/%s failed: %s",
                request.kind.name.lower(),
                request.resource.name,
                request.name,
                exc,
            )
            return MutationResult(request=request, success=False, error=str(exc))
        self.invalidate_secrets(request.resource)
        logger.info("%s %s/%s", request.kind.name.lower(), request.resource.name, request.name)
        return MutationResult(request=request, success=True)
