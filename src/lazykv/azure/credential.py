"""Per-tenant bearer token cache.

Tokens are issued by an external collaborator (normally
``az account get-access-token``) and reused until they come within
``refresh_margin`` of their expiry.  Concurrent callers for the same tenant
share a single issuance; different tenants never wait on each other.
"""

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from lazykv.constants import TOKEN_REFRESH_MARGIN_SECONDS
from lazykv.models import Token

logger = logging.getLogger(__name__)

# (tenant_id, resource) -> Token
TokenIssuer = Callable[[str, str], Token]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def scope_to_resource(scope: str) -> str:
    """Convert an OAuth scope to the resource the Azure CLI expects."""
    return scope.removesuffix("/.default")


class TokenCache:
    """Caches access tokens per tenant and resource.

    Args:
        issuer: Called as ``issuer(tenant_id, resource)`` on a miss.  Any
            exception it raises reaches the caller of ``get_token``.
        refresh_margin: A token expiring sooner than this is re-issued.
        clock: Returns the current aware UTC time; injectable for tests.
    """

    def __init__(
        self,
        issuer: TokenIssuer,
        refresh_margin: timedelta = timedelta(seconds=TOKEN_REFRESH_MARGIN_SECONDS),
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._issuer = issuer
        self._margin = refresh_margin
        self._clock = clock
        self._tokens: dict[tuple[str, str], Token] = {}
        self._tokens_lock = threading.Lock()
        self._tenant_locks: dict[str, threading.Lock] = {}

    def get_token(self, tenant_id: str, scope: str) -> Token:
        resource = scope_to_resource(scope)
        key = (tenant_id, resource)

        token = self._usable(key)
        if token is not None:
            return token

        with self._lock_for(tenant_id):
            # Another caller may have refreshed while we waited.
            token = self._usable(key)
            if token is not None:
                return token
            logger.info("issuing token for tenant %s (%s)", tenant_id or "<default>", resource)
            token = self._issuer(tenant_id, resource)
            with self._tokens_lock:
                self._tokens[key] = token
            return token

    def clear_cache(self) -> None:
        """Forget every cached token; the next request re-issues."""
        with self._tokens_lock:
            self._tokens.clear()
        logger.debug("token cache cleared")

    def _usable(self, key: tuple[str, str]) -> Token | None:
        with self._tokens_lock:
            token = self._tokens.get(key)
        if token is None:
            return None
        if token.expires_on > self._clock() + self._margin:
            return token
        return None

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._tokens_lock:
            lock = self._tenant_locks.get(tenant_id)
            if lock is None:
                lock = self._tenant_locks[tenant_id] = threading.Lock()
            return lock
