"""Domain models."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Account:
    """One subscription as reported by ``az account list``."""

    id: str
    name: str
    tenant_id: str
    user_name: str = ""
    is_default: bool = False
    state: str = ""

    @property
    def owner(self) -> str:
        """The login this subscription belongs to (falls back to the tenant)."""
        return self.user_name or self.tenant_id


class ResourceKind(Enum):
    KEY_VAULT = auto()
    CONTAINER_APP = auto()


@dataclass(frozen=True)
class Resource:
    """A secret-bearing Azure resource: a Key Vault or a Container App."""

    id: str
    name: str
    kind: ResourceKind
    subscription_id: str
    resource_group: str = ""
    location: str = ""
    endpoint: str = ""

    @property
    def label(self) -> str:
        prefix = "[KV]" if self.kind is ResourceKind.KEY_VAULT else "[CA]"
        return f"{prefix} {self.name}"

    @property
    def vault_uri(self) -> str:
        return (self.endpoint or f"https://{self.name}.vault.azure.net").rstrip("/")


@dataclass(frozen=True)
class SecretAttributes:
    enabled: bool | None = None
    created: str | None = None
    updated: str | None = None
    expires: str | None = None
    not_before: str | None = None


@dataclass(frozen=True)
class SecretMeta:
    """A secret as it appears in a listing.

    Container Apps return values as part of the listing; ``value`` carries
    them so the per-secret cache can be primed.  Key Vault listings never
    include values.
    """

    name: str
    content_type: str | None = None
    attributes: SecretAttributes | None = None
    value: str | None = None

    def matches(self, query: str) -> bool:
        """Return True if the name contains the query (case-insensitive)."""
        return query.lower() in self.name.lower()


@dataclass(frozen=True)
class SecretValue:
    name: str
    value: str
    content_type: str | None = None
    attributes: SecretAttributes | None = None


@dataclass(frozen=True)
class Token:
    access_token: str
    expires_on: datetime


class ErrorKind(Enum):
    NOT_AUTHENTICATED = auto()
    ACCESS_DENIED = auto()
    NOT_FOUND = auto()
    NETWORK_OR_THROTTLING = auto()
    UNKNOWN = auto()


_ERROR_TITLES = {
    ErrorKind.NOT_AUTHENTICATED: "Not authenticated (run az login)",
    ErrorKind.ACCESS_DENIED: "Access denied",
    ErrorKind.NOT_FOUND: "Not found",
    ErrorKind.NETWORK_OR_THROTTLING: "Network error or throttled",
    ErrorKind.UNKNOWN: "Request failed",
}


class SourceError(Exception):
    """Raised by a data source; ``kind`` says what went wrong."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UNKNOWN) -> None:
        super().__init__(message)
        self.kind = kind


@dataclass(frozen=True)
class FetchError:
    kind: ErrorKind
    message: str

    @property
    def title(self) -> str:
        return _ERROR_TITLES[self.kind]

    @classmethod
    def from_exception(cls, exc: Exception) -> "FetchError":
        kind = exc.kind if isinstance(exc, SourceError) else ErrorKind.UNKNOWN
        return cls(kind=kind, message=str(exc))


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of a cache-aside fetch.

    Exactly one of ``value`` and ``error`` is set.  ``cached`` is True when the
    value came straight from the cache without touching the data source.
    ``warning`` carries a partial-failure note for merged results.
    """

    value: T | None = None
    error: FetchError | None = None
    cached: bool = False
    warning: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(
        cls, value: T, cached: bool = False, warning: str | None = None
    ) -> "FetchResult[T]":
        return cls(value=value, cached=cached, warning=warning)

    @classmethod
    def failure(cls, error: FetchError) -> "FetchResult[T]":
        return cls(error=error)


class MutationKind(Enum):
    SET = auto()
    DELETE = auto()


@dataclass(frozen=True)
class MutationRequest:
    """A change to one secret of one resource.

    SET creates or updates ``name`` with ``value``; DELETE removes it.
    """

    kind: MutationKind
    resource: Resource
    name: str
    value: str | None = None


@dataclass(frozen=True)
class MutationResult:
    request: MutationRequest
    success: bool
    error: str | None = None

    @property
    def verb(self) -> str:
        if self.request.kind is MutationKind.DELETE:
            return "Deleted"
        return "Saved"


@dataclass(frozen=True)
class Progress:
    """One bulk-load completion event."""

    completed: int
    total: int
    current_id: str | None
    error: FetchError | None = None

    @property
    def finished(self) -> bool:
        return self.completed == self.total


@dataclass
class SubscriptionEntry:
    """A row in the subscriptions list.

    Either a real subscription (``account`` set) or a group header aggregating
    every subscription that shares a normalized base name (``members`` set).
    """

    label: str
    account: Account | None = None
    members: list[Account] = field(default_factory=list)
    indent: bool = False

    @property
    def is_group(self) -> bool:
        return self.account is None

    @property
    def subscription_ids(self) -> list[str]:
        if self.account is not None:
            return [self.account.id]
        return [m.id for m in self.members]

    @property
    def key(self) -> str:
        if self.account is not None:
            return self.account.id
        return f"group:{self.label}"
