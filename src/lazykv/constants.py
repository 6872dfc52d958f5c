"""Application-wide constants."""

APP_TITLE = "lazykv"

# Cached listings live until the user refreshes.
DEFAULT_CACHE_TTL: float = 365 * 24 * 60 * 60

# Tokens are re-issued once they are this close to expiry.
TOKEN_REFRESH_MARGIN_SECONDS: int = 5 * 60

# Upper bound on concurrent subscription fetches during bulk loads.
MAX_PARALLELISM: int = 5

HTTP_TIMEOUT_SECONDS: float = 30.0

# A revealed secret value is masked again after this long.
REVEAL_TIMEOUT_SECONDS: float = 120.0

# Environment markers stripped from subscription names when grouping.
ENV_PATTERNS: tuple[str, ...] = (
    "dev",
    "tst",
    "test",
    "stg",
    "stage",
    "staging",
    "prd",
    "prod",
    "production",
    "sub",
    "liv",
    "live",
)

ARM_ENDPOINT = "https://management.azure.com"
ARM_SCOPE = "https://management.azure.com/.default"
VAULT_SCOPE = "https://vault.azure.net/.default"
KEYVAULT_ARM_API_VERSION = "2023-07-01"
CONTAINERAPPS_API_VERSION = "2024-03-01"
KEYVAULT_DATA_API_VERSION = "7.4"

SECRET_FIELD_PLACEHOLDER = "-"

# Demo data served by MockSource (``lazykv --mock``).
MOCK_TENANT_A = "11111111-1111-1111-1111-111111111111"
MOCK_TENANT_B = "22222222-2222-2222-2222-222222222222"

MOCK_ACCOUNTS: list[dict[str, str]] = [
    {"id": "sub-0001", "name": "dev-payments", "tenant": MOCK_TENANT_A, "user": "alice@contoso.com"},
    {"id": "sub-0002", "name": "payments-prd", "tenant": MOCK_TENANT_A, "user": "alice@contoso.com"},
    {"id": "sub-0003", "name": "sub-payments-stg", "tenant": MOCK_TENANT_A, "user": "alice@contoso.com"},
    {"id": "sub-0004", "name": "shared-services", "tenant": MOCK_TENANT_A, "user": "alice@contoso.com"},
    {"id": "sub-0005", "name": "search-test", "tenant": MOCK_TENANT_B, "user": "alice@fabrikam.com"},
    {"id": "sub-0006", "name": "search-live", "tenant": MOCK_TENANT_B, "user": "alice@fabrikam.com"},
]

# subscription id -> key vault name -> secrets
MOCK_VAULTS: dict[str, dict[str, dict[str, str]]] = {
    "sub-0001": {
        "kv-payments-dev": {
            "db-password": "dev-pa55word",
            "stripe-api-key": "sk_test_4eC39HqLyjWDarjtT1zdp7dc",
            "webhook-secret": "whsec_dev_abc123",
        },
    },
    "sub-0002": {
        "kv-payments-prd": {
            "db-password": "Pr0d-P@ssw0rd!",
            "stripe-api-key": "sk_live_51HxYzAbCdEf",
            "webhook-secret": "whsec_prod_9f8e7d",
            "signing-cert-thumbprint": "A1B2C3D4E5F6",
        },
    },
    "sub-0003": {
        "kv-payments-stg": {
            "db-password": "stg-pa55word",
            "stripe-api-key": "sk_test_staging_key",
        },
    },
    "sub-0004": {
        "kv-shared": {
            "acr-password": "acr-shared-token",
            "grafana-admin": "admin:grafana-admin",
            "smtp-password": "SG.shared-sendgrid",
        },
        "kv-shared-certs": {},
    },
    "sub-0005": {
        "kv-search-test": {"elastic-password": "changeme", "indexer-key": "idx-test-key"},
    },
    "sub-0006": {
        "kv-search-live": {"elastic-password": "3l4st1c-l1v3", "indexer-key": "idx-live-key"},
    },
}

# subscription id -> container app name -> secrets
MOCK_CONTAINER_APPS: dict[str, dict[str, dict[str, str]]] = {
    "sub-0001": {"payments-api-dev": {"db-connection": "Server=dev;Password=x", "redis-key": "r3d1s"}},
    "sub-0002": {"payments-api": {"db-connection": "Server=prod;Password=y", "redis-key": "r3d1s-prd"}},
    "sub-0004": {"grafana": {"admin-password": "grafana-admin"}},
}

MOCK_RESOURCE_GROUP = "rg-lazykv-demo"
MOCK_LOCATION = "westeurope"

HELP_TEXT = """\
 Panels
 ──────────────────────────────
 1 … 5        Focus accounts / subscriptions /
              resources / secrets / details
 j / ↓        Move down
 k / ↑        Move up
 Enter        Open (focus next panel)

 Secrets
 ──────────────────────────────
 /            Filter secrets by name
 Escape       Clear filter / close
 v            Reveal / hide value
 y            Copy value to clipboard
 e            Edit selected secret
 n            New secret
 d d          Delete selected secret

 General
 ──────────────────────────────
 r            Refresh everything (clears cache)
 c            Cancel background loading
 ?            Toggle this help
 q            Quit\
"""
