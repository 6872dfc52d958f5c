"""Thin wrapper around the Azure CLI.

Used for everything the CLI does better than raw REST: enumerating the
logged-in accounts, issuing access tokens, and writing Container App secrets
(``az containerapp secret set`` merges server-side, so concurrent edits to
other secrets of the same app are never lost).

Raises ``AzureClientError`` on any non-zero exit code.
"""

import json
import logging
import shutil
import subprocess
from datetime import datetime, timezone

from lazykv.models import Account, ErrorKind, Resource, SourceError, Token

logger = logging.getLogger(__name__)

# Lower-cased stderr fragments, checked in order.
_STDERR_KINDS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (
        ErrorKind.NOT_AUTHENTICATED,
        ("az login", "aadsts", "not logged in", "refresh token has expired", "interactive authentication"),
    ),
    (
        ErrorKind.ACCESS_DENIED,
        ("authorizationfailed", "forbidden", "does not have authorization", "(403)", "access denied"),
    ),
    (
        ErrorKind.NOT_FOUND,
        ("resourcenotfound", "resourcegroupnotfound", "(404)", "was not found", "could not be found"),
    ),
    (
        ErrorKind.NETWORK_OR_THROTTLING,
        ("toomanyrequests", "(429)", "throttl", "timed out", "connection", "name resolution"),
    ),
)


class AzureClientError(SourceError):
    """Raised when an Azure CLI call or REST request fails."""


def classify_stderr(stderr: str) -> ErrorKind:
    """Map CLI error output to an ``ErrorKind``; unknown text is UNKNOWN."""
    text = stderr.lower()
    for kind, needles in _STDERR_KINDS:
        if any(needle in text for needle in needles):
            return kind
    return ErrorKind.UNKNOWN


def parse_token(payload: str) -> Token:
    """Parse ``az account get-access-token --output json`` output.

    Newer CLIs emit ``expires_on`` (POSIX seconds); older ones only the
    naive local-time ``expiresOn`` string.
    """
    data = json.loads(payload)
    access_token = data.get("accessToken")
    if not access_token:
        raise AzureClientError("Access token not found in CLI response")
    if data.get("expires_on") is not None:
        expires_on = datetime.fromtimestamp(int(data["expires_on"]), tz=timezone.utc)
    elif data.get("expiresOn"):
        expires_on = datetime.fromisoformat(data["expiresOn"]).astimezone(timezone.utc)
    else:
        raise AzureClientError("Token expiry not found in CLI response")
    return Token(access_token=access_token, expires_on=expires_on)


class AzureCliClient:
    """Shells out to ``az`` for account, token and Container App operations.

    Args:
        az_path: Executable name or path of the Azure CLI.
    """

    def __init__(self, az_path: str = "az") -> None:
        self._az = az_path

    def is_installed(self) -> bool:
        return shutil.which(self._az) is not None

    def is_logged_in(self) -> bool:
        try:
            self._run(["account", "show", "--output", "none"])
        except AzureClientError:
            return False
        return True

    def list_accounts(self) -> list[Account]:
        """Return every subscription of every logged-in user."""
        payload = json.loads(self._run(["account", "list", "--all", "--output", "json"]))
        accounts = [
            Account(
                id=item.get("id", ""),
                name=item.get("name", ""),
                tenant_id=item.get("tenantId", ""),
                user_name=(item.get("user") or {}).get("name", ""),
                is_default=bool(item.get("isDefault")),
                state=item.get("state", ""),
            )
            for item in payload
        ]
        return accounts

    def get_access_token(self, tenant_id: str, resource: str) -> Token:
        cmd = ["account", "get-access-token", "--resource", resource, "--output", "json"]
        if tenant_id:
            cmd += ["--tenant", tenant_id]
        return parse_token(self._run(cmd))

    def set_container_app_secret(self, app: Resource, name: str, value: str) -> None:
        """Create or update one secret; other secrets of the app are untouched."""
        self._run(
            [
                "containerapp",
                "secret",
                "set",
                "--name",
                app.name,
                "--resource-group",
                app.resource_group,
                "--subscription",
                app.subscription_id,
                "--secrets",
                f"{name}={value}",
            ]
        )

    def remove_container_app_secret(self, app: Resource, name: str) -> None:
        self._run(
            [
                "containerapp",
                "secret",
                "remove",
                "--name",
                app.name,
                "--resource-group",
                app.resource_group,
                "--subscription",
                app.subscription_id,
                "--secret-names",
                name,
            ]
        )

    def _run(self, args: list[str]) -> str:
        """Run ``az`` with *args*, returning stdout. Raises AzureClientError on failure."""
        cmd = [self._az, *args]
        logger.debug("running %s", _describe(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as exc:
            raise AzureClientError(f"Azure CLI not found: {self._az}") from exc
        if result.returncode != 0:
            stderr = result.stderr.strip()
            raise AzureClientError(
                f"Command failed (exit {result.returncode}):\n"
                f"  {_describe(cmd)}\n"
                f"  stderr: {stderr}",
                kind=classify_stderr(stderr),
            )
        return result.stdout


def _describe(cmd: list[str]) -> str:
    """Render a command for logs and errors with secret values masked."""
    shown: list[str] = []
    mask_next = False
    for part in cmd:
        if mask_next:
            name, _, _ = part.partition("=")
            shown.append(f"{name}=***")
            mask_next = False
            continue
        shown.append(part)
        mask_next = part == "--secrets"
    return " ".join(shown)
