"""Secret name rules for the two resource kinds."""

import re

from lazykv.models import ResourceKind

# Key Vault: 1-127 alphanumerics and dashes.
_VAULT_NAME = re.compile(r"^[0-9A-Za-z-]{1,127}$")

# Container Apps: lowercase alphanumerics, '-' and '.', starting and ending
# with an alphanumeric, at most 253 characters.
_CONTAINER_APP_NAME = re.compile(r"^[a-z0-9]([a-z0-9.-]{0,251}[a-z0-9])?$")


def validate_secret_name(kind: ResourceKind, name: str) -> str | None:
    """Return a human-readable problem with *name*, or None if it is valid."""
    if not name:
        return "Name cannot be blank"
    if kind is ResourceKind.CONTAINER_APP:
        if not _CONTAINER_APP_NAME.match(name):
            return (
                "Container App secret names use lowercase letters, digits, '-' and '.', "
                "and must start and end with a letter or digit"
            )
        return None
    if not _VAULT_NAME.match(name):
        return "Key Vault secret names use letters, digits and '-' (max 127)"
    return None
