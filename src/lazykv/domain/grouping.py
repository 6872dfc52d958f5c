"""Pure functions that turn ``az account list`` output into list rows.

Subscriptions that differ only by an environment marker (``dev-payments``,
``payments-prd``, ``sub-payments-stg``) share a base name.  Sharing groups
are shown as a header row followed by their indented members; the header can
be selected to browse every member's resources at once.
"""

from itertools import groupby

from lazykv.constants import ENV_PATTERNS
from lazykv.models import Account, SubscriptionEntry


def subscription_base_name(name: str) -> str:
    """Return *name* lower-cased with environment markers removed.

    Each pattern is stripped as a ``pattern-`` prefix, a ``-pattern`` suffix
    and a ``-pattern-`` infix, in that order, before moving to the next
    pattern.  Runs of hyphens are then collapsed and edge hyphens trimmed.

    >>> subscription_base_name("sub-MyApp-stg")
    'myapp'
    """
    result = name.lower()
    for env in ENV_PATTERNS:
        if result.startswith(f"{env}-"):
            result = result[len(env) + 1 :]
        if result.endswith(f"-{env}"):
            result = result[: -(len(env) + 1)]
        result = result.replace(f"-{env}-", "-")
    while "--" in result:
        result = result.replace("--", "-")
    return result.strip("-")


def unique_owners(accounts: list[Account]) -> list[Account]:
    """One representative account per login, in first-seen order."""
    seen: dict[str, Account] = {}
    for account in accounts:
        seen.setdefault(account.owner, account)
    return list(seen.values())


def subscriptions_for(accounts: list[Account], owner: str) -> list[Account]:
    """Every subscription belonging to *owner*, sorted by name."""
    return sorted((a for a in accounts if a.owner == owner), key=lambda a: a.name)


def group_subscriptions(subscriptions: list[Account]) -> list[SubscriptionEntry]:
    """Flatten *subscriptions* into rows, grouped by base name.

    Groups are ordered by base name.  A group with a single member is shown
    as a plain row; larger groups get a ``<base>:`` header followed by their
    members (sorted by name) indented beneath it.
    """
    keyed = sorted(subscriptions, key=lambda a: (subscription_base_name(a.name), a.name))
    rows: list[SubscriptionEntry] = []
    for base, members_iter in groupby(keyed, key=lambda a: subscription_base_name(a.name)):
        members = list(members_iter)
        if len(members) == 1:
            rows.append(SubscriptionEntry(label=members[0].name, account=members[0]))
            continue
        rows.append(SubscriptionEntry(label=f"{base}:", members=members))
        rows.extend(SubscriptionEntry(label=m.name, account=m, indent=True) for m in members)
    return rows


def first_selectable(rows: list[SubscriptionEntry]) -> int | None:
    """Index of the first non-header row, or None when there is none."""
    for index, row in enumerate(rows):
        if not row.is_group:
            return index
    return None
