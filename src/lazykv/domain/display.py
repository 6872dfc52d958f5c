"""Formatting helpers for list rows and the details panel."""

from datetime import datetime

from lazykv.constants import SECRET_FIELD_PLACEHOLDER

_NAME_COLORS = (
    "bright_red",
    "bright_green",
    "bright_yellow",
    "bright_blue",
    "bright_magenta",
    "bright_cyan",
    "red",
    "green",
    "yellow",
    "magenta",
    "cyan",
    "dark_orange",
    "hot_pink",
    "spring_green1",
    "blue_violet",
    "gold1",
)


def _fnv1a(text: str) -> int:
    value = 0x811C9DC5
    for char in text:
        value ^= ord(char)
        value = (value * 0x01000193) & 0xFFFFFFFF
    return value


def name_color(name: str) -> str:
    """A rich colour name that is stable for *name* across runs."""
    return _NAME_COLORS[_fnv1a(name) % len(_NAME_COLORS)]


def format_date(iso: str | None) -> str:
    """Render an ISO-8601 timestamp in local time, or a dash when unset."""
    if not iso:
        return SECRET_FIELD_PLACEHOLDER
    try:
        moment = datetime.fromisoformat(iso)
    except ValueError:
        return iso
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def format_enabled(enabled: bool | None) -> str:
    if enabled is None:
        return SECRET_FIELD_PLACEHOLDER
    return "yes" if enabled else "no"
