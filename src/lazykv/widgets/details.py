"""Details panel: the selected secret's value and attributes."""

from rich.table import Table
from rich.text import Text
from textual.app import ComposeResult
from textual.containers import VerticalScroll
from textual.widgets import LoadingIndicator, Static

from lazykv.constants import SECRET_FIELD_PLACEHOLDER
from lazykv.domain.display import format_date, format_enabled
from lazykv.models import Resource, SecretMeta, SecretValue
from lazykv.orchestrator import LevelState, LoadState

_MASK = "••••••••  (v to reveal)"


def render_details(
    resource: Resource | None,
    secret: SecretMeta | None,
    value: SecretValue | None,
    state: LevelState,
    revealed: bool,
) -> Table | Text:
    """Build the renderable shown in the details panel."""
    if secret is None or resource is None:
        return Text("Select a secret", style="dim")

    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold")
    table.add_column()

    if state.state is LoadState.ERROR and state.error is not None:
        shown = Text(f"{state.error.title}: {state.error.message}", style="red")
    elif value is None:
        shown = Text("loading…", style="dim")
    elif revealed:
        shown = Text(value.value)
    else:
        shown = Text(_MASK, style="dim")

    attributes = (value.attributes if value is not None else None) or secret.attributes
    content_type = (value.content_type if value is not None else None) or secret.content_type

    table.add_row("Name", Text(secret.name))
    table.add_row("Value", shown)
    table.add_row("Resource", Text(resource.label))
    table.add_row("Content type", content_type or SECRET_FIELD_PLACEHOLDER)
    table.add_row("Enabled", format_enabled(attributes.enabled if attributes else None))
    table.add_row("Created", format_date(attributes.created if attributes else None))
    table.add_row("Updated", format_date(attributes.updated if attributes else None))
    table.add_row("Expires", format_date(attributes.expires if attributes else None))
    return table


class DetailsPanel(VerticalScroll):
    DEFAULT_CSS = """
    DetailsPanel {
        border: round $panel-lighten-2;
        height: 1fr;
        padding: 0 1;
    }
    DetailsPanel:focus-within {
        border: round $accent;
    }
    DetailsPanel LoadingIndicator {
        height: 1;
    }
    """

    can_focus = True

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()
        yield Static(Text("Select a secret", style="dim"), id="details-body")

    def on_mount(self) -> None:
        self.border_title = "[5] Details"
        self.query_one(LoadingIndicator).display = False

    def show(
        self,
        resource: Resource | None,
        secret: SecretMeta | None,
        value: SecretValue | None,
        state: LevelState,
        revealed: bool,
    ) -> None:
        self.query_one(LoadingIndicator).display = (
            state.state is LoadState.LOADING and state.show_indicator
        )
        self.query_one("#details-body", Static).update(
            render_details(resource, secret, value, state, revealed)
        )
        self.border_subtitle = "cached" if state.cached else ""
