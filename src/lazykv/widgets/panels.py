"""Bordered list panels for accounts, subscriptions, resources and secrets."""

from rich.text import Text
from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.widgets import Input, LoadingIndicator, OptionList, Static

from lazykv.domain.display import name_color
from lazykv.models import Account, Resource, ResourceKind, SecretMeta, SubscriptionEntry
from lazykv.orchestrator import LevelState, LoadState


def account_row(account: Account) -> Text:
    return Text(account.owner)


def subscription_row(entry: SubscriptionEntry) -> Text:
    if entry.is_group:
        return Text(entry.label, style="bold")
    prefix = "  " if entry.indent else ""
    return Text(f"{prefix}{entry.label}", style=name_color(entry.label))


def resource_row(resource: Resource) -> Text:
    style = "cyan" if resource.kind is ResourceKind.KEY_VAULT else "magenta"
    prefix, _, name = resource.label.partition(" ")
    return Text.assemble((prefix, style), " ", name)


def secret_row(secret: SecretMeta) -> Text:
    disabled = secret.attributes is not None and secret.attributes.enabled is False
    return Text(secret.name, style="dim" if disabled else "")


class ResourceList(OptionList):
    """Option list with vim-style wrapping navigation.

    ``load`` rebuilds the options only when the backing item list changed;
    a selection-only change just moves the highlight.
    """

    BINDINGS = [
        Binding("j", "cursor_down", show=False),
        Binding("k", "cursor_up", show=False),
    ]

    def __init__(self, *, id: str | None = None) -> None:
        super().__init__(id=id)
        self._items: list | None = None

    def load(self, items: list, rows: list[Text], selected: int | None) -> None:
        if items is not self._items:
            self._items = items
            self.clear_options()
            self.add_options(rows)
        if selected is not None and selected < self.option_count:
            self.highlighted = selected

    def action_cursor_down(self) -> None:
        """Move down one row, wrapping from the last row to the first."""
        if self.option_count and self.highlighted == self.option_count - 1:
            self.highlighted = 0
        else:
            super().action_cursor_down()

    def action_cursor_up(self) -> None:
        """Move up one row, wrapping from the first row to the last."""
        if self.option_count and self.highlighted == 0:
            self.highlighted = self.option_count - 1
        else:
            super().action_cursor_up()


class ListPanel(Vertical):
    """A titled panel holding a ``ResourceList``, a loading indicator and an
    error line.  Which of the three is visible follows the level's state.
    """

    DEFAULT_CSS = """
    ListPanel {
        border: round $panel-lighten-2;
        height: 1fr;
    }
    ListPanel:focus-within {
        border: round $accent;
    }
    ListPanel ResourceList {
        border: none;
        height: 1fr;
    }
    ListPanel LoadingIndicator {
        height: 1;
    }
    ListPanel .panel-error {
        color: $error;
        padding: 0 1;
    }
    """

    def __init__(self, title: str, hotkey: str, *, id: str) -> None:
        super().__init__(id=id)
        self._panel_title = title
        self._hotkey = hotkey

    def compose(self) -> ComposeResult:
        yield LoadingIndicator()
        yield Static("", classes="panel-error")
        yield ResourceList(id=f"{self.id}-list")

    def on_mount(self) -> None:
        self.border_title = f"[{self._hotkey}] {self._panel_title}"
        self.query_one(LoadingIndicator).display = False
        self.query_one(".panel-error", Static).display = False

    @property
    def options(self) -> ResourceList:
        return self.query_one(ResourceList)

    def show(self, state: LevelState, rows: list[Text]) -> None:
        self.options.load(state.items, rows, state.selected)
        self.query_one(LoadingIndicator).display = (
            state.state is LoadState.LOADING and state.show_indicator
        )
        error = self.query_one(".panel-error", Static)
        if state.state is LoadState.ERROR and state.error is not None:
            error.update(Text(f"{state.error.title}\n{state.error.message}"))
            error.display = True
        else:
            error.display = False
        subtitle = []
        if state.state is LoadState.LOADED:
            subtitle.append(str(len(state.items)))
            if state.cached:
                subtitle.append("cached")
        if state.warning:
            subtitle.append(state.warning)
        self.border_subtitle = " · ".join(subtitle)


class SecretsPanel(ListPanel):
    """List panel with a hidden filter input on top."""

    DEFAULT_CSS = """
    SecretsPanel #search {
        border: tall $accent;
    }
    """

    def compose(self) -> ComposeResult:
        yield Input(placeholder="Filter secrets…", id="search")
        yield from super().compose()

    def on_mount(self) -> None:
        self.query_one("#search", Input).display = False
