"""Main application."""

import asyncio
import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.timer import Timer
from textual.widgets import Footer, Header, Input, OptionList, Static

from lazykv.bulk import BulkLoader
from lazykv.cache import TTLCache
from lazykv.config import Settings, load_theme, save_theme
from lazykv.constants import APP_TITLE, REVEAL_TIMEOUT_SECONDS
from lazykv.fetchers import ResourceFetchers
from lazykv.models import (
    MutationKind,
    MutationRequest,
    MutationResult,
    Progress,
    ResourceKind,
)
from lazykv.orchestrator import Level, LevelState, SelectionOrchestrator
from lazykv.screens.add import NewSecretScreen
from lazykv.screens.confirm import ConfirmScreen
from lazykv.screens.edit import EditScreen
from lazykv.screens.help import HelpScreen
from lazykv.sources import DataSource
from lazykv.widgets.details import DetailsPanel
from lazykv.widgets.panels import (
    ListPanel,
    SecretsPanel,
    account_row,
    resource_row,
    secret_row,
    subscription_row,
)

logger = logging.getLogger(__name__)

_PANELS = {
    Level.ACCOUNT: "accounts",
    Level.SUBSCRIPTION: "subscriptions",
    Level.RESOURCE: "resources",
    Level.SECRET: "secrets",
}

_ROWS = {
    Level.ACCOUNT: account_row,
    Level.SUBSCRIPTION: subscription_row,
    Level.RESOURCE: resource_row,
    Level.SECRET: secret_row,
}


class LazyKvApp(App):
    """lazykv: browse and edit Key Vault and Container App secrets."""

    CSS = """
    #columns {
        height: 1fr;
    }
    #left {
        width: 1fr;
    }
    #secrets {
        width: 1fr;
    }
    #details {
        width: 2fr;
    }
    #statusbar {
        height: 1;
        background: $panel;
        padding: 0 1;
    }
    #status {
        width: 1fr;
    }
    #progress {
        width: auto;
        color: $text-muted;
    }
    """
    TITLE = APP_TITLE

    BINDINGS = [
        Binding("q", "quit", "Quit"),
        Binding("?", "toggle_help", "Help"),
        Binding("1", "focus_panel('accounts')", show=False),
        Binding("2", "focus_panel('subscriptions')", show=False),
        Binding("3", "focus_panel('resources')", show=False),
        Binding("4", "focus_panel('secrets')", show=False),
        Binding("5", "focus_panel('details')", show=False),
        Binding("/", "focus_search", "Search"),
        Binding("escape", "clear_search", show=False),
        Binding("r", "refresh", "Refresh"),
        Binding("v", "toggle_reveal", "Reveal"),
        Binding("y", "copy_value", "Copy"),
        Binding("e", "edit_secret", "Edit"),
        Binding("n", "new_secret", "New"),
        Binding("d", "delete_secret", "dd Delete"),
        Binding("c", "cancel_loading", "Cancel"),
    ]

    def __init__(
        self,
        source: DataSource,
        settings: Settings | None = None,
        backend: str = "Azure",
    ) -> None:
        super().__init__()
        self._settings = settings or Settings()
        self._backend = backend
        self._cache = TTLCache(default_ttl=self._settings.cache_ttl_seconds)
        self._fetchers = ResourceFetchers(source, self._cache)
        self._executor = ThreadPoolExecutor(
            max_workers=self._settings.max_parallelism, thread_name_prefix="lazykv"
        )
        self._ui_loop: asyncio.AbstractEventLoop | None = None
        self.orchestrator = SelectionOrchestrator(
            self._fetchers,
            view=self,
            submit=self._executor.submit,
            post=self._post,
            bulk_loader=BulkLoader(self._settings.max_parallelism),
        )
        self._d_pressed: bool = False
        self._revealed: tuple[str, str] | None = None
        self._hide_timer: Timer | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="columns"):
            with Vertical(id="left"):
                yield ListPanel("Accounts", "1", id="accounts")
                yield ListPanel("Subscriptions", "2", id="subscriptions")
                yield ListPanel("Resources", "3", id="resources")
            yield SecretsPanel("Secrets", "4", id="secrets")
            yield DetailsPanel(id="details")
        with Horizontal(id="statusbar"):
            yield Static("", id="status")
            yield Static("", id="progress")
        yield Footer()

    def on_mount(self) -> None:
        self._ui_loop = asyncio.get_running_loop()
        self.sub_title = self._backend
        saved_theme = load_theme()
        if saved_theme:
            self.theme = saved_theme
        self._list(Level.ACCOUNT).focus()
        self.orchestrator.refresh(force=False)

    def on_unmount(self) -> None:
        self.orchestrator.shutdown()
        self._executor.shutdown(wait=False, cancel_futures=True)

    def watch_theme(self, theme: str) -> None:
        """Persist theme changes whenever the theme is changed."""
        save_theme(theme)

    def _post(self, callback: Callable[[], None]) -> None:
        """Run *callback* on the UI loop; safe to call from any thread."""
        loop = self._ui_loop
        if loop is None:
            return
        try:
            loop.call_soon_threadsafe(callback)
        except RuntimeError:
            # Loop closed while a worker was finishing.
            logger.debug("UI loop gone, dropping completion")

    def _list(self, level: Level):
        return self.query_one(f"#{_PANELS[level]}", ListPanel).options

    # ------------------------------------------------------------------
    # Orchestrator view
    # ------------------------------------------------------------------

    def show_level(self, level: Level, state: LevelState) -> None:
        if level is Level.VALUE:
            self._render_details()
            return
        rows = [_ROWS[level](item) for item in state.items]
        self.query_one(f"#{_PANELS[level]}", ListPanel).show(state, rows)
        if level is Level.SECRET:
            self._render_details()

    def show_status(self, message: str) -> None:
        logger.debug("status: %s", message)
        self.query_one("#status", Static).update(Text(message))

    def show_progress(self, event: Progress) -> None:
        progress = self.query_one("#progress", Static)
        if event.error is not None:
            logger.warning("warm-up of %s failed: %s", event.current_id, event.error.message)
        if event.total == 0:
            progress.update("")
        elif event.finished:
            progress.update(Text(f"resources loaded for {event.total} subscriptions"))
        else:
            name = self.orchestrator.subscription_name(event.current_id or "")
            progress.update(Text(f"Loading resources ({event.completed}/{event.total}): {name[:30]}..."))

    def show_mutation(self, result: MutationResult) -> None:
        if result.success:
            self.notify(f"{result.verb} {result.request.name}", timeout=2)
        else:
            self.notify(f"Failed: {result.error}", severity="error", timeout=8)

    def _render_details(self) -> None:
        resource = self.orchestrator.selected_resource
        secret = self.orchestrator.selected_secret
        revealed = (
            resource is not None
            and secret is not None
            and self._revealed == (resource.id, secret.name)
        )
        self.query_one(DetailsPanel).show(
            resource,
            secret,
            self.orchestrator.secret_value,
            self.orchestrator.levels[Level.VALUE],
            revealed,
        )

    # ------------------------------------------------------------------
    # List events
    # ------------------------------------------------------------------

    def _level_of(self, option_list: OptionList) -> Level | None:
        for level, name in _PANELS.items():
            if option_list.id == f"{name}-list":
                return level
        return None

    def on_option_list_option_highlighted(self, event: OptionList.OptionHighlighted) -> None:
        level = self._level_of(event.option_list)
        # Highlights queued before the list was repopulated are stale.
        if level is None or event.option_index != event.option_list.highlighted:
            return
        self.orchestrator.select(level, event.option_index)

    def on_option_list_option_selected(self, event: OptionList.OptionSelected) -> None:
        level = self._level_of(event.option_list)
        if level is None:
            return
        self.orchestrator.select(level, event.option_index)
        if level is Level.SECRET:
            self.query_one(DetailsPanel).focus()
        else:
            self._list(Level(level + 1)).focus()

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def action_toggle_help(self) -> None:
        self.push_screen(HelpScreen())

    def action_focus_panel(self, name: str) -> None:
        if name == "details":
            self.query_one(DetailsPanel).focus()
            return
        self.query_one(f"#{name}", ListPanel).options.focus()

    def action_focus_search(self) -> None:
        """Show and focus the secrets filter."""
        search = self.query_one("#search", Input)
        search.display = True
        search.focus()

    def action_clear_search(self) -> None:
        """Clear the active filter and hide the search bar."""
        search = self.query_one("#search", Input)
        if search.value:
            search.value = ""
            self.orchestrator.set_filter("")
        search.display = False
        self._list(Level.SECRET).focus()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "search":
            self.orchestrator.set_filter(event.value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "search":
            self._list(Level.SECRET).focus()

    def action_refresh(self) -> None:
        """Drop every cache and reload, keeping the current selection path."""
        self._hide_value()
        self.notify("Refreshing…", timeout=2)
        self.orchestrator.refresh(force=True)

    def action_cancel_loading(self) -> None:
        self.orchestrator.cancel_background()
        self.query_one("#progress", Static).update("")

    def action_toggle_reveal(self) -> None:
        """Show the selected value; it is masked again after a timeout."""
        resource = self.orchestrator.selected_resource
        secret = self.orchestrator.selected_secret
        if resource is None or secret is None:
            return
        key = (resource.id, secret.name)
        if self._revealed == key:
            self._hide_value()
            return
        self._revealed = key
        if self._hide_timer is not None:
            self._hide_timer.stop()
        self._hide_timer = self.set_timer(REVEAL_TIMEOUT_SECONDS, self._hide_value)
        self._render_details()

    def _hide_value(self) -> None:
        self._revealed = None
        if self._hide_timer is not None:
            self._hide_timer.stop()
            self._hide_timer = None
        self._render_details()

    def action_copy_value(self) -> None:
        """Copy the selected secret's value to the system clipboard."""
        if self.orchestrator.selected_secret is None:
            return
        value = self.orchestrator.secret_value
        if value is None:
            self.notify("Value is still loading, please wait", timeout=2)
            return
        self.copy_to_clipboard(value.value)
        self.notify("Copied value to clipboard", timeout=2)

    def action_edit_secret(self) -> None:
        """Open the edit modal for the selected secret."""
        resource = self.orchestrator.selected_resource
        secret = self.orchestrator.selected_secret
        if resource is None or secret is None:
            return
        value = self.orchestrator.secret_value
        if value is None:
            self.notify("Value is still loading, please wait", timeout=2)
            return
        noun = "Key Vault" if resource.kind is ResourceKind.KEY_VAULT else "Container App"

        def on_save(new_value: str | None) -> None:
            if new_value is not None and new_value != value.value:
                self.orchestrator.mutate(
                    MutationRequest(MutationKind.SET, resource, secret.name, new_value)
                )
            self._list(Level.SECRET).focus()

        self.push_screen(EditScreen(f"Edit {noun} secret", secret.name, value.value), on_save)

    def action_new_secret(self) -> None:
        """Open the new-secret modal for the selected resource."""
        resource = self.orchestrator.selected_resource
        if resource is None:
            self.notify("Select a Key Vault or Container App first", timeout=2)
            return

        def on_save(created: tuple[str, str] | None) -> None:
            if created is not None:
                name, value = created
                self.orchestrator.mutate(MutationRequest(MutationKind.SET, resource, name, value))
            self._list(Level.SECRET).focus()

        self.push_screen(
            NewSecretScreen(resource.kind, resource.name, self.orchestrator.secret_names),
            on_save,
        )

    def action_delete_secret(self) -> None:
        """Implement vim-style dd: delete the selected secret on second d press."""
        if not self._d_pressed:
            self._d_pressed = True
            self.set_timer(0.5, self._reset_d)
            return
        self._d_pressed = False
        resource = self.orchestrator.selected_resource
        secret = self.orchestrator.selected_secret
        if resource is None or secret is None:
            return

        def on_confirm(confirmed: bool | None) -> None:
            if confirmed:
                self.orchestrator.mutate(MutationRequest(MutationKind.DELETE, resource, secret.name))
            self._list(Level.SECRET).focus()

        self.push_screen(ConfirmScreen(f"Delete  {secret.name}  from {resource.name}?"), on_confirm)

    def _reset_d(self) -> None:
        self._d_pressed = False
