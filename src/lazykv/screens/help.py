"""Help overlay screen."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container
from textual.screen import ModalScreen
from textual.widgets import Static

from lazykv.constants import HELP_TEXT


class HelpScreen(ModalScreen):
    """Modal overlay listing the key bindings."""

    DEFAULT_CSS = """
    HelpScreen {
        align: center middle;
    }
    #help-container {
        width: 52;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 1;
    }
    """

    BINDINGS = [
        Binding("escape", "dismiss", show=False),
        Binding("?", "dismiss", show=False),
        Binding("q", "dismiss", show=False),
    ]

    def compose(self) -> ComposeResult:
        yield Container(
            Static(HELP_TEXT, id="help-text"),
            id="help-container",
        )

    def on_click(self) -> None:
        """Dismiss on any click."""
        self.dismiss()
