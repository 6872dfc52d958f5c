"""Edit screen: modal for changing an existing secret's value."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label


class EditScreen(ModalScreen[str | None]):
    """Modal that lets the user replace the value of an existing secret.

    Dismisses with the new value on save, or None on cancel.  An empty value
    is refused.
    """

    DEFAULT_CSS = """
    EditScreen {
        align: center middle;
    }
    #edit-container {
        width: 70;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    #edit-error {
        color: $error;
    }
    #edit-hint {
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("escape", "cancel", show=False),
    ]

    def __init__(self, heading: str, secret_name: str, current_value: str) -> None:
        super().__init__()
        self._heading = heading
        self._secret_name = secret_name
        self._current_value = current_value

    def compose(self) -> ComposeResult:
        with Vertical(id="edit-container"):
            yield Label(self._heading, id="edit-title")
            yield Label(f"Name: {self._secret_name}", id="edit-name")
            yield Input(value=self._current_value, id="edit-value")
            yield Label("", id="edit-error")
            yield Label("Enter to save · Escape to cancel", id="edit-hint")

    def on_mount(self) -> None:
        input = self.query_one("#edit-value", Input)
        input.focus()
        input.cursor_position = len(self._current_value)

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if not event.value:
            self.query_one("#edit-error", Label).update("Value cannot be empty")
            return
        self.dismiss(event.value)

    def action_cancel(self) -> None:
        self.dismiss(None)
