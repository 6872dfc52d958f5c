"""New secret screen: modal for creating a secret in the selected resource."""

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.widgets import Input, Label

from lazykv.domain.names import validate_secret_name
from lazykv.models import ResourceKind


class NewSecretScreen(ModalScreen[tuple[str, str] | None]):
    """Modal that asks for a name and value of a new secret.

    Dismisses with ``(name, value)`` on save, or None on cancel.  Inline
    validation enforces the resource kind's naming rules, refuses names that
    already exist and requires a value.
    """

    DEFAULT_CSS = """
    NewSecretScreen {
        align: center middle;
    }
    #add-container {
        width: 70;
        height: auto;
        border: thick $accent;
        background: $surface;
        padding: 1 2;
    }
    #add-error {
        color: $error;
    }
    #add-hint {
        color: $text-muted;
    }
    """

    BINDINGS = [
        Binding("escape", "cancel", show=False),
    ]

    def __init__(self, kind: ResourceKind, resource_name: str, existing_names: set[str]) -> None:
        super().__init__()
        self._kind = kind
        self._resource_name = resource_name
        self._existing_names = existing_names

    def compose(self) -> ComposeResult:
        noun = "Key Vault" if self._kind is ResourceKind.KEY_VAULT else "Container App"
        with Vertical(id="add-container"):
            yield Label(f"Create {noun} secret in {self._resource_name}", id="add-title")
            yield Input(placeholder="name", id="add-name")
            yield Input(placeholder="value", id="add-value")
            yield Label("", id="add-error")
            yield Label("Tab · Enter to save · Escape to cancel", id="add-hint")

    def on_mount(self) -> None:
        self.query_one("#add-name", Input).focus()

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "add-name":
            self.query_one("#add-value", Input).focus()
            return
        if event.input.id == "add-value":
            self._try_save()

    def _try_save(self) -> None:
        name_input = self.query_one("#add-name", Input)
        name = name_input.value.strip()
        value = self.query_one("#add-value", Input).value
        error = self.query_one("#add-error", Label)

        problem = validate_secret_name(self._kind, name)
        if problem is None and name in self._existing_names:
            problem = f"'{name}' already exists, use edit instead"
        if problem is not None:
            error.update(problem)
            name_input.focus()
            return

        if not value:
            error.update("Value cannot be empty")
            return

        self.dismiss((name, value))

    def action_cancel(self) -> None:
        self.dismiss(None)
