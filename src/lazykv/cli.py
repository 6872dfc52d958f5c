"""Command-line entry point."""

import sys

import typer

from lazykv.app import LazyKvApp
from lazykv.azure.client import AzureCliClient
from lazykv.config import CONFIG_PATH, ConfigError, load_config
from lazykv.logs import configure_logging
from lazykv.sources import MockSource, build_azure_source

app = typer.Typer(
    help="Browse and edit Azure Key Vault and Container App secrets in the terminal",
    add_completion=False,
)

_MOCK_HELP = "Use built-in demo data instead of Azure"
_LATENCY_HELP = "Seconds every demo fetch sleeps (with --mock)"
_LOG_LEVEL_HELP = "Override log_level from config.json (DEBUG, INFO, WARNING, ERROR)"


@app.command()
def main(
    mock: bool = typer.Option(False, "--mock", help=_MOCK_HELP),  # noqa: B008
    latency: float = typer.Option(0.0, "--latency", min=0.0, help=_LATENCY_HELP),  # noqa: B008
    log_level: str | None = typer.Option(None, "--log-level", help=_LOG_LEVEL_HELP),  # noqa: B008
) -> None:
    """Start the lazykv TUI."""
    try:
        settings = load_config()
    except ConfigError as exc:
        typer.echo(f"Error in {CONFIG_PATH}: {exc}", err=True)
        sys.exit(1)

    if log_level is not None and log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        typer.echo(f"Unknown log level: {log_level}", err=True)
        sys.exit(1)
    configure_logging(settings, log_level)

    if mock:
        LazyKvApp(MockSource(latency=latency), settings, backend="mock").run()
        return

    cli = AzureCliClient(settings.az_path)
    if not cli.is_installed():
        typer.echo(
            f"Azure CLI '{settings.az_path}' not found. Install it from "
            "https://learn.microsoft.com/cli/azure/install-azure-cli",
            err=True,
        )
        sys.exit(1)
    if not cli.is_logged_in():
        typer.echo("Not logged in to Azure. Run 'az login' first.", err=True)
        sys.exit(1)

    source = build_azure_source(
        settings.az_path,
        settings.http_timeout_seconds,
        settings.token_refresh_margin_seconds,
    )
    LazyKvApp(source, settings, backend="Azure").run()


if __name__ == "__main__":
    app()
