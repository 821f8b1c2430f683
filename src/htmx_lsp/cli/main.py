"""CLI entry point for htmx-lsp.

``resolve`` shows how the server would be launched; ``check`` runs a real
session against files on disk and prints the diagnostics the server
publishes for them.
"""

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..core.bus import Bus
from ..core.config import ConfigManager
from ..core.config_schema import Config
from ..extension import activate, deactivate
from ..host import ExtensionContext, ExtensionMode, Workspace
from ..lsp.client import ClientErrorReported
from ..lsp.errors import LanguageClientError
from ..lsp.launch import LaunchMode, resolve
from ..util.error import format_error
from .bootstrap import bootstrap_logging

app = typer.Typer(
    name="htmx-lsp",
    help="Bootstrap and exercise the htmx language server",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)

SEVERITY = {1: "error", 2: "warning", 3: "info", 4: "hint"}
SEVERITY_STYLE = {1: "red", 2: "yellow", 3: "cyan", 4: "dim"}


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        console.print(f"htmx-lsp-client {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
):
    """htmx language client."""


def _load_config(directory: str):
    try:
        return asyncio.run(ConfigManager.load(directory))
    except LanguageClientError as e:
        err_console.print(f"[red]Error:[/red] {format_error(e) or e}")
        raise typer.Exit(1)


@app.command("resolve")
def resolve_command(
    debug: bool = typer.Option(False, "--debug", "-d", help="Resolve the debug launch"),
):
    """Print the launch configuration as JSON."""
    config = _load_config(str(Path.cwd()))
    mode = LaunchMode.DEBUG if debug else LaunchMode.RUN
    launch = resolve(mode, config.server)
    typer.echo(json.dumps(launch.model_dump(mode="json"), indent=2))


async def collect_diagnostics(
    files: List[str],
    *,
    directory: str,
    config: Optional[Config] = None,
    debug: bool = False,
    timeout: float = 5.0,
) -> Dict[str, List[Dict[str, Any]]]:
    """Open ``files`` in a fresh session and gather their diagnostics.

    Only files the client's document selector accepts are waited on.
    """
    if config is None:
        config = await ConfigManager.load(directory)
    context = ExtensionContext(
        workspace=Workspace(root=directory),
        extension_mode=ExtensionMode.DEVELOPMENT if debug else ExtensionMode.PRODUCTION,
    )
    unsubscribe = Bus.subscribe(
        ClientErrorReported,
        lambda payload: err_console.print(f"[red]{payload.properties['message']}[/red]"),
    )
    try:
        client = await activate(context, config)
        documents = [context.workspace.open_text_document(f) for f in files]

        results: Dict[str, List[Dict[str, Any]]] = {}
        for document in documents:
            if not client.document_selector.matches(document):
                continue
            if document.uri not in client.diagnostics:
                await client.wait_for_diagnostics(document.uri, timeout=timeout)
            results[document.path] = [
                d.model_dump(exclude_none=True)
                for d in client.diagnostics.get(document.uri, [])
            ]
        return results
    finally:
        await deactivate(context)
        unsubscribe()


def _render(results: Dict[str, List[Dict[str, Any]]]) -> None:
    table = Table(show_header=True, header_style="bold")
    table.add_column("File")
    table.add_column("Position")
    table.add_column("Severity")
    table.add_column("Message")

    for path, diagnostics in results.items():
        for diagnostic in diagnostics:
            start = diagnostic.get("range", {}).get("start", {})
            severity = diagnostic.get("severity", 1)
            style = SEVERITY_STYLE.get(severity, "red")
            table.add_row(
                path,
                f"{start.get('line', 0) + 1}:{start.get('character', 0) + 1}",
                f"[{style}]{SEVERITY.get(severity, 'error')}[/{style}]",
                diagnostic.get("message", ""),
            )
    console.print(table)


@app.command("check")
def check_command(
    files: List[str] = typer.Argument(..., help="Files to open in the session"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Use the debug launch"),
    timeout: float = typer.Option(5.0, "--timeout", "-t", help="Seconds to wait for diagnostics per file"),
    json_output: bool = typer.Option(False, "--json", help="Print diagnostics as JSON"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARN or ERROR"),
    print_logs: bool = typer.Option(False, "--print-logs", help="Also print logs to stderr"),
):
    """Open files in a language server session and print diagnostics."""
    directory = str(Path.cwd())
    config = _load_config(directory)
    try:
        bootstrap_logging(config, level=log_level, console=print_logs or None)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level")

    try:
        results = asyncio.run(collect_diagnostics(
            files, directory=directory, config=config, debug=debug, timeout=timeout
        ))
    except LanguageClientError:
        # Already reported through the error event.
        raise typer.Exit(1)
    except OSError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if json_output:
        typer.echo(json.dumps(results, indent=2, ensure_ascii=False))
    else:
        _render(results)

    if any(d.get("severity", 1) == 1 for items in results.values() for d in items):
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
