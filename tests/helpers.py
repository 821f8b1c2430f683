"""Shared test helpers."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

from htmx_lsp.lsp.client import ClientIdentity, ClientOptions, LanguageClient
from htmx_lsp.lsp.launch import LaunchConfiguration, LaunchMode, ServerOptions
from htmx_lsp.lsp.process import ServerProcess, spawn_server
from htmx_lsp.lsp.selector import DocumentSelector

FAKE_SERVER = str(Path(__file__).parent / "lsp" / "fake_server.py")

HTML_SELECTOR = DocumentSelector.of({"scheme": "file", "language": "html"})


def fake_server_args(record: Path, *flags: str) -> list[str]:
    return [FAKE_SERVER, "--record", str(record), *flags]


def fake_server_options(record: Path, *flags: str) -> ServerOptions:
    """Both launch variants pointing at the fake server."""
    args = tuple(fake_server_args(record, *flags))
    return ServerOptions(
        run=LaunchConfiguration(mode=LaunchMode.RUN, command=sys.executable, args=args),
        debug=LaunchConfiguration(mode=LaunchMode.DEBUG, command=sys.executable, args=args),
    )


def fake_server_config(record: Path, *flags: str) -> dict[str, Any]:
    """``server`` config section launching the fake server in both modes."""
    args = fake_server_args(record, *flags)
    return {
        "command": sys.executable,
        "args": args,
        "debug_command": sys.executable,
        "debug_args": args,
    }


class CountingSpawner:
    """Wraps ``spawn_server`` and remembers every process it started."""

    def __init__(self, spawner: Callable[..., ServerProcess] = spawn_server) -> None:
        self._spawner = spawner
        self.processes: list[ServerProcess] = []

    @property
    def calls(self) -> int:
        return len(self.processes)

    def __call__(self, launch: LaunchConfiguration, cwd: Optional[str] = None) -> ServerProcess:
        process = self._spawner(launch, cwd)
        self.processes.append(process)
        return process


def make_client(
    server_options: ServerOptions,
    *,
    selector: DocumentSelector = HTML_SELECTOR,
    workspace: Any = None,
    spawner: Callable[..., ServerProcess] = spawn_server,
    handshake_timeout: float = 10.0,
    shutdown_timeout: float = 2.0,
    mode: LaunchMode = LaunchMode.RUN,
) -> LanguageClient:
    return LanguageClient(
        ClientIdentity(id="htmx-lsp", display_name="Htmx Language Server"),
        server_options,
        ClientOptions(
            document_selector=selector,
            handshake_timeout=handshake_timeout,
            shutdown_timeout=shutdown_timeout,
        ),
        mode=mode,
        workspace=workspace,
        spawner=spawner,
    )


def read_record(path: Path) -> list[dict[str, Any]]:
    """Messages the fake server received, in order."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


def methods(path: Path) -> list[str]:
    return [message.get("method", "") for message in read_record(path)]


async def wait_until(predicate: Callable[[], bool], timeout: float = 5.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.02)
