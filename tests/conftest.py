from collections.abc import Iterator
from pathlib import Path

import pytest

from htmx_lsp.core.bus import Bus
from htmx_lsp.core.config import ConfigManager
from htmx_lsp.core.global_paths import GlobalPath
from htmx_lsp.util.log import Log, LogFormat, LogLevel


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def quiet_log() -> Iterator[None]:
    yield
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=False, file=False)


@pytest.fixture(autouse=True)
def bus_context() -> Iterator[None]:
    token = Bus.provide(Bus())
    try:
        yield
    finally:
        Bus.restore(token)


@pytest.fixture(autouse=True)
def config_context() -> Iterator[None]:
    token = ConfigManager.provide(ConfigManager())
    try:
        yield
    finally:
        ConfigManager.restore(token)


@pytest.fixture(autouse=True)
def isolated_paths(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    monkeypatch.setattr(GlobalPath, "config", classmethod(lambda cls: str(home / "config")))
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(home / "log")))
    monkeypatch.setattr(GlobalPath, "bin", classmethod(lambda cls: str(home / "bin")))
    monkeypatch.delenv("HTMX_LSP_CONFIG_CONTENT", raising=False)
    monkeypatch.delenv("HTMX_LSP_DEBUG", raising=False)
    return home
