from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from htmx_lsp import __version__
from htmx_lsp.cli.bootstrap import resolve_log_settings
from htmx_lsp.cli.main import app, collect_diagnostics
from htmx_lsp.core.config import CONFIG_CONTENT_ENV
from htmx_lsp.core.config_schema import Config
from htmx_lsp.util.log import LogFormat, LogLevel
from tests.helpers import fake_server_config, methods


runner = CliRunner()


def _site(tmp_path: Path) -> Path:
    site = tmp_path / "site"
    site.mkdir()
    (site / "index.html").write_text("<div hx-gett=\"/a\"></div>\n", encoding="utf-8")
    (site / "data.json").write_text("{}\n", encoding="utf-8")
    return site


def test_version_option() -> None:
    result = runner.invoke(app, ["--version"])

    assert result.exit_code == 0
    assert f"htmx-lsp-client {__version__}" in result.output


def test_resolve_prints_run_launch(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "htmx-lsp.json").write_text(
        json.dumps({"server": {"install_dir": "/opt/trunk", "log_file": "trunk.log"}}),
        encoding="utf-8",
    )
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["resolve"])

    assert result.exit_code == 0
    assert json.loads(result.output) == {
        "mode": "run",
        "command": "/opt/trunk/trunkls",
        "args": ["--log-file", "trunk.log"],
        "env": {},
    }


def test_resolve_debug_launch(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(CONFIG_CONTENT_ENV, json.dumps({"server": {"command": "/opt/trunk/trunkls"}}))

    result = runner.invoke(app, ["resolve", "--debug"])

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["mode"] == "debug"
    assert payload["command"] == "trunkls"


def test_resolve_reports_invalid_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv(CONFIG_CONTENT_ENV, "[]")

    result = runner.invoke(app, ["resolve"])

    assert result.exit_code == 1


@pytest.mark.anyio
async def test_collect_diagnostics_waits_on_matching_files(tmp_path: Path) -> None:
    site = _site(tmp_path)
    record = tmp_path / "record.jsonl"
    config = Config.model_validate({"server": fake_server_config(record, "--diagnostics")})

    results = await collect_diagnostics(
        ["index.html", "data.json"],
        directory=str(site),
        config=config,
        timeout=5.0,
    )

    index = str((site / "index.html").resolve())
    assert list(results) == [index]
    assert results[index][0]["message"] == "unknown attribute hx-gett"
    assert methods(record).count("textDocument/didOpen") == 1
    assert methods(record)[-2:] == ["shutdown", "exit"]


def test_check_prints_json_and_fails_on_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    site = _site(tmp_path)
    record = tmp_path / "record.jsonl"
    monkeypatch.chdir(site)
    monkeypatch.setenv(CONFIG_CONTENT_ENV, json.dumps({"server": fake_server_config(record, "--diagnostics")}))

    result = runner.invoke(app, ["check", "index.html", "data.json", "--json"])

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    diagnostics = payload[str((site / "index.html").resolve())]
    assert diagnostics[0]["severity"] == 1
    assert diagnostics[0]["range"]["start"] == {"line": 0, "character": 5}


def test_check_passes_without_diagnostics(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    site = _site(tmp_path)
    monkeypatch.chdir(site)
    monkeypatch.setenv(CONFIG_CONTENT_ENV, json.dumps({"server": fake_server_config(tmp_path / "record.jsonl")}))

    result = runner.invoke(app, ["check", "index.html", "--timeout", "0.2"])

    assert result.exit_code == 0


def test_check_missing_server_exits_with_error(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    site = _site(tmp_path)
    monkeypatch.chdir(site)
    monkeypatch.setenv(CONFIG_CONTENT_ENV, json.dumps({"server": {"command": str(tmp_path / "missing")}}))

    result = runner.invoke(app, ["check", "index.html"])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)


def test_check_rejects_bad_log_level(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(_site(tmp_path))

    result = runner.invoke(app, ["check", "index.html", "--log-level", "chatty"])

    assert result.exit_code == 2


def test_log_settings_prefer_flags_over_config() -> None:
    config = Config.model_validate({"logging": {"level": "warn", "format": "json", "console": True}})

    from_config = resolve_log_settings(config)
    from_flags = resolve_log_settings(config, level="debug", console=False)

    assert from_config.level == LogLevel.WARN
    assert from_config.format == LogFormat.JSON
    assert from_config.console is True
    assert from_config.file is True
    assert from_flags.level == LogLevel.DEBUG
    assert from_flags.console is False
