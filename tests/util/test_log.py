from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from htmx_lsp.core.global_paths import GlobalPath
from htmx_lsp.util.log import KEEP_LOG_FILES, Log, LogFormat, LogLevel


def test_log_writes_console_and_file(monkeypatch, tmp_path: Path, capsys) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.KV, console=True, file=True, dev=True)

    log = Log.create({"service": "test.log"})
    log.info("hello", {"value": 7})
    Log.close()

    stderr = capsys.readouterr().err
    text = (tmp_path / "dev.log").read_text(encoding="utf-8")

    assert "msg=hello" in stderr
    assert "service=test.log" in stderr
    assert "value=7" in text


def test_log_supports_json_format(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    Log.configure(level=LogLevel.INFO, format=LogFormat.JSON, console=False, file=True, dev=True)

    log = Log.create({"service": "test.json"})
    log.info("hello world", {"meta": {"k": "v"}, "error": RuntimeError("boom")})
    Log.close()

    line = (tmp_path / "dev.log").read_text(encoding="utf-8").strip()
    payload = json.loads(line)

    assert payload["level"] == "info"
    assert payload["msg"] == "hello world"
    assert payload["service"] == "test.json"
    assert payload["meta"] == {"k": "v"}
    assert payload["error"] == "boom"


def test_log_filters_below_level(capsys) -> None:  # type: ignore[no-untyped-def]
    Log.configure(level=LogLevel.WARN, format=LogFormat.KV, console=True, file=False)

    log = Log.create({"service": "test.level"})
    log.info("quiet")
    log.warning("loud")

    stderr = capsys.readouterr().err
    assert "quiet" not in stderr
    assert "msg=loud" in stderr
    assert "level=warn" in stderr


def test_log_rotates_old_files(monkeypatch, tmp_path: Path) -> None:  # type: ignore[no-untyped-def]
    monkeypatch.setattr(GlobalPath, "log", classmethod(lambda cls: str(tmp_path)))
    for index in range(KEEP_LOG_FILES + 2):
        old = tmp_path / f"2020-01-01T0000{index:02d}.log"
        old.write_text("old\n", encoding="utf-8")
        os.utime(old, (1_600_000_000 + index, 1_600_000_000 + index))

    Log.configure(level=LogLevel.INFO, console=False, file=True)
    current = Path(Log.file())
    Log.close()

    remaining = sorted(tmp_path.glob("????-??-??T??????.log"))
    assert len(remaining) == KEEP_LOG_FILES
    assert current in remaining
    assert not (tmp_path / "2020-01-01T000000.log").exists()


def test_create_caches_by_service() -> None:
    assert Log.create({"service": "test.cache"}) is Log.create({"service": "test.cache"})
    assert Log.create({"kind": "anon"}) is not Log.create({"kind": "anon"})


@pytest.mark.parametrize(
    ("text", "expected"),
    [("debug", LogLevel.DEBUG), ("WARNING", LogLevel.WARN), (" error ", LogLevel.ERROR), (None, LogLevel.INFO)],
)
def test_parse_log_level(text: str | None, expected: LogLevel) -> None:
    assert LogLevel.parse(text) == expected


def test_parse_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        LogLevel.parse("chatty")
    with pytest.raises(ValueError):
        LogFormat.parse("xml")
