"""Logging bootstrap for command line runs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.config_schema import Config
from ..util.log import Log, LogFormat, LogLevel


@dataclass(frozen=True)
class LogSettings:
    level: LogLevel
    format: LogFormat
    console: bool
    file: bool


def resolve_log_settings(
    config: Config,
    *,
    level: Optional[str] = None,
    console: Optional[bool] = None,
) -> LogSettings:
    """Command line flags win over the ``logging`` config section."""
    section = config.logging

    use_console = console
    if use_console is None:
        use_console = section.console if section.console is not None else False

    return LogSettings(
        level=LogLevel.parse(level or section.level),
        format=LogFormat.parse(section.format),
        console=use_console,
        file=section.file if section.file is not None else True,
    )


def bootstrap_logging(
    config: Config,
    *,
    level: Optional[str] = None,
    console: Optional[bool] = None,
) -> LogSettings:
    """Resolve settings and configure the process logger."""
    settings = resolve_log_settings(config, level=level, console=console)
    Log.configure(
        level=settings.level,
        format=settings.format,
        console=settings.console,
        file=settings.file,
    )
    return settings
