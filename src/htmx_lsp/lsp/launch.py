"""Process launch resolution.

Maps the host's execution mode to the command line used to start the
language server. Resolution is a pure mapping over :class:`ServerConfig`;
whether the executable exists is only discovered when the client spawns it.
"""

from __future__ import annotations

import os
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.config_schema import DEFAULT_COMMAND, ServerConfig

DEBUG_ENV = "HTMX_LSP_DEBUG"
LOG_FILE_FLAG = "--log-file"


class LaunchMode(str, Enum):
    """Which launch variant the host asked for."""
    RUN = "run"
    DEBUG = "debug"


class LaunchConfiguration(BaseModel):
    """Immutable command line for one launch variant.

    Attributes:
        mode: Variant this configuration belongs to
        command: Executable path, or a bare name resolved through PATH
        args: Arguments passed to the executable, in order
        env: Extra environment variables layered over the ambient ones
    """
    mode: LaunchMode
    command: str
    args: Tuple[str, ...] = ()
    env: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def command_line(self) -> list[str]:
        return [self.command, *self.args]


class ServerOptions(BaseModel):
    """Both launch variants, as handed to the language client."""
    run: Optional[LaunchConfiguration] = None
    debug: Optional[LaunchConfiguration] = None

    model_config = ConfigDict(frozen=True)

    def for_mode(self, mode: LaunchMode) -> Optional[LaunchConfiguration]:
        return self.run if mode == LaunchMode.RUN else self.debug


def _is_bare(command: str) -> bool:
    return os.sep not in command and (os.altsep is None or os.altsep not in command)


def resolve(mode: LaunchMode, settings: ServerConfig) -> LaunchConfiguration:
    """Produce the launch configuration for ``mode``.

    Run uses the configured command, placed under ``install_dir`` when one is
    given, followed by the configured args and the ``--log-file`` diagnostic
    flag when a log file is configured. Debug uses the debug command (by
    default the bare run command name) with only the debug args.
    """
    run_command = settings.command.strip() or DEFAULT_COMMAND

    if mode == LaunchMode.DEBUG:
        command = (settings.debug_command or "").strip() or os.path.basename(run_command)
        return LaunchConfiguration(
            mode=mode,
            command=command,
            args=tuple(settings.debug_args),
            env=dict(settings.env),
        )

    command = run_command
    if settings.install_dir and _is_bare(command):
        command = os.path.join(settings.install_dir, command)

    args = list(settings.args)
    if settings.log_file:
        args.extend([LOG_FILE_FLAG, settings.log_file])

    return LaunchConfiguration(
        mode=mode,
        command=command,
        args=tuple(args),
        env=dict(settings.env),
    )


def server_options(settings: ServerConfig) -> ServerOptions:
    """Resolve both variants."""
    return ServerOptions(
        run=resolve(LaunchMode.RUN, settings),
        debug=resolve(LaunchMode.DEBUG, settings),
    )


def _truthy_env(key: str) -> bool:
    value = os.environ.get(key, "").strip().lower()
    return value in {"1", "true"}


def detect_mode(debugging: bool = False) -> LaunchMode:
    """Debug when the host says it is being debugged or ``HTMX_LSP_DEBUG`` is set."""
    if debugging or _truthy_env(DEBUG_ENV):
        return LaunchMode.DEBUG
    return LaunchMode.RUN
