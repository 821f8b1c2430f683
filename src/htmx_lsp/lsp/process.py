"""Spawning and reaping the language server process."""

from __future__ import annotations

import asyncio
import os
import shutil
import subprocess
from typing import Callable, Dict, Optional

from ..core.global_paths import GlobalPath
from ..util.log import Log
from .errors import SpawnError
from .launch import LaunchConfiguration

log = Log.create({"service": "lsp.process"})


def which(command: str) -> Optional[str]:
    """Locate ``command``.

    Paths are checked directly; bare names are looked up on PATH, then in
    the application's ``bin`` directory.
    """
    if os.path.dirname(command):
        if os.path.isfile(command) and os.access(command, os.X_OK):
            return command
        return None
    path = os.environ.get("PATH", "")
    return shutil.which(command, path=f"{path}{os.pathsep}{GlobalPath.bin()}")


def _to_subprocess_env(extra: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {**os.environ, **(extra or {})}


class ServerProcess:
    """Handle to a running language server process."""

    def __init__(self, process: subprocess.Popen, launch: LaunchConfiguration):
        self.process = process
        self.launch = launch
        self._stderr_task: Optional[asyncio.Task] = None

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> Optional[int]:
        return self.process.poll()

    @property
    def alive(self) -> bool:
        return self.process.poll() is None

    def pump_stderr(self) -> None:
        """Forward the server's stderr to the debug log until it closes."""
        stderr = self.process.stderr
        if stderr is None or self._stderr_task is not None:
            return

        def drain() -> None:
            for raw in iter(stderr.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    log.debug("server stderr", {"pid": self.pid, "line": line})

        self._stderr_task = asyncio.create_task(asyncio.to_thread(drain))

    def kill(self) -> None:
        if self.alive:
            self.process.kill()

    async def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit; returns None if still running after ``timeout``."""
        try:
            return await asyncio.to_thread(self.process.wait, timeout)
        except subprocess.TimeoutExpired:
            return None

    async def terminate(self, timeout: float = 5.0, grace: float = 0.0) -> Optional[int]:
        """Terminate, escalating to kill after ``timeout`` seconds.

        With ``grace`` the process first gets that long to exit on its own.
        """
        if grace > 0:
            code = await self.wait(grace)
            if code is not None:
                return code
        if self.alive:
            self.process.terminate()
        code = await self.wait(timeout)
        if code is None:
            log.warn("server did not terminate, killing", {"pid": self.pid})
            self.process.kill()
            code = await self.wait(1.0)
        return code

    async def close(self, release_stdout: bool = True) -> None:
        """Release pipes and the stderr pump of an exited process.

        Pass ``release_stdout=False`` while a reader may still be blocked on
        stdout; closing it would wait on that reader.
        """
        streams = [self.process.stdin]
        if release_stdout:
            streams.append(self.process.stdout)
        for stream in streams:
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass
        stderr_drained = True
        if self._stderr_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._stderr_task), timeout=1.0)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                stderr_drained = False
        if stderr_drained and self.process.stderr is not None:
            try:
                self.process.stderr.close()
            except OSError:
                pass


def spawn_server(launch: LaunchConfiguration, cwd: Optional[str] = None) -> ServerProcess:
    """Start the server with piped stdio.

    Raises:
        SpawnError: The executable is missing or could not be executed
    """
    executable = which(launch.command)
    if executable is None:
        raise SpawnError(launch.command, launch.args, "executable not found")

    cmd = [executable, *launch.args]
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=cwd,
            env=_to_subprocess_env(launch.env),
        )
    except OSError as error:
        raise SpawnError(launch.command, launch.args, str(error)) from error

    log.info("spawned language server", {"cmd": cmd, "pid": process.pid, "mode": launch.mode.value})
    return ServerProcess(process, launch)


Spawner = Callable[[LaunchConfiguration, Optional[str]], ServerProcess]
