"""Language client.

Owns one language server session: spawning the process, the ``initialize``
handshake, routing matching documents to the server and tearing everything
down again. State moves ``stopped -> starting -> running -> stopped``; a
failed start goes straight back to ``stopped``.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Coroutine, Dict, List, Optional, Sequence, Set

from pydantic import BaseModel, ConfigDict

from .. import __version__
from ..core.bus import Bus, BusEvent
from ..util.error import format_error, format_unknown_error
from ..util.log import Log
from .channel import JsonRpcChannel
from .document import TextDocument, TextDocumentContentChange, path_to_uri
from .errors import (
    ChannelError,
    ConfigurationError,
    HandshakeError,
    LanguageClientError,
    ResponseError,
)
from .launch import LaunchConfiguration, LaunchMode, ServerOptions
from .process import ServerProcess, Spawner, spawn_server
from .selector import DocumentSelector

log = Log.create({"service": "lsp.client"})

# TextDocumentSyncKind
SYNC_NONE = 0
SYNC_FULL = 1
SYNC_INCREMENTAL = 2


class ClientState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"


class ClientIdentity(BaseModel):
    """Stable id plus a human-readable name for logs and messages."""
    id: str
    display_name: str

    model_config = ConfigDict(frozen=True)


@dataclass(frozen=True)
class ClientOptions:
    """Routing and protocol settings of a client."""
    document_selector: DocumentSelector
    capabilities: Dict[str, Any] = field(default_factory=dict)
    initialization_options: Any = None
    handshake_timeout: float = 10.0
    shutdown_timeout: float = 5.0


class LSPDiagnostic(BaseModel):
    """LSP diagnostic information.

    Attributes:
        range: Location of the diagnostic
        message: Diagnostic message
        severity: Severity level (1=Error, 2=Warning, 3=Info, 4=Hint)
        source: Source of the diagnostic
        code: Optional diagnostic code
    """
    range: Dict[str, Any]
    message: str
    severity: int = 1
    source: Optional[str] = None
    code: Optional[Any] = None

    model_config = ConfigDict(extra="allow")


class ClientStateChangedProps(BaseModel):
    client_id: str
    state: ClientState
    pid: Optional[int] = None


class ClientErrorProps(BaseModel):
    client_id: str
    kind: str
    message: str


class DiagnosticsPublishedProps(BaseModel):
    client_id: str
    uri: str
    diagnostics: List[Dict[str, Any]]


ClientStateChanged = BusEvent.define("lsp.client.state", ClientStateChangedProps)
ClientErrorReported = BusEvent.define("lsp.client.error", ClientErrorProps)
DiagnosticsPublished = BusEvent.define("lsp.client.diagnostics", DiagnosticsPublishedProps)

_LOG_MESSAGE_LEVELS = {1: "error", 2: "warn", 3: "info", 4: "debug"}


def _check_launch(options: ServerOptions, mode: LaunchMode) -> LaunchConfiguration:
    launch = options.for_mode(mode)
    if launch is None:
        raise ConfigurationError(f"no launch configuration for {mode.value} mode")
    if not launch.command.strip():
        raise ConfigurationError(f"empty command for {mode.value} mode")
    return launch


class LanguageClient:
    """One language server session.

    Construction does no I/O. ``start`` and ``stop`` are idempotent and may
    run concurrently; ``stop`` abandons an in-flight ``start``.
    """

    def __init__(
        self,
        identity: ClientIdentity,
        server_options: ServerOptions,
        client_options: ClientOptions,
        *,
        mode: LaunchMode = LaunchMode.RUN,
        workspace: Any = None,
        spawner: Spawner = spawn_server,
    ):
        if not identity.id.strip():
            raise ConfigurationError("client id must not be empty")
        if not client_options.document_selector:
            raise ConfigurationError("document selector must not be empty")
        _check_launch(server_options, mode)

        self.identity = identity
        self.mode = mode
        self.workspace = workspace
        self._server_options = server_options
        self._options = client_options
        self._spawner = spawner

        self._state = ClientState.STOPPED
        self._process: Optional[ServerProcess] = None
        self._channel: Optional[JsonRpcChannel] = None
        self._start_task: Optional[asyncio.Task] = None
        self._stop_task: Optional[asyncio.Task] = None
        self._lifecycle = asyncio.Lock()
        self._stopping = False
        self._abandoned_start: Optional[asyncio.Task] = None
        self._registration: Any = None
        self._open_documents: Dict[str, int] = {}
        self._diagnostics: Dict[str, List[LSPDiagnostic]] = {}
        self._diag_waiters: Dict[str, List[asyncio.Event]] = {}
        self._background: Set[asyncio.Task] = set()

        self.server_capabilities: Dict[str, Any] = {}
        self.server_info: Optional[Dict[str, Any]] = None
        self.last_error: Optional[LanguageClientError] = None

    # -- introspection --

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == ClientState.RUNNING

    @property
    def document_selector(self) -> DocumentSelector:
        return self._options.document_selector

    @property
    def server_options(self) -> ServerOptions:
        return self._server_options

    @property
    def launch(self) -> LaunchConfiguration:
        """Launch configuration for the active mode."""
        return _check_launch(self._server_options, self.mode)

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    @property
    def diagnostics(self) -> Dict[str, List[LSPDiagnostic]]:
        return self._diagnostics

    def update_server_options(self, server_options: ServerOptions) -> None:
        """Replace the launch configurations; only allowed while stopped."""
        if self._state != ClientState.STOPPED or self._start_task is not None:
            raise ConfigurationError("server options can only change while the client is stopped")
        _check_launch(server_options, self.mode)
        self._server_options = server_options

    # -- lifecycle --

    async def start(self) -> None:
        """Spawn the server and complete the handshake.

        A no-op while running; joins the in-flight attempt while starting.

        Raises:
            SpawnError: The executable could not be started
            HandshakeError: ``initialize`` failed or timed out
        """
        if self._state == ClientState.RUNNING:
            return
        if self._start_task is None or self._start_task.done():
            self._start_task = asyncio.create_task(self._start())
        task = self._start_task
        try:
            await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and task is self._abandoned_start and not (current and current.cancelling()):
                log.info("start abandoned by stop", {"client_id": self.identity.id})
                return
            raise

    async def _start(self) -> None:
        launch = self.launch
        await self._set_state(ClientState.STARTING)
        try:
            process = self._spawner(launch, self._root_path())
            self._process = process
            process.pump_stderr()

            channel = JsonRpcChannel(
                process,
                on_notification=self._on_notification,
                on_request=self._on_request,
                on_close=self._on_channel_closed,
            )
            self._channel = channel
            channel.open()
            await self._handshake(channel)

            self.last_error = None
            await self._set_state(ClientState.RUNNING)
            if self.workspace is not None:
                self._registration = self.workspace.register_document_selector(
                    self._options.document_selector, self
                )
        except LanguageClientError as e:
            await self._teardown(kill=True)
            await self._set_state(ClientState.STOPPED)
            await self._report(e)
            raise
        except BaseException:
            # Cancellation included: never leave a half-started process behind.
            await self._teardown(kill=True)
            await self._set_state(ClientState.STOPPED)
            raise
        finally:
            self._start_task = None

    async def _handshake(self, channel: JsonRpcChannel) -> None:
        root = self._root_path()
        root_uri = path_to_uri(root) if root else None
        params = {
            "processId": os.getpid(),
            "clientInfo": {"name": self.identity.display_name, "version": __version__},
            "rootUri": root_uri,
            "workspaceFolders": [
                {"name": os.path.basename(root) or root, "uri": root_uri}
            ] if root else None,
            "capabilities": self._options.capabilities,
            "initializationOptions": self._options.initialization_options,
        }

        timeout = self._options.handshake_timeout
        try:
            result = await channel.request("initialize", params, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise HandshakeError(f"no initialize response within {timeout:g}s") from e
        except (ResponseError, ChannelError) as e:
            raise HandshakeError(f"initialize failed: {e}") from e

        if not isinstance(result, dict) or not isinstance(result.get("capabilities"), dict):
            raise HandshakeError("malformed initialize result")

        self.server_capabilities = result["capabilities"]
        self.server_info = result.get("serverInfo")

        if not channel.notify("initialized", {}):
            raise HandshakeError("connection closed after initialize")
        log.info("handshake complete", {
            "client_id": self.identity.id,
            "server": (self.server_info or {}).get("name"),
        })

    async def stop(self) -> None:
        """Shut the server down and release the channel.

        A no-op while stopped. An in-flight ``start`` is cancelled first and
        any process it spawned is killed.
        """
        if self._stop_task is None:
            self._stop_task = asyncio.create_task(self._stop())
        await asyncio.shield(self._stop_task)

    async def dispose(self) -> None:
        await self.stop()

    async def _stop(self) -> None:
        self._stopping = True
        try:
            start = self._start_task
            if start is not None and not start.done():
                self._abandoned_start = start
                start.cancel()
                await asyncio.gather(start, return_exceptions=True)
            # A task cancelled before its first step never runs its own cleanup.
            if start is not None and self._start_task is start:
                self._start_task = None

            async with self._lifecycle:
                if self._state == ClientState.STOPPED:
                    return

                channel = self._channel
                self._unregister()
                grace = 0.0
                if channel is not None and channel.live:
                    try:
                        await channel.request("shutdown", None, timeout=self._options.shutdown_timeout)
                        if channel.notify("exit"):
                            await channel.flush(timeout=1.0)
                            grace = self._options.shutdown_timeout
                    except (asyncio.TimeoutError, LanguageClientError) as e:
                        log.warn("shutdown request failed", {
                            "client_id": self.identity.id,
                            "error": str(e) or type(e).__name__,
                        })

                await self._teardown(kill=False, grace=grace)
                await self._set_state(ClientState.STOPPED)
        finally:
            self._stopping = False
            self._stop_task = None

    async def _teardown(self, kill: bool, grace: float = 0.0) -> None:
        """Reap the process and release the channel.

        ``grace`` is how long a server that was sent ``exit`` may take to
        leave on its own before it is terminated.
        """
        channel, process = self._channel, self._process
        self._channel = None
        self._process = None
        self._unregister()
        self._open_documents.clear()

        if channel is not None:
            channel.begin_close()
        if process is not None:
            if kill:
                process.kill()
                await process.wait(1.0)
            else:
                await process.terminate(self._options.shutdown_timeout, grace=grace)
        if channel is not None:
            await channel.close()
        if process is not None:
            await process.close(release_stdout=channel is None or channel.reader_finished)

    def _on_channel_closed(self, error: ChannelError) -> None:
        if self._state != ClientState.RUNNING or self._stopping:
            return
        self._spawn(self._handle_channel_lost(error))

    async def _handle_channel_lost(self, error: ChannelError) -> None:
        async with self._lifecycle:
            if self._state != ClientState.RUNNING:
                return
            log.error("server connection lost", {
                "client_id": self.identity.id,
                "returncode": error.returncode,
            })
            await self._teardown(kill=True)
            await self._set_state(ClientState.STOPPED)
            await self._report(error)

    async def __aenter__(self) -> "LanguageClient":
        await self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    # -- document routing --

    def _accepting(self) -> bool:
        return (
            self._state == ClientState.RUNNING
            and not self._stopping
            and self._channel is not None
            and self._channel.live
        )

    def _sync_kind(self) -> int:
        sync = self.server_capabilities.get("textDocumentSync")
        if isinstance(sync, dict):
            sync = sync.get("change")
        if sync is None:
            return SYNC_FULL
        return int(sync)

    def did_open(self, document: TextDocument) -> bool:
        """Forward ``didOpen``; True when the notification was queued."""
        if not self._accepting() or not self.document_selector.matches(document):
            return False
        if document.uri in self._open_documents:
            return False
        assert self._channel is not None
        if not self._channel.notify("textDocument/didOpen", {"textDocument": document.to_item()}):
            return False
        self._open_documents[document.uri] = document.version
        return True

    def did_change(
        self,
        document: TextDocument,
        changes: Sequence[TextDocumentContentChange] = (),
    ) -> bool:
        """Forward ``didChange`` in the form the server's sync kind asks for."""
        if not self._accepting() or document.uri not in self._open_documents:
            return False
        kind = self._sync_kind()
        if kind == SYNC_NONE:
            return False
        if kind == SYNC_INCREMENTAL and changes:
            content = [change.to_lsp() for change in changes]
        else:
            content = [{"text": document.text}]

        assert self._channel is not None
        sent = self._channel.notify("textDocument/didChange", {
            "textDocument": document.identifier(versioned=True),
            "contentChanges": content,
        })
        if sent:
            self._open_documents[document.uri] = document.version
        return sent

    def did_close(self, document: TextDocument) -> bool:
        if not self._accepting() or document.uri not in self._open_documents:
            return False
        del self._open_documents[document.uri]
        self._diagnostics.pop(document.uri, None)
        assert self._channel is not None
        return self._channel.notify("textDocument/didClose", {"textDocument": document.identifier()})

    def _unregister(self) -> None:
        registration, self._registration = self._registration, None
        if registration is not None:
            registration.dispose()

    # -- requests --

    async def send_request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request to the running server.

        Raises:
            ChannelError: The client is not running or the connection dropped
            ResponseError: The server answered with an error
        """
        if not self._accepting():
            raise ChannelError(f"cannot send '{method}': client is {self._state.value}")
        assert self._channel is not None
        return await self._channel.request(method, params, timeout=timeout)

    async def hover(self, document: TextDocument, line: int, character: int) -> Any:
        return await self.send_request("textDocument/hover", {
            "textDocument": document.identifier(),
            "position": {"line": line, "character": character},
        })

    async def completion(self, document: TextDocument, line: int, character: int) -> List[Dict[str, Any]]:
        result = await self.send_request("textDocument/completion", {
            "textDocument": document.identifier(),
            "position": {"line": line, "character": character},
        })
        if isinstance(result, dict):
            return list(result.get("items", []))
        return list(result or [])

    async def wait_for_diagnostics(self, uri: str, timeout: float = 3.0) -> bool:
        """Wait until diagnostics are published for ``uri``; False on timeout."""
        event = asyncio.Event()
        self._diag_waiters.setdefault(uri, []).append(event)
        try:
            await asyncio.wait_for(event.wait(), timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            waiters = self._diag_waiters.get(uri, [])
            if event in waiters:
                waiters.remove(event)
            if not waiters:
                self._diag_waiters.pop(uri, None)

    # -- server to client --

    def _on_notification(self, method: str, params: Any) -> None:
        params = params or {}
        if method == "textDocument/publishDiagnostics":
            self._handle_diagnostics(params)
        elif method in ("window/logMessage", "window/showMessage"):
            level = _LOG_MESSAGE_LEVELS.get(params.get("type"), "info")
            getattr(log, level)("server message", {
                "client_id": self.identity.id,
                "method": method,
                "message": params.get("message"),
            })
        else:
            log.debug("unhandled notification", {"method": method})

    def _handle_diagnostics(self, params: Dict[str, Any]) -> None:
        uri = params.get("uri", "")
        diagnostics = [LSPDiagnostic.model_validate(d) for d in params.get("diagnostics", [])]
        self._diagnostics[uri] = diagnostics
        log.info("textDocument/publishDiagnostics", {"uri": uri, "count": len(diagnostics)})

        for event in self._diag_waiters.get(uri, []):
            event.set()
        self._spawn(Bus.publish(DiagnosticsPublished, DiagnosticsPublishedProps(
            client_id=self.identity.id,
            uri=uri,
            diagnostics=[d.model_dump(exclude_none=True) for d in diagnostics],
        )))

    async def _on_request(self, method: str, params: Any) -> Any:
        params = params or {}
        if method == "workspace/configuration":
            return [None for _ in params.get("items", [])]
        if method in (
            "client/registerCapability",
            "client/unregisterCapability",
            "window/workDoneProgress/create",
            "window/showMessageRequest",
        ):
            return None
        if method == "workspace/workspaceFolders":
            root = self._root_path()
            if not root:
                return None
            return [{"name": os.path.basename(root) or root, "uri": path_to_uri(root)}]
        raise ResponseError(ResponseError.METHOD_NOT_FOUND, f"unhandled method: {method}")

    # -- helpers --

    def _root_path(self) -> Optional[str]:
        return getattr(self.workspace, "root", None)

    async def _set_state(self, state: ClientState) -> None:
        if self._state == state:
            return
        previous, self._state = self._state, state
        log.info("state changed", {
            "client_id": self.identity.id,
            "from": previous.value,
            "to": state.value,
        })
        await Bus.publish(ClientStateChanged, ClientStateChangedProps(
            client_id=self.identity.id,
            state=state,
            pid=self.pid,
        ))

    async def _report(self, error: LanguageClientError) -> None:
        self.last_error = error
        message = format_error(error, self.identity.display_name) or str(error)
        log.error(message, {"client_id": self.identity.id, "kind": error.kind})
        await Bus.publish(ClientErrorReported, ClientErrorProps(
            client_id=self.identity.id,
            kind=error.kind,
            message=message,
        ))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._on_background_done)

    def _on_background_done(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("background task failed", {
                "client_id": self.identity.id,
                "error": format_unknown_error(error),
            })
