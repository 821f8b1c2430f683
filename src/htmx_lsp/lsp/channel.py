"""JSON-RPC channel over the server's stdio.

Framing is done by ``pylsp_jsonrpc``. Incoming messages are read on a worker
thread and handed to the event loop in arrival order. Outgoing messages go
through a single queue drained by a single writer task, so they reach the
wire in the order they were produced.
"""

from __future__ import annotations

import asyncio
from contextvars import Context, copy_context
from typing import Any, Awaitable, Callable, Dict, Optional

from pylsp_jsonrpc.streams import JsonRpcStreamReader, JsonRpcStreamWriter

from ..util.log import Log
from .errors import ChannelError, ResponseError
from .process import ServerProcess

log = Log.create({"service": "lsp.channel"})

NotificationHandler = Callable[[str, Any], None]
RequestHandler = Callable[[str, Any], Awaitable[Any]]
CloseHandler = Callable[[ChannelError], None]

_STOP = object()


class JsonRpcChannel:
    """Ordered duplex JSON-RPC stream bound to one server process.

    The channel is the only writer to the process's stdin.
    """

    def __init__(
        self,
        process: ServerProcess,
        *,
        on_notification: NotificationHandler,
        on_request: RequestHandler,
        on_close: CloseHandler,
    ):
        self.process = process
        self._on_notification = on_notification
        self._on_request = on_request
        self._on_close = on_close
        self._request_id = 0
        self._pending: Dict[int, asyncio.Future] = {}
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_context: Context | None = None
        self._stream_reader: Optional[JsonRpcStreamReader] = None
        self._stream_writer: Optional[JsonRpcStreamWriter] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._writer_task: Optional[asyncio.Task] = None
        self._live = False
        self._closing = False

    @property
    def live(self) -> bool:
        return self._live

    @property
    def reader_finished(self) -> bool:
        return self._reader_task is None or self._reader_task.done()

    def open(self) -> None:
        stdout = self.process.process.stdout
        stdin = self.process.process.stdin
        if not stdout or not stdin:
            raise ChannelError("server stdio not available")

        self._loop = asyncio.get_running_loop()
        self._loop_context = copy_context()
        self._stream_reader = JsonRpcStreamReader(stdout)
        self._stream_writer = JsonRpcStreamWriter(stdin)
        self._live = True
        self._reader_task = asyncio.create_task(self._read_messages())
        self._writer_task = asyncio.create_task(self._write_messages())

    # -- incoming --

    async def _read_messages(self) -> None:
        assert self._stream_reader is not None
        loop = asyncio.get_running_loop()
        error: Optional[BaseException] = None
        try:
            await loop.run_in_executor(
                None,
                self._stream_reader.listen,
                self._consume_message_from_reader_thread,
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e
            log.error("error reading server messages", {"pid": self.process.pid, "error": str(e)})

        message = "server closed the connection"
        if error is not None:
            message = f"server stream broke: {error}"
        self._mark_closed(ChannelError(message, self.process.returncode))

    def _consume_message_from_reader_thread(self, message: Dict[str, Any]) -> None:
        """Bridge reader-thread messages into the asyncio event loop."""
        if not self._loop or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._dispatch, message, context=self._loop_context)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if not self._live:
            return

        if "method" in message:
            method = message["method"]
            params = message.get("params")
            if "id" in message:
                task = asyncio.create_task(self._answer(message["id"], method, params))
                task.add_done_callback(self._on_answer_done)
                return
            try:
                self._on_notification(method, params)
            except Exception as e:
                log.error("notification handler failed", {"method": method, "error": str(e)})
            return

        request_id = message.get("id")
        future = self._pending.get(request_id) if isinstance(request_id, int) else None
        if future is None or future.done():
            log.warn("response for unknown request", {"id": request_id})
            return
        if "error" in message:
            error = message["error"] or {}
            future.set_exception(ResponseError(
                error.get("code", 0),
                error.get("message", "Unknown error"),
                error.get("data"),
            ))
        else:
            future.set_result(message.get("result"))

    async def _answer(self, request_id: Any, method: str, params: Any) -> None:
        try:
            result = await self._on_request(method, params)
        except ResponseError as e:
            self._enqueue({"jsonrpc": "2.0", "id": request_id, "error": e.to_lsp()})
            return
        self._enqueue({"jsonrpc": "2.0", "id": request_id, "result": result})

    def _on_answer_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log.error("request handler failed", {"pid": self.process.pid, "error": str(error)})

    # -- outgoing --

    def _enqueue(self, message: Dict[str, Any]) -> bool:
        if not self._live or self._closing:
            return False
        self._outgoing.put_nowait(message)
        return True

    async def _write_messages(self) -> None:
        assert self._stream_writer is not None
        while True:
            message = await self._outgoing.get()
            try:
                if message is _STOP:
                    return
                # Anything still queued when the server went away is dropped.
                if self._live:
                    await asyncio.to_thread(self._stream_writer.write, message)
            finally:
                self._outgoing.task_done()

    def notify(self, method: str, params: Any = None) -> bool:
        """Queue a notification; False if the channel no longer accepts messages."""
        message: Dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        return self._enqueue(message)

    async def request(self, method: str, params: Any = None, timeout: Optional[float] = None) -> Any:
        """Send a request and wait for its result.

        Raises:
            ResponseError: The server answered with an error
            ChannelError: The channel closed before the answer arrived
            asyncio.TimeoutError: No answer within ``timeout``
        """
        self._request_id += 1
        request_id = self._request_id
        message: Dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params

        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            if not self._enqueue(message):
                raise ChannelError(f"cannot send '{method}': channel closed")
            return await asyncio.wait_for(future, timeout=timeout)
        finally:
            self._pending.pop(request_id, None)

    async def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued message has been written."""
        try:
            await asyncio.wait_for(self._outgoing.join(), timeout=timeout)
        except asyncio.TimeoutError:
            log.warn("timed out flushing messages", {"pid": self.process.pid})

    # -- teardown --

    def _mark_closed(self, error: ChannelError) -> None:
        if not self._live:
            return
        self._live = False
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
        self._outgoing.put_nowait(_STOP)
        if not self._closing:
            self._on_close(error)

    def begin_close(self) -> None:
        """Stop accepting new messages; the server's exit is now expected."""
        self._closing = True

    async def close(self, timeout: float = 1.0) -> None:
        """Release the streams once the process has exited or been killed."""
        self._closing = True
        if self._reader_task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(self._reader_task), timeout=timeout)
            except asyncio.TimeoutError:
                log.warn("reader did not finish", {"pid": self.process.pid})
        self._mark_closed(ChannelError("channel closed", self.process.returncode))

        if self._writer_task is not None:
            try:
                await asyncio.wait_for(self._writer_task, timeout=timeout)
            except (asyncio.TimeoutError, asyncio.CancelledError):
                pass

        if self._stream_writer is not None:
            try:
                self._stream_writer.close()
            except Exception as e:
                log.debug("failed to close writer", {"error": str(e)})
