"""Language client exceptions.

Every failure the client reports to its host is one of these. They share the
``kind`` attribute used as the ``kind`` field of ``lsp.client.error`` events.
"""

from __future__ import annotations

from typing import Sequence


class LanguageClientError(Exception):
    """Base class for language client failures."""

    kind = "error"


class ConfigurationError(LanguageClientError):
    """Malformed client input, detected before any process is spawned."""

    kind = "configuration"


class SpawnError(LanguageClientError):
    """The server executable could not be found or started."""

    kind = "spawn"

    def __init__(self, command: str, args: Sequence[str] = (), reason: str | None = None):
        self.command = command
        self.args_ = tuple(args)
        self.reason = reason
        message = f"failed to start language server '{command}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)

    @property
    def command_line(self) -> str:
        return " ".join([self.command, *self.args_])


class HandshakeError(LanguageClientError):
    """The server started but did not complete ``initialize``."""

    kind = "handshake"


class ResponseError(LanguageClientError):
    """A JSON-RPC error response, or one we send back to the server."""

    kind = "response"

    METHOD_NOT_FOUND = -32601

    def __init__(self, code: int, message: str, data: object = None):
        self.code = code
        self.data = data
        super().__init__(message)

    def to_lsp(self) -> dict:
        error = {"code": self.code, "message": str(self)}
        if self.data is not None:
            error["data"] = self.data
        return error


class ChannelError(LanguageClientError):
    """The server exited or its stream broke while the session was live."""

    kind = "channel"

    def __init__(self, message: str, returncode: int | None = None):
        self.returncode = returncode
        super().__init__(message)
