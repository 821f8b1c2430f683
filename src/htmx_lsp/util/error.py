"""Error formatting utilities.

Turns language client failures into the one-line messages shown on the
host's error surface.
"""

import json
import traceback
from typing import Any

from ..lsp.errors import (
    ChannelError,
    ConfigurationError,
    HandshakeError,
    LanguageClientError,
    SpawnError,
)


def format_error(error: Any, display_name: str = "Language server") -> str | None:
    """Format known client errors into user-friendly messages.

    Returns None if the error type is not recognized, allowing
    fallback to format_unknown_error.
    """
    if isinstance(error, SpawnError):
        text = f"{display_name}: could not start `{error.command_line}`"
        if error.reason:
            text += f" ({error.reason})"
        return text
    if isinstance(error, HandshakeError):
        return f"{display_name}: initialization failed: {error}"
    if isinstance(error, ChannelError):
        text = f"{display_name}: connection lost: {error}"
        if error.returncode is not None:
            text += f" (exit code {error.returncode})"
        return text
    if isinstance(error, ConfigurationError):
        return f"{display_name}: invalid configuration: {error}"
    if isinstance(error, LanguageClientError):
        return f"{display_name}: {error}"
    return None


def format_unknown_error(error: Any) -> str:
    """Format any error into a string representation.

    Handles Exception objects, serializable objects, and primitives.
    """
    if isinstance(error, Exception):
        if error.__traceback__:
            return ''.join(traceback.format_exception(type(error), error, error.__traceback__))
        return f"{error.__class__.__name__}: {str(error)}"

    if isinstance(error, (dict, list)):
        try:
            return json.dumps(error, indent=2)
        except (TypeError, ValueError):
            return "Unexpected error (unserializable)"

    return str(error)
