"""Text documents as the host hands them to the client."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import quote, unquote, urlparse

# File extension -> LSP language identifier
LANGUAGE_EXTENSIONS: Dict[str, str] = {
    ".html": "html",
    ".htm": "html",
    ".css": "css",
    ".scss": "scss",
    ".sass": "sass",
    ".js": "javascript",
    ".ts": "typescript",
    ".json": "json",
    ".md": "markdown",
    ".rs": "rust",
    ".py": "python",
    ".toml": "toml",
}


def language_for_path(path: str) -> str:
    extension = os.path.splitext(path)[1].lower()
    return LANGUAGE_EXTENSIONS.get(extension, "plaintext")


def path_to_uri(path: str) -> str:
    """Convert a file path to a ``file://`` URI."""
    path = os.path.abspath(path)
    if os.name == "nt":
        path = "/" + path.replace("\\", "/")
    return "file://" + quote(path, safe="/:")


def uri_to_path(uri: str) -> str:
    """Convert a file URI to a filesystem path."""
    path = unquote(urlparse(uri).path)
    if os.name == "nt" and path.startswith("/"):
        path = path[1:]
    return os.path.normpath(path)


@dataclass(slots=True)
class TextDocumentContentChange:
    """A content change; whole-document when ``range`` is None."""
    text: str
    range: Optional[Dict[str, Any]] = None

    def to_lsp(self) -> Dict[str, Any]:
        if self.range is None:
            return {"text": self.text}
        return {"range": self.range, "text": self.text}


@dataclass(slots=True)
class TextDocument:
    """An open document.

    Attributes:
        uri: Document URI (``file:///...``, ``untitled:...``)
        language_id: LSP language identifier, e.g. ``html``
        version: Increases with every change
        text: Current full text
    """
    uri: str
    language_id: str
    version: int = 0
    text: str = ""
    _parsed: Any = field(default=None, init=False, repr=False, compare=False)

    def _parse(self) -> Any:
        if self._parsed is None:
            self._parsed = urlparse(self.uri)
        return self._parsed

    @property
    def scheme(self) -> str:
        return self._parse().scheme

    @property
    def path(self) -> str:
        """Filesystem path for ``file`` URIs, the raw URI path otherwise."""
        if self.scheme == "file":
            return uri_to_path(self.uri)
        return unquote(self._parse().path)

    def to_item(self) -> Dict[str, Any]:
        """``TextDocumentItem`` payload for ``didOpen``."""
        return {
            "uri": self.uri,
            "languageId": self.language_id,
            "version": self.version,
            "text": self.text,
        }

    def identifier(self, versioned: bool = False) -> Dict[str, Any]:
        if versioned:
            return {"uri": self.uri, "version": self.version}
        return {"uri": self.uri}
