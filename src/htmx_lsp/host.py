"""In-process stand-in for the host editor.

The editor owns the open documents and decides which of them a client
receives: a client registers its document selector and gets open, change
and close events only for matching documents. :class:`Workspace` plays that
role for the CLI and for tests; an editor integration supplies its own
object with the same ``register_document_selector`` method.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from .lsp.document import (
    TextDocument,
    TextDocumentContentChange,
    language_for_path,
    path_to_uri,
)
from .lsp.selector import DocumentSelector
from .util.log import Log

log = Log.create({"service": "host"})


class Disposable:
    """Wraps a teardown callback; disposing twice runs it once.

    The callback may be a coroutine function; :meth:`dispose` then returns
    the awaitable.
    """

    def __init__(self, callback: Callable[[], Any]):
        self._callback = callback
        self._disposed = False

    @property
    def disposed(self) -> bool:
        return self._disposed

    def dispose(self) -> Any:
        if self._disposed:
            return None
        self._disposed = True
        return self._callback()


class DocumentSink(Protocol):
    """Receiver of routed document events (the language client)."""

    def did_open(self, document: TextDocument) -> bool: ...

    def did_change(
        self,
        document: TextDocument,
        changes: Sequence[TextDocumentContentChange] = (),
    ) -> bool: ...

    def did_close(self, document: TextDocument) -> bool: ...


def _position_offset(text: str, position: Dict[str, int]) -> int:
    """Offset of an LSP position; ``character`` counts UTF-16 code units."""
    lines = text.splitlines(keepends=True)
    line = position.get("line", 0)
    if line >= len(lines):
        return len(text)

    start = sum(len(item) for item in lines[:line])
    content = lines[line]
    units = 0
    index = 0
    while index < len(content) and units < position.get("character", 0):
        ch = content[index]
        if ch in "\r\n":
            break
        units += 2 if ord(ch) > 0xFFFF else 1
        index += 1
    return start + index


def apply_change(text: str, change: TextDocumentContentChange) -> str:
    if change.range is None:
        return change.text
    start = _position_offset(text, change.range["start"])
    end = _position_offset(text, change.range["end"])
    return text[:start] + change.text + text[max(start, end):]


@dataclass
class _Registration:
    selector: DocumentSelector
    sink: DocumentSink


class Workspace:
    """Open documents plus the clients registered for them."""

    def __init__(self, root: Optional[str] = None):
        self.root = str(Path(root).resolve()) if root else None
        self._documents: Dict[str, TextDocument] = {}
        self._registrations: List[_Registration] = []

    @property
    def text_documents(self) -> List[TextDocument]:
        return list(self._documents.values())

    def get(self, uri: str) -> Optional[TextDocument]:
        return self._documents.get(uri)

    def register_document_selector(self, selector: DocumentSelector, sink: DocumentSink) -> Disposable:
        """Route matching document events to ``sink``.

        Matching documents that are already open are announced right away.
        """
        registration = _Registration(selector, sink)
        self._registrations.append(registration)
        log.debug("registered document selector", {"selector": selector.to_lsp()})

        for document in self.text_documents:
            if selector.matches(document):
                sink.did_open(document)

        def unregister() -> None:
            if registration in self._registrations:
                self._registrations.remove(registration)

        return Disposable(unregister)

    def _sinks_for(self, document: TextDocument) -> List[DocumentSink]:
        return [r.sink for r in list(self._registrations) if r.selector.matches(document)]

    def open_text_document(
        self,
        target: str,
        language_id: Optional[str] = None,
        text: Optional[str] = None,
    ) -> TextDocument:
        """Open a document by URI or filesystem path.

        File contents are read from disk when ``text`` is not given.
        """
        if "://" in target or target.startswith("untitled:"):
            uri = target
        else:
            if self.root and not os.path.isabs(target):
                target = os.path.join(self.root, target)
            uri = path_to_uri(target)

        existing = self._documents.get(uri)
        if existing is not None:
            return existing

        document = TextDocument(uri=uri, language_id=language_id or "plaintext")
        if language_id is None:
            document.language_id = language_for_path(document.path)
        if text is None and document.scheme == "file":
            text = Path(document.path).read_text(encoding="utf-8")
        document.text = text or ""

        self._documents[uri] = document
        for sink in self._sinks_for(document):
            sink.did_open(document)
        return document

    def change_text_document(
        self,
        uri: str,
        changes: Sequence[TextDocumentContentChange],
    ) -> TextDocument:
        document = self._documents[uri]
        for change in changes:
            document.text = apply_change(document.text, change)
        document.version += 1

        for sink in self._sinks_for(document):
            sink.did_change(document, changes)
        return document

    def close_text_document(self, uri: str) -> None:
        document = self._documents.pop(uri, None)
        if document is None:
            return
        for sink in self._sinks_for(document):
            sink.did_close(document)


class ExtensionMode(str, Enum):
    """How the host is running the extension."""
    PRODUCTION = "production"
    DEVELOPMENT = "development"
    TEST = "test"


@dataclass
class ExtensionContext:
    """What the host hands to ``activate``.

    Disposables appended to ``subscriptions`` are disposed, newest first,
    when the host deactivates the extension.
    """
    workspace: Workspace = field(default_factory=Workspace)
    extension_mode: ExtensionMode = ExtensionMode.PRODUCTION
    subscriptions: List[Any] = field(default_factory=list)

    async def dispose_subscriptions(self) -> None:
        while self.subscriptions:
            item = self.subscriptions.pop()
            try:
                result = item.dispose()
                if hasattr(result, '__await__'):
                    await result
            except Exception as e:
                log.error("failed to dispose subscription", {"error": str(e)})
