"""Document selectors: which open documents a server receives."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from .document import TextDocument
from .errors import ConfigurationError


@dataclass(frozen=True, slots=True)
class DocumentFilter:
    """Matches documents by URI scheme, language id and optional path glob.

    Unset fields match anything, but a filter must name a scheme or a
    language.
    """
    scheme: Optional[str] = None
    language: Optional[str] = None
    pattern: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.scheme and not self.language:
            raise ConfigurationError("document filter needs a scheme or a language")

    def matches(self, document: TextDocument) -> bool:
        if self.scheme and document.scheme != self.scheme:
            return False
        if self.language and document.language_id != self.language:
            return False
        if self.pattern and not fnmatch(document.path, self.pattern):
            return False
        return True

    def to_lsp(self) -> Dict[str, str]:
        data = {"scheme": self.scheme, "language": self.language, "pattern": self.pattern}
        return {key: value for key, value in data.items() if value}


class DocumentSelector:
    """Immutable, ordered set of filters; a document matches if any filter does."""

    __slots__ = ("_filters",)

    def __init__(self, filters: Iterable[DocumentFilter] = ()):
        unique: list[DocumentFilter] = []
        for item in filters:
            if item not in unique:
                unique.append(item)
        self._filters: Tuple[DocumentFilter, ...] = tuple(unique)

    @classmethod
    def of(cls, *entries: Dict[str, Any]) -> "DocumentSelector":
        """Build from ``{"scheme": ..., "language": ..., "pattern": ...}`` mappings."""
        filters = []
        for entry in entries:
            unknown = set(entry) - {"scheme", "language", "pattern"}
            if unknown:
                raise ConfigurationError(f"unknown document filter keys: {sorted(unknown)}")
            filters.append(DocumentFilter(**entry))
        return cls(filters)

    @property
    def filters(self) -> Tuple[DocumentFilter, ...]:
        return self._filters

    def matches(self, document: TextDocument) -> bool:
        return any(f.matches(document) for f in self._filters)

    def to_lsp(self) -> list[Dict[str, str]]:
        return [f.to_lsp() for f in self._filters]

    def __iter__(self) -> Iterator[DocumentFilter]:
        return iter(self._filters)

    def __len__(self) -> int:
        return len(self._filters)

    def __bool__(self) -> bool:
        return bool(self._filters)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DocumentSelector):
            return NotImplemented
        return self._filters == other._filters

    def __hash__(self) -> int:
        return hash(self._filters)

    def __repr__(self) -> str:
        return f"DocumentSelector({list(self._filters)!r})"
