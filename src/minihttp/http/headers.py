"""
=============================================================================
CASE-INSENSITIVE HEADERS
=============================================================================

HTTP header names are case-insensitive (RFC 7230 section 3.2):

    Content-Type: text/plain
    content-type: text/plain        ← same header
    CONTENT-TYPE: text/plain        ← same header

Headers normalizes every name to lowercase BEFORE storing it, so a lookup
never needs to know how the peer spelled it:

    headers = Headers()
    headers["Content-Type"] = "text/plain"
    headers["content-type"]          # "text/plain"
    "CONTENT-TYPE" in headers        # True

Setting an existing name replaces the value, so for a repeated request
header the LAST occurrence wins.

The spelling used by the most recent assignment is remembered and used when
the headers are written back onto the wire, so a handler that sets
"Content-Type" gets "Content-Type" in its response rather than
"content-type".

=============================================================================
"""

from collections.abc import MutableMapping
from typing import Dict, Iterator, Mapping, Optional, Tuple


class Headers(MutableMapping):
    """
    Mutable mapping of header name → value with case-insensitive keys.

    Keys are stored lowercased; iteration yields the lowercased keys.
    Use wire_items() to get (display name, value) pairs for serialization.
    """

    def __init__(self, initial: Optional[Mapping[str, str]] = None, **kwargs: str):
        # lowercase name → (display name, value)
        self._store: Dict[str, Tuple[str, str]] = {}
        if initial:
            self.update(initial)
        if kwargs:
            self.update(kwargs)

    @staticmethod
    def normalize(name: str) -> str:
        """Normalize a header name to its storage form."""
        return name.strip().lower()

    def __setitem__(self, name: str, value: str) -> None:
        self._store[self.normalize(name)] = (name.strip(), str(value))

    def __getitem__(self, name: str) -> str:
        return self._store[self.normalize(name)][1]

    def __delitem__(self, name: str) -> None:
        del self._store[self.normalize(name)]

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        return self.normalize(name) in self._store

    def __iter__(self) -> Iterator[str]:
        return iter(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def wire_items(self) -> Iterator[Tuple[str, str]]:
        """Yield (name as last set, value) pairs for serialization."""
        return iter(self._store.values())

    def copy(self) -> "Headers":
        copied = Headers()
        copied._store = dict(self._store)
        return copied

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Headers):
            return dict(self.items()) == dict(other.items())
        if isinstance(other, Mapping):
            return dict(self.items()) == {self.normalize(k): v for k, v in other.items()}
        return NotImplemented

    def __repr__(self) -> str:
        return f"Headers({dict(self.wire_items())!r})"
