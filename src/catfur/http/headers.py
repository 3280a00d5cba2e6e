"""Case-insensitive, order-preserving header mapping for responses.

Lookups ignore case; iteration yields names with the casing they were
first set with, which is what goes on the wire.

Names and values are checked when set: the head is written as latin-1, and
a CR or LF inside a value would end the header early. A bad header raises
ValueError in the code that set it, before anything reaches the socket.
"""

import re
from typing import Dict, Iterable, Iterator, Mapping, MutableMapping, Optional, Tuple, Union


HeaderSource = Union[Mapping[str, str], Iterable[Tuple[str, str]], None]

# RFC 7230 token characters
_NAME_PATTERN = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


def check_header(name: str, value: str) -> None:
    """
    Raises:
        ValueError: the name is not a token, or the value holds CR, LF or
            characters outside latin-1.
    """
    if not _NAME_PATTERN.match(name):
        raise ValueError(f"Invalid header name: {name!r}")
    if "\r" in value or "\n" in value:
        raise ValueError(f"Line break in value of header {name}")
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError(f"Value of header {name} is not latin-1: {value!r}") from None


class Headers(MutableMapping[str, str]):
    """
    Mutable header mapping with case-insensitive keys.

        >>> h = Headers({"Content-Type": "text/plain"})
        >>> h["content-type"]
        'text/plain'
        >>> "CONTENT-TYPE" in h
        True
        >>> list(h)
        ['Content-Type']
    """

    __slots__ = ("_store",)

    def __init__(self, source: HeaderSource = None) -> None:
        # lower-cased name -> (name as first set, value)
        self._store: Dict[str, Tuple[str, str]] = {}
        if source:
            self.update(source)

    def __getitem__(self, name: str) -> str:
        return self._store[name.lower()][1]

    def __setitem__(self, name: str, value: str) -> None:
        value = str(value)
        check_header(name, value)
        key = name.lower()
        existing = self._store.get(key)
        original = existing[0] if existing else name
        self._store[key] = (original, value)

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._store

    def __iter__(self) -> Iterator[str]:
        return (original for original, _ in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:  # type: ignore[override]
        entry = self._store.get(name.lower())
        return entry[1] if entry else default

    def copy(self) -> "Headers":
        return Headers(self.items())
