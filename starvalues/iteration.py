"""Iterable views of strings and the generic length and iteration protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Optional

from .values import Bytes, Int, StarlarkError, String, Value

_REPLACEMENT = "\ufffd"


def _utf8(s: str) -> bytes:
    """Encode a Starlark string's contents to the bytes it stands for."""
    try:
        return s.encode("utf-8", errors="surrogateescape")
    except UnicodeEncodeError:
        return s.encode("utf-8", errors="surrogatepass")


def _byte_string(byte: int) -> String:
    return String(bytes([byte]).decode("utf-8", errors="surrogateescape"))


@dataclass(frozen=True)
class StringElems(Value):
    """An indexable iterable over the bytes of a string.

    It yields one-byte substrings, or their numeric values when ords is set.
    """

    s: String
    ords: bool = False

    @property
    def _data(self) -> bytes:
        return _utf8(self.s.value)

    def type_name(self) -> str:
        return "string.elems"

    def truth(self) -> bool:
        return True

    def hash_value(self) -> int:
        raise StarlarkError(f"unhashable: {self.type_name()}")

    def repr(self) -> str:
        suffix = ".elem_ords()" if self.ords else ".elems()"
        return self.s.repr() + suffix

    def index(self, i: int) -> Value:
        """Return element i, where 0 <= i < len(self)."""
        data = self._data
        if not 0 <= i < len(data):
            raise IndexError(f"index {i} out of range [0:{len(data)}]")
        byte = data[i]
        return Int(byte) if self.ords else _byte_string(byte)

    def __len__(self) -> int:
        return len(self._data)

    def __iter__(self) -> Iterator[Value]:
        for byte in self._data:
            yield Int(byte) if self.ords else _byte_string(byte)


@dataclass(frozen=True)
class StringCodepoints(Value):
    """An iterable over the Unicode code points of a string.

    Each byte of an invalid encoding yields U+FFFD.
    It yields one-code-point substrings, or their numeric values when ords is set.
    """

    s: String
    ords: bool = False

    def type_name(self) -> str:
        return "string.codepoints"

    def truth(self) -> bool:
        return True

    def hash_value(self) -> int:
        raise StarlarkError(f"unhashable: {self.type_name()}")

    def repr(self) -> str:
        suffix = ".codepoint_ords()" if self.ords else ".codepoints()"
        return self.s.repr() + suffix

    def __iter__(self) -> Iterator[Value]:
        for ch in self.s.value:
            if 0xD800 <= ord(ch) <= 0xDFFF:
                ch = _REPLACEMENT
            yield Int(ord(ch)) if self.ords else String(ch)


def length(x: Value) -> int:
    """Return the length of a string or sequence value, or -1 for all others.

    The length of a string is the number of bytes in its UTF-8 encoding.
    """
    if isinstance(x, String):
        return len(_utf8(x.value))
    if isinstance(x, Bytes):
        return len(x.value)
    if hasattr(x, "__len__"):
        return len(x)  # type: ignore[arg-type]
    return -1


def iterate(x: Value) -> Optional[Iterator[Value]]:
    """Return a new iterator over x if it is iterable, otherwise None.

    Strings and bytes have a length but are not directly iterable.
    """
    if isinstance(x, (String, Bytes)):
        return None
    if hasattr(x, "__iter__"):
        return iter(x)  # type: ignore[call-overload]
    return None