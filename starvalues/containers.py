"""Starlark container values (list, tuple, dict and set) and their printing."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, ClassVar, Iterable, Iterator, Optional

from .values import (
    Builtin,
    NONE,
    Op,
    StarlarkError,
    Value,
    builtin_attr,
    builtin_attr_names,
    compare_depth,
    equal,
    equal_depth,
    threeway,
)

_MASK32 = 0xFFFFFFFF


class _TrackedIterator:
    """An iterator that calls release once, when exhausted or closed."""

    def __init__(self, items: Iterator[Value], release: Callable[[], None]):
        self._items = items
        self._release = release
        self._active = True

    def __iter__(self) -> "_TrackedIterator":
        return self

    def __next__(self) -> Value:
        try:
            return next(self._items)
        except StopIteration:
            self.close()
            raise

    def close(self) -> None:
        """Release the iterated container for mutation."""
        if self._active:
            self._active = False
            self._release()

    def __del__(self) -> None:
        self.close()


@dataclass(eq=False)
class _Entry:
    key: Value
    value: Value
    hash: int
    seq: int


class _HashTable:
    """An insertion-ordered hash table keyed by Starlark values."""

    def __init__(self) -> None:
        self._buckets: dict[int, list[_Entry]] = {}
        self._order: dict[int, _Entry] = {}
        self._seq = 0
        self.frozen = False
        self.itercount = 0

    def check_mutable(self, verb: str) -> None:
        if self.frozen:
            raise StarlarkError(f"cannot {verb} frozen hash table")
        if self.itercount > 0:
            raise StarlarkError(f"cannot {verb} hash table during iteration")

    def _find(self, key: Value) -> tuple[int, Optional[_Entry]]:
        h = key.hash_value()
        for entry in self._buckets.get(h, ()):
            if equal(entry.key, key):
                return h, entry
        return h, None

    def lookup(self, key: Value) -> Optional[Value]:
        _, entry = self._find(key)
        return None if entry is None else entry.value

    def insert(self, key: Value, value: Value) -> None:
        self.check_mutable("insert into")
        h, entry = self._find(key)
        if entry is not None:
            entry.value = value
            return
        entry = _Entry(key, value, h, self._seq)
        self._seq += 1
        self._buckets.setdefault(h, []).append(entry)
        self._order[entry.seq] = entry

    def delete(self, key: Value) -> Optional[Value]:
        self.check_mutable("delete from")
        h, entry = self._find(key)
        if entry is None:
            return None
        remaining = [e for e in self._buckets[h] if e is not entry]
        if remaining:
            self._buckets[h] = remaining
        else:
            del self._buckets[h]
        del self._order[entry.seq]
        return entry.value

    def clear(self) -> None:
        self.check_mutable("clear")
        self._buckets.clear()
        self._order.clear()

    def entries(self) -> list[_Entry]:
        return list(self._order.values())

    def first(self) -> Optional[_Entry]:
        return next(iter(self._order.values()), None)

    def add_all(self, other: "_HashTable") -> None:
        for entry in other.entries():
            self.insert(entry.key, entry.value)

    def freeze(self) -> None:
        if not self.frozen:
            self.frozen = True
            for entry in self._order.values():
                entry.key.freeze()
                entry.value.freeze()

    def __len__(self) -> int:
        return len(self._order)

    def iterate(self) -> Iterator[Value]:
        keys = iter([e.key for e in self._order.values()])
        if self.frozen:
            return keys
        self.itercount += 1
        return _TrackedIterator(keys, self._release)

    def _release(self) -> None:
        if not self.frozen:
            self.itercount -= 1


def _slice_compare(op: Op, x: list[Value], y: list[Value], depth: int) -> bool:
    if len(x) != len(y) and op in (Op.EQL, Op.NEQ):
        return op is Op.NEQ
    for a, b in zip(x, y):
        if not equal_depth(a, b, depth - 1):
            if op is Op.EQL:
                return False
            if op is Op.NEQ:
                return True
            return compare_depth(op, a, b, depth - 1)
    return threeway(op, len(x) - len(y))


def _pick(elems: list[Value], start: int, end: int, step: int) -> list[Value]:
    return [elems[i] for i in range(start, end, step)]


class List(Value):
    """A mutable Starlark list."""

    methods: ClassVar[dict[str, Builtin]] = {}

    def __init__(self, elems: Optional[Iterable[Value]] = None):
        self.elems: list[Value] = list(elems) if elems is not None else []
        self.frozen = False
        self.itercount = 0

    def type_name(self) -> str:
        return "list"

    def truth(self) -> bool:
        return len(self.elems) > 0

    def hash_value(self) -> int:
        raise StarlarkError("unhashable type: list")

    def repr(self) -> str:
        return to_string(self)

    def freeze(self) -> None:
        if not self.frozen:
            self.frozen = True
            for elem in self.elems:
                elem.freeze()

    def check_mutable(self, verb: str) -> None:
        """Raise if the list must not be mutated; verb + ' list' names the operation."""
        if self.frozen:
            raise StarlarkError(f"cannot {verb} frozen list")
        if self.itercount > 0:
            raise StarlarkError(f"cannot {verb} list during iteration")

    def __len__(self) -> int:
        return len(self.elems)

    def __iter__(self) -> Iterator[Value]:
        if self.frozen:
            return iter(self.elems)
        self.itercount += 1
        return _TrackedIterator(iter(self.elems), self._release)

    def _release(self) -> None:
        if not self.frozen:
            self.itercount -= 1

    def index(self, i: int) -> Value:
        return self.elems[i]

    def slice(self, start: int, end: int, step: int) -> "List":
        if step == 1:
            return List(self.elems[start:end])
        return List(_pick(self.elems, start, end, step))

    def set_index(self, i: int, v: Value) -> None:
        self.check_mutable("assign to element of")
        self.elems[i] = v

    def append(self, v: Value) -> None:
        self.check_mutable("append to")
        self.elems.append(v)

    def clear(self) -> None:
        self.check_mutable("clear")
        self.elems.clear()

    def attr(self, name: str) -> Optional[Builtin]:
        return builtin_attr(self, name, List.methods)

    def attr_names(self) -> list[str]:
        return builtin_attr_names(List.methods)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, List)
        # A list holding NaN is not equal to itself, so no identity shortcut.
        return _slice_compare(op, self.elems, other.elems, depth)


class Tuple(Value):
    """An immutable Starlark tuple."""

    def __init__(self, elems: Iterable[Value] = ()):
        self.elems: tuple[Value, ...] = tuple(elems)

    def type_name(self) -> str:
        return "tuple"

    def truth(self) -> bool:
        return len(self.elems) > 0

    def hash_value(self) -> int:
        x, mult = 0x345678, 1000003
        n = len(self.elems)
        for elem in self.elems:
            y = elem.hash_value()
            x = (x ^ (y * mult)) & _MASK32
            mult = (mult + 82520 + n + n) & _MASK32
        return x

    def repr(self) -> str:
        return to_string(self)

    def freeze(self) -> None:
        for elem in self.elems:
            elem.freeze()

    def __len__(self) -> int:
        return len(self.elems)

    def __iter__(self) -> Iterator[Value]:
        return iter(self.elems)

    def index(self, i: int) -> Value:
        return self.elems[i]

    def slice(self, start: int, end: int, step: int) -> "Tuple":
        if step == 1:
            return Tuple(self.elems[start:end])
        return Tuple(_pick(list(self.elems), start, end, step))

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Tuple)
        return _slice_compare(op, list(self.elems), list(other.elems), depth)


class Dict(Value):
    """A Starlark dictionary that preserves insertion order."""

    methods: ClassVar[dict[str, Builtin]] = {}

    def __init__(self) -> None:
        self._ht = _HashTable()

    def type_name(self) -> str:
        return "dict"

    def truth(self) -> bool:
        return len(self._ht) > 0

    def hash_value(self) -> int:
        raise StarlarkError("unhashable type: dict")

    def repr(self) -> str:
        return to_string(self)

    def freeze(self) -> None:
        self._ht.freeze()

    def __len__(self) -> int:
        return len(self._ht)

    def __iter__(self) -> Iterator[Value]:
        return self._ht.iterate()

    def get(self, key: Value) -> Optional[Value]:
        """Return the value for key, or None if absent."""
        return self._ht.lookup(key)

    def set_key(self, key: Value, value: Value) -> None:
        self._ht.insert(key, value)

    def delete(self, key: Value) -> Optional[Value]:
        """Remove key and return its value, or None if it was absent."""
        return self._ht.delete(key)

    def items(self) -> list[Tuple]:
        return [Tuple((e.key, e.value)) for e in self._ht.entries()]

    def keys(self) -> list[Value]:
        return [e.key for e in self._ht.entries()]

    def clear(self) -> None:
        self._ht.clear()

    def union(self, other: "Dict") -> "Dict":
        result = Dict()
        result._ht.add_all(self._ht)
        result._ht.add_all(other._ht)
        return result

    def _first_key(self) -> Optional[Value]:
        entry = self._ht.first()
        return None if entry is None else entry.key

    def attr(self, name: str) -> Optional[Builtin]:
        return builtin_attr(self, name, Dict.methods)

    def attr_names(self) -> list[str]:
        return builtin_attr_names(Dict.methods)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Dict)
        if op is Op.EQL:
            return self._equal(other, depth)
        if op is Op.NEQ:
            return not self._equal(other, depth)
        raise StarlarkError(f"dict {op} dict not implemented")

    def _equal(self, other: "Dict", depth: int) -> bool:
        if len(self) != len(other):
            return False
        for entry in self._ht.entries():
            try:
                theirs = other.get(entry.key)
            except StarlarkError:
                return False
            if theirs is None:
                return False
            if not equal_depth(entry.value, theirs, depth - 1):
                return False
        return True


class Set(Value):
    """A Starlark set that preserves insertion order."""

    methods: ClassVar[dict[str, Builtin]] = {}

    def __init__(self, elems: Iterable[Value] = ()):
        self._ht = _HashTable()
        for elem in elems:
            self.insert(elem)

    def type_name(self) -> str:
        return "set"

    def truth(self) -> bool:
        return len(self._ht) > 0

    def hash_value(self) -> int:
        raise StarlarkError("unhashable type: set")

    def repr(self) -> str:
        return to_string(self)

    def freeze(self) -> None:
        self._ht.freeze()

    def __len__(self) -> int:
        return len(self._ht)

    def __iter__(self) -> Iterator[Value]:
        return self._ht.iterate()

    def _elems(self) -> list[Value]:
        return [e.key for e in self._ht.entries()]

    def insert(self, key: Value) -> None:
        self._ht.insert(key, NONE)

    def has(self, key: Value) -> bool:
        return self._ht.lookup(key) is not None

    def delete(self, key: Value) -> bool:
        """Remove key, reporting whether it was present."""
        return self._ht.delete(key) is not None

    def clear(self) -> None:
        self._ht.clear()

    def union(self, iterable: Iterable[Value]) -> "Set":
        result = Set(self._elems())
        for x in iterable:
            result.insert(x)
        return result

    def attr(self, name: str) -> Optional[Builtin]:
        return builtin_attr(self, name, Set.methods)

    def attr_names(self) -> list[str]:
        return builtin_attr_names(Set.methods)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Set)
        if op is Op.EQL:
            return self._equal(other)
        if op is Op.NEQ:
            return not self._equal(other)
        raise StarlarkError(f"set {op} set not implemented")

    def _equal(self, other: "Set") -> bool:
        if len(self) != len(other):
            return False
        for elem in self._elems():
            try:
                if not other.has(elem):
                    return False
            except StarlarkError:
                return False
        return True


def write_value(x: Optional[Value], path: tuple[Value, ...] = ()) -> str:
    """Return the Starlark notation of x.

    path holds the lists and dicts currently being printed, to detect cycles.
    """
    path = path or ()
    if x is None:
        return "<nil>"
    if isinstance(x, List):
        if any(p is x for p in path):
            return "[...]"
        inner = path + (x,)
        return "[" + ", ".join(write_value(e, inner) for e in x.elems) + "]"
    if isinstance(x, Tuple):
        body = ", ".join(write_value(e, path) for e in x.elems)
        if len(x.elems) == 1:
            body += ","
        return "(" + body + ")"
    if isinstance(x, Dict):
        if any(p is x for p in path):
            return "{...}"
        inner = path + (x,)
        parts = [
            f"{write_value(e.key, path)}: {write_value(e.value, inner)}"
            for e in x._ht.entries()
        ]
        return "{" + ", ".join(parts) + "}"
    if isinstance(x, Set):
        return "set([" + ", ".join(write_value(e, path) for e in x._elems()) + "])"
    return x.repr()


def to_string(x: Value) -> str:
    """Return the string form of x."""
    return write_value(x, ())


__all__ = [
    "List",
    "Tuple",
    "Dict",
    "Set",
    "write_value",
    "to_string",
]

# Silence unused-import checkers for names kept for callers' convenience.
_ = math