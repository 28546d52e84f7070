"""Core Starlark scalar values, built-in functions and the comparison protocol."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Callable, ClassVar, Mapping, Optional, Sequence

# Depth limit on recursive comparisons such as == and <.
COMPARE_LIMIT = 10

_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_NONFINITE_HASH = 1618033


class Op(Enum):
    """Comparison operators understood by the comparison protocol."""

    EQL = "=="
    NEQ = "!="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def __str__(self) -> str:
        return self.value


class Side(Enum):
    """Which operand of a binary operation the receiver is."""

    LEFT = False
    RIGHT = True


class StarlarkError(Exception):
    """An error raised by a Starlark operation."""


class NoSuchAttrError(StarlarkError):
    """Raised when a value has no field or method of the requested name."""


def _fnv32(data: bytes) -> int:
    h = _FNV_OFFSET
    for byte in data:
        h ^= byte
        h = (h * _FNV_PRIME) & 0xFFFFFFFF
    return h


_ESCAPES = {
    "\a": "\\a",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
    "\v": "\\v",
    '"': '\\"',
    "\\": "\\\\",
}


def _quote(text: str, prefix: str = "") -> str:
    """Quote text as a Starlark string literal.

    Lone surrogates in the range U+DC80..U+DCFF stand for undecodable
    bytes and are written as hexadecimal byte escapes.
    """
    parts = [prefix, '"']
    for ch in text:
        code = ord(ch)
        if ch in _ESCAPES:
            parts.append(_ESCAPES[ch])
        elif 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\x{code - 0xDC00:02x}")
        elif ch.isprintable():
            parts.append(ch)
        elif code < 0x80:
            parts.append(f"\\x{code:02x}")
        elif code < 0x10000:
            parts.append(f"\\u{code:04x}")
        else:
            parts.append(f"\\U{code:08x}")
    parts.append('"')
    return "".join(parts)


class Value(ABC):
    """A value in the Starlark interpreter."""

    @abstractmethod
    def type_name(self) -> str:
        """Return a short string naming the value's type."""

    @abstractmethod
    def truth(self) -> bool:
        """Return the truth value of the object."""

    @abstractmethod
    def hash_value(self) -> int:
        """Return a 32-bit hash; raise StarlarkError if unhashable."""

    @abstractmethod
    def repr(self) -> str:
        """Return the value in Starlark notation."""

    def freeze(self) -> None:
        """Mark the value and everything reachable from it as immutable."""

    def compare_same_type(self, op: Op, other: "Value", depth: int) -> Any:
        """Compare with a value of the same type, or return NotImplemented."""
        return NotImplemented

    def __str__(self) -> str:
        return self.repr()


class NoneType(Value):
    """The type of None; it has a single instance."""

    _instance: ClassVar[Optional["NoneType"]] = None

    def __new__(cls) -> "NoneType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def type_name(self) -> str:
        return "NoneType"

    def truth(self) -> bool:
        return False

    def hash_value(self) -> int:
        return 0

    def repr(self) -> str:
        return "None"

    def __repr__(self) -> str:
        return "NONE"


NONE = NoneType()


@dataclass(frozen=True)
class Bool(Value):
    """A Starlark bool."""

    value: bool

    def type_name(self) -> str:
        return "bool"

    def truth(self) -> bool:
        return self.value

    def hash_value(self) -> int:
        return int(self.value)

    def repr(self) -> str:
        return "True" if self.value else "False"

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Bool)
        return threeway(op, int(self.value) - int(other.value))


TRUE = Bool(True)
FALSE = Bool(False)


@dataclass(frozen=True)
class Int(Value):
    """A Starlark integer of unbounded size."""

    value: int

    def type_name(self) -> str:
        return "int"

    def truth(self) -> bool:
        return self.value != 0

    def hash_value(self) -> int:
        return hash(self.value) & 0xFFFFFFFF

    def repr(self) -> str:
        return str(self.value)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Int)
        return threeway(op, (self.value > other.value) - (self.value < other.value))


def _float_digits(f: float) -> tuple[str, int]:
    """Return the shortest decimal digits of abs(f) and the decimal point position."""
    _, digit_tuple, exponent = Decimal(repr(abs(f))).as_tuple()
    digits = "".join(map(str, digit_tuple))
    point = len(digits) + exponent
    return digits.rstrip("0"), point


def _shortest_g(f: float) -> str:
    sign = "-" if math.copysign(1.0, f) < 0 else ""
    if f == 0:
        return sign + "0"
    digits, point = _float_digits(f)
    exp = point - 1
    if exp < -4 or exp >= 6:
        mantissa = digits[0] + ("." + digits[1:] if len(digits) > 1 else "")
        exp_sign = "-" if exp < 0 else "+"
        return f"{sign}{mantissa}e{exp_sign}{abs(exp):02d}"
    if point <= 0:
        return f"{sign}0.{'0' * -point}{digits}"
    if point >= len(digits):
        return sign + digits + "0" * (point - len(digits))
    return f"{sign}{digits[:point]}.{digits[point:]}"


def _float_cmp(x: float, y: float) -> int:
    """Three-valued comparison with NaN ordered above +Inf."""
    if x > y:
        return 1
    if x < y:
        return -1
    if x == y:
        return 0
    if x == x:
        return -1
    if y == y:
        return 1
    return 0


@dataclass(frozen=True)
class Float(Value):
    """A Starlark float."""

    value: float

    def type_name(self) -> str:
        return "float"

    def truth(self) -> bool:
        return self.value != 0.0

    def hash_value(self) -> int:
        # Equal float and int values must hash alike.
        if math.isfinite(self.value):
            return Int(int(self.value)).hash_value()
        return _NONFINITE_HASH

    def repr(self) -> str:
        return self._format("g")

    def _format(self, conv: str) -> str:
        f = self.value
        if math.isinf(f):
            return "+inf" if f > 0 else "-inf"
        if math.isnan(f):
            return "nan"
        if conv in "gG":
            s = _shortest_g(f)
            if conv == "G":
                s = s.upper()
            exp_char = "e" if conv == "g" else "E"
            if exp_char not in s and "." not in s:
                s += ".0"
            return s
        return format(f, f".6{conv}")

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Float)
        return threeway(op, _float_cmp(self.value, other.value))

    def mod(self, other: "Float") -> "Float":
        """Return the floored remainder, whose sign follows the divisor."""
        x, y = self.value, other.value
        try:
            z = math.fmod(x, y)
        except ValueError:
            return Float(math.nan)
        if (x < 0) != (y < 0) and z != 0:
            z += y
        return Float(z)


@dataclass(frozen=True)
class String(Value):
    """A Starlark text string."""

    value: str
    methods: ClassVar[dict[str, "Builtin"]] = {}

    def type_name(self) -> str:
        return "string"

    def truth(self) -> bool:
        return len(self.value) > 0

    def hash_value(self) -> int:
        return _fnv32(self.value.encode("utf-8", errors="surrogateescape"))

    def repr(self) -> str:
        return _quote(self.value)

    def go_string(self) -> str:
        """Return the raw, unquoted contents."""
        return self.value

    def attr(self, name: str) -> Optional["Builtin"]:
        return builtin_attr(self, name, String.methods)

    def attr_names(self) -> list[str]:
        return builtin_attr_names(String.methods)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, String)
        x, y = self.value, other.value
        return threeway(op, (x > y) - (x < y))


@dataclass(frozen=True)
class Bytes(Value):
    """A Starlark binary string."""

    value: bytes
    methods: ClassVar[dict[str, "Builtin"]] = {}

    def type_name(self) -> str:
        return "bytes"

    def truth(self) -> bool:
        return len(self.value) > 0

    def hash_value(self) -> int:
        return _fnv32(self.value)

    def repr(self) -> str:
        return _quote(self.value.decode("utf-8", errors="surrogateescape"), "b")

    def attr(self, name: str) -> Optional["Builtin"]:
        return builtin_attr(self, name, Bytes.methods)

    def attr_names(self) -> list[str]:
        return builtin_attr_names(Bytes.methods)

    def compare_same_type(self, op: Op, other: Value, depth: int) -> bool:
        assert isinstance(other, Bytes)
        x, y = self.value, other.value
        return threeway(op, (x > y) - (x < y))


BuiltinFunc = Callable[[Any, "Builtin", Sequence[Value], Sequence[Sequence[Value]]], Value]


class Builtin(Value):
    """A function or bound method implemented in Python."""

    def __init__(self, name: str, fn: BuiltinFunc, receiver: Optional[Value] = None):
        self.name = name
        self.fn = fn
        self.receiver = receiver

    def type_name(self) -> str:
        return "builtin_function_or_method"

    def truth(self) -> bool:
        return True

    def hash_value(self) -> int:
        h = _fnv32(self.name.encode("utf-8"))
        if self.receiver is not None:
            h ^= 5521
        return h

    def freeze(self) -> None:
        if self.receiver is not None:
            self.receiver.freeze()

    def repr(self) -> str:
        if self.receiver is not None:
            return f"<built-in method {self.name} of {self.receiver.type_name()} value>"
        return f"<built-in function {self.name}>"

    def call_internal(self, thread: Any, args: Sequence[Value], kwargs: Sequence[Sequence[Value]]) -> Value:
        return self.fn(thread, self, args, kwargs)

    def bind_receiver(self, recv: Value) -> "Builtin":
        """Return a copy of this builtin bound to the receiver value."""
        return Builtin(self.name, self.fn, recv)

    def __repr__(self) -> str:
        return f"Builtin({self.name!r})"


def builtin_attr(recv: Value, name: str, methods: Mapping[str, Builtin]) -> Optional[Builtin]:
    """Return the named method bound to recv, or None if there is none."""
    method = methods.get(name)
    if method is None:
        return None
    return method.bind_receiver(recv)


def builtin_attr_names(methods: Mapping[str, Builtin]) -> list[str]:
    return sorted(methods)


def threeway(op: Op, cmp: int) -> bool:
    """Interpret a three-way comparison result as the outcome of op."""
    if op is Op.EQL:
        return cmp == 0
    if op is Op.NEQ:
        return cmp != 0
    if op is Op.LE:
        return cmp <= 0
    if op is Op.LT:
        return cmp < 0
    if op is Op.GE:
        return cmp >= 0
    if op is Op.GT:
        return cmp > 0
    raise ValueError(f"not a comparison operator: {op!r}")


def _same_type(x: Value, y: Value) -> bool:
    return type(x) is type(y) or x.type_name() == y.type_name()


def _int_float_cmp(i: int, f: float) -> int:
    if math.isnan(f):
        return -1
    if math.isinf(f):
        return -1 if f > 0 else 1
    a, b = Fraction(i), Fraction(f)
    return (a > b) - (a < b)


def compare_depth(op: Op, x: Value, y: Value, depth: int) -> bool:
    """Compare two values, failing once depth is exhausted."""
    if depth < 1:
        raise StarlarkError("comparison exceeded maximum recursion depth")
    if _same_type(x, y):
        result = x.compare_same_type(op, y, depth)
        if result is not NotImplemented:
            return result
        if op is Op.EQL:
            return x is y or x == y
        if op is Op.NEQ:
            return not (x is y or x == y)
        raise StarlarkError(f"{x.type_name()} {op} {y.type_name()} not implemented")

    if isinstance(x, Int) and isinstance(y, Float):
        return threeway(op, _int_float_cmp(x.value, y.value))
    if isinstance(x, Float) and isinstance(y, Int):
        return threeway(op, -_int_float_cmp(y.value, x.value))

    if op is Op.EQL:
        return False
    if op is Op.NEQ:
        return True
    raise StarlarkError(f"{x.type_name()} {op} {y.type_name()} not implemented")


def compare(op: Op, x: Value, y: Value) -> bool:
    return compare_depth(op, x, y, COMPARE_LIMIT)


def equal_depth(x: Value, y: Value, depth: int) -> bool:
    return compare_depth(Op.EQL, x, y, depth)


def equal(x: Value, y: Value) -> bool:
    """Report whether two Starlark values are equal."""
    if isinstance(x, String):
        return isinstance(y, String) and x.value == y.value
    return equal_depth(x, y, COMPARE_LIMIT)


def as_string(x: Value) -> Optional[str]:
    """Return the contents of a String, or None for any other value."""
    if isinstance(x, String):
        return x.value
    return None


def as_float(x: Value) -> Optional[float]:
    """Return the float nearest to a Float or Int, or None for other values."""
    if isinstance(x, Float):
        return x.value
    if isinstance(x, Int):
        try:
            return float(x.value)
        except OverflowError:
            return math.inf if x.value > 0 else -math.inf
    return None