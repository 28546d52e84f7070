"""Interpretation of call arguments for functions implemented in Python.

A parameter list is described by alternating names and kinds.  A kind says
what argument a parameter accepts and what the caller receives for it:

* ``Value``: any Starlark value, returned as is.
* ``str``, ``bool``, ``int``, ``float``: a String, Bool, Int or Float,
  returned as the corresponding Python value.
* ``collections.abc.Callable`` or ``collections.abc.Iterable``: a callable
  or iterable Starlark value, returned as is.
* a subclass of ``Value`` such as ``List`` or ``Dict``: an instance of it.
* an ``Unpacker`` instance: whatever its ``unpack`` method returns.

Parameters that receive no argument come back as ``None``.
"""

from __future__ import annotations

import collections.abc
import difflib
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional, Sequence

from .values import NONE, Bool, Bytes, Float, Int, StarlarkError, String, Value


class Unpacker(ABC):
    """Custom argument conversion used as a parameter kind."""

    @abstractmethod
    def unpack(self, value: Value) -> Any:
        """Convert value, raising StarlarkError if it is unacceptable."""


def _is_iterable(value: Value) -> bool:
    return not isinstance(value, (String, Bytes)) and hasattr(value, "__iter__")


def _is_callable(value: Value) -> bool:
    return callable(getattr(value, "call_internal", None))


def _kind_type_name(kind: type) -> str:
    """Return the Starlark type name of a Value subclass, if it can be found."""
    try:
        name = object.__new__(kind).type_name()
    except Exception:
        return kind.__name__
    return name if isinstance(name, str) else kind.__name__


def unpack_one(value: Value, kind: Any) -> Any:
    """Convert a single argument according to kind.

    Raises StarlarkError if the value does not suit the kind, and TypeError
    if kind is not a recognised parameter kind.
    """
    if isinstance(kind, Unpacker):
        return kind.unpack(value)
    if kind is Value:
        return value
    if kind is str:
        if not isinstance(value, String):
            raise StarlarkError(f"got {value.type_name()}, want string")
        return value.value
    if kind is bool:
        if not isinstance(value, Bool):
            raise StarlarkError(f"got {value.type_name()}, want bool")
        return value.value
    if kind is int:
        if not isinstance(value, Int):
            raise StarlarkError(f"got {value.type_name()}, want int")
        return value.value
    if kind is float:
        if not isinstance(value, Float):
            raise StarlarkError(f"got {value.type_name()}, want float")
        return value.value
    if kind is collections.abc.Callable:
        if not _is_callable(value):
            raise StarlarkError(f"got {value.type_name()}, want callable")
        return value
    if kind is collections.abc.Iterable:
        if not _is_iterable(value):
            raise StarlarkError(f"got {value.type_name()}, want iterable")
        return value
    if isinstance(kind, type) and issubclass(kind, Value):
        if not isinstance(value, kind):
            raise StarlarkError(f"got {value.type_name()}, want {_kind_type_name(kind)}")
        return value
    raise TypeError(f"internal error: not a parameter kind: {kind!r}")


def _param_name(raw: str) -> tuple[str, bool]:
    """Strip the optional markers, reporting whether None means absent."""
    if raw.endswith("??"):
        return raw[:-2], True
    if raw.endswith("?"):
        return raw[:-1], False
    return raw, False


def _split_params(params: Sequence[Any]) -> tuple[list[str], list[Any]]:
    if len(params) % 2:
        raise TypeError("internal error: parameters must alternate names and kinds")
    names = list(params[0::2])
    for name in names:
        if not isinstance(name, str) or not name:
            raise TypeError(f"internal error: bad parameter name: {name!r}")
    return names, list(params[1::2])


def _nearest(name: str, candidates: Iterable[str]) -> Optional[str]:
    matches = difflib.get_close_matches(name, list(candidates), n=1)
    return matches[0] if matches else None


def unpack_args(
    fnname: str,
    args: Sequence[Value],
    kwargs: Sequence[Sequence[Value]],
    *params: Any,
) -> list[Any]:
    """Unpack positional and keyword arguments into a list of parameter values.

    params alternates parameter names and kinds.  A name ending in "?" is
    optional, and so are all the parameters after it; a name ending in "??"
    is optional and treats a None argument as absent.
    """
    names, kinds = _split_params(params)
    nparams = len(names)
    results: list[Any] = [None] * nparams
    defined: set[int] = set()

    if len(args) > nparams:
        raise StarlarkError(f"{fnname}: got {len(args)} arguments, want at most {nparams}")
    for i, arg in enumerate(args):
        defined.add(i)
        name, skip_none = _param_name(names[i])
        if skip_none and arg is NONE:
            continue
        try:
            results[i] = unpack_one(arg, kinds[i])
        except StarlarkError as err:
            raise StarlarkError(f"{fnname}: for parameter {name}: {err}") from err

    stripped = [_param_name(raw) for raw in names]
    for item in kwargs:
        key, arg = item
        key_text = key.value if isinstance(key, String) else str(key)
        index = next((i for i, (pname, _) in enumerate(stripped) if pname == key_text), None)
        if index is None:
            message = f"{fnname}: unexpected keyword argument {key.repr()}"
            suggestion = _nearest(key_text, (pname for pname, _ in stripped))
            if suggestion is not None:
                message = f"{message} (did you mean {suggestion}?)"
            raise StarlarkError(message)
        if index in defined:
            raise StarlarkError(
                f"{fnname}: got multiple values for keyword argument {key.repr()}"
            )
        defined.add(index)
        if stripped[index][1] and arg is NONE:
            continue
        try:
            results[index] = unpack_one(arg, kinds[index])
        except StarlarkError as err:
            raise StarlarkError(f"{fnname}: for parameter {key.repr()}: {err}") from err

    for i in range(len(args), nparams):
        raw = names[i]
        if raw.endswith("?"):
            break
        if i not in defined:
            raise StarlarkError(f"{fnname}: missing argument for {raw}")

    return results


def unpack_positional_args(
    fnname: str,
    args: Sequence[Value],
    kwargs: Sequence[Sequence[Value]],
    min_count: int,
    *kinds: Any,
) -> list[Any]:
    """Unpack positional arguments only, one per kind.

    Fails if there are keyword arguments, fewer than min_count arguments,
    more arguments than kinds, or an argument does not suit its kind.
    """
    if kwargs:
        raise StarlarkError(f"{fnname}: unexpected keyword arguments")
    max_count = len(kinds)
    if len(args) < min_count:
        atleast = "at least " if min_count < max_count else ""
        raise StarlarkError(f"{fnname}: got {len(args)} arguments, want {atleast}{min_count}")
    if len(args) > max_count:
        atmost = "at most " if max_count > min_count else ""
        raise StarlarkError(f"{fnname}: got {len(args)} arguments, want {atmost}{max_count}")
    results: list[Any] = [None] * max_count
    for i, (arg, kind) in enumerate(zip(args, kinds)):
        try:
            results[i] = unpack_one(arg, kind)
        except StarlarkError as err:
            raise StarlarkError(f"{fnname}: for parameter {i + 1}: {err}") from err
    return results