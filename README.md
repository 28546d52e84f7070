# starvalues

The value model of a Starlark interpreter: Starlark values and the rules
for comparing them, the built-in containers, the helpers that built-in
functions use to check and convert their arguments, and a wall-time
profiler that writes gzip-compressed profiles in pprof format.

The package has no dependencies beyond the standard library.

## Installation

```
pip install .
```

For the test suite:

```
pip install .[test]
pytest
```

## Modules

### `starvalues.values`

- `Value`, the abstract base of every value, with `type_name()`,
  `truth()`, `hash_value()` (a 32-bit hash; raises `StarlarkError` for
  unhashable values), `repr()` (Starlark notation) and `freeze()`.
- The scalar values `NoneType` (its single instance is `NONE`), `Bool`
  (`TRUE`, `FALSE`), `Int` (unbounded), `Float`, `String` and `Bytes`.
  `Float.mod` is the floored remainder whose sign follows the divisor;
  `String.go_string()` returns the raw, unquoted contents.
- `Builtin`, a function implemented in Python and called as
  `fn(thread, builtin, args, kwargs)`; `call_internal` invokes it and
  `bind_receiver` returns a copy bound to a receiver value.
  `builtin_attr` and `builtin_attr_names` look methods up in a table of
  builtins and bind them.
- `Op`, the comparison operators, and `Side`, the operand side of a
  binary operation.
- `compare(op, x, y)` and `compare_depth(op, x, y, depth)`,
  `equal(x, y)` and `equal_depth(x, y, depth)`. Ints and floats compare
  exactly with each other, NaN orders above +inf, values of other
  differing types are unequal, and unsupported ordered comparisons raise
  `StarlarkError`. Comparisons nested deeper than `COMPARE_LIMIT` (10)
  fail. `threeway(op, cmp)` turns a -1/0/+1 result into the outcome of
  `op`.
- `as_string(x)` and `as_float(x)` return the Python value, or `None` if
  `x` is of another type.
- `StarlarkError`, raised by failing operations, and its subclass
  `NoSuchAttrError`.

### `starvalues.iteration`

- `length(x)`: the length of a string (in UTF-8 bytes), bytes or
  sequence, and -1 for other values.
- `iterate(x)`: a new iterator over `x`, or `None` if it is not
  iterable. Strings and bytes have a length but are not directly
  iterable.
- `StringElems` yields the bytes of a string as one-byte strings, or as
  ints when `ords` is set, and supports `index(i)` and `len()`.
  `StringCodepoints` yields code points as strings or ints; each byte of
  an invalid encoding yields U+FFFD.

### `starvalues.containers`

- `List`, `Tuple`, `Dict` and `Set`. Dicts and sets keep insertion
  order. Lists, dicts and sets can be frozen, after which mutation raises
  `StarlarkError`; a list, dict or set also refuses mutation while an
  iterator over it is active.
- `Dict.get` and `Dict.delete` return `None` for a missing key;
  `Set.has` and `Set.delete` return a bool.
- `write_value(x, path)` and `to_string(x)` render values in Starlark
  notation; a list or dict that contains itself is printed as `[...]` or
  `{...}`.

### `starvalues.unpack`

- `unpack_args(fnname, args, kwargs, *params)` takes alternating
  parameter names and kinds and returns a list with one entry per
  parameter (`None` for those given no argument). A name ending in `?`
  makes it and every later parameter optional; `??` also treats a `None`
  argument as absent. Unknown keywords are reported with a
  "did you mean" suggestion when one is close.
- `unpack_positional_args(fnname, args, kwargs, min_count, *kinds)`
  accepts positional arguments only.
- `unpack_one(value, kind)` converts a single value. A kind is `Value`
  (anything), `str`, `bool`, `int` or `float` (converted to the Python
  value), `collections.abc.Callable` or `collections.abc.Iterable`, a
  `Value` subclass such as `List`, or an `Unpacker` instance whose
  `unpack` method does the conversion.

### `starvalues.profile`

- `start_profile(out)` and `stop_profile()` run the module's shared
  `Profiler`, which writes a gzip-compressed pprof profile to the binary
  stream `out` from a background thread. Starting it twice raises
  `StarlarkError`; `stop` re-raises any error met while writing.
- `SpanClock` accumulates the wall time of spans per thread
  (`begin_span`, `end_span(profiler, stack)`) and records only whole
  10 ms quanta, returning the nanoseconds recorded.
- `ProfFrame` is one frame of a recorded stack; `Profiler.record`
  records a duration for a stack directly.
- `ProtoEncoder` writes protocol-buffer varints, tags, strings, bytes
  and integers to a stream.

## Example

```python
from starvalues.values import String, Int, Op, compare
from starvalues.containers import List

s = String("hello")
print(s.repr())        # "hello"
print(s.go_string())   # hello

items = List([])
items.append(String("hello"))
print(items.index(0).go_string())   # hello

print(compare(Op.LT, Int(1), Int(2)))   # True
```

Profiling:

```python
from starvalues.profile import start_profile, stop_profile

with open("out.pprof", "wb") as out:
    start_profile(out)
    ...  # run the code being profiled
    stop_profile()
```

## What this package does not do

It holds values only. There is no parser, compiler or bytecode
interpreter, so it cannot run Starlark source, and there is no command
line. The library of built-in functions (`len`, `range`, `sorted` and the
like) is not included either: the method tables `String.methods`,
`Bytes.methods`, `List.methods`, `Dict.methods` and `Set.methods` start
empty, so `attr` returns `None` until an application fills them with
`Builtin` values. The profiler records only what its caller passes to
`SpanClock.end_span` or `Profiler.record`.