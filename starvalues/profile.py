"""A wall-clock execution profiler that writes gzipped pprof profiles.

Interpreter threads measure spans of time during which a function is on top
of the stack.  Each thread accumulates span time in a ``SpanClock``; whenever
the accumulator holds at least one quantum, the complete quanta are recorded
along with a copy of the call stack.  A background thread turns the recorded
stacks into a gzip-compressed protocol message in pprof format, encoded by
hand and streamed so that the profile never has to be held in memory.
"""

from __future__ import annotations

import gzip
import io
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Iterator, Optional, Sequence

from .values import Builtin, StarlarkError

# Sampling period: only whole quanta of wall time are recorded.
QUANTUM_NS = 10_000_000

_UINT64 = (1 << 64) - 1

# Field numbers of the pprof protocol.
_PROFILE_SAMPLE_TYPE = 1
_PROFILE_SAMPLE = 2
_PROFILE_LOCATION = 4
_PROFILE_FUNCTION = 5
_PROFILE_STRING_TABLE = 6
_PROFILE_TIME_NANOS = 9
_PROFILE_DURATION_NANOS = 10
_PROFILE_PERIOD_TYPE = 11
_PROFILE_PERIOD = 12

_VALUETYPE_TYPE = 1
_VALUETYPE_UNIT = 2

_SAMPLE_LOCATION_ID = 1
_SAMPLE_VALUE = 2

_LOCATION_ID = 1
_LOCATION_ADDRESS = 3
_LOCATION_LINE = 4

_LINE_FUNCTION_ID = 1
_LINE_LINE = 2

_FUNCTION_ID = 1
_FUNCTION_NAME = 2
_FUNCTION_SYSTEM_NAME = 3
_FUNCTION_FILENAME = 4
_FUNCTION_START_LINE = 5


class ProtoEncoder:
    """Writes protocol buffer fields to a binary stream."""

    def __init__(self, out: BinaryIO):
        self._out = out

    def uvarint(self, x: int) -> None:
        """Write x as an unsigned base-128 varint."""
        x &= _UINT64
        buf = bytearray()
        while x >= 0x80:
            buf.append((x & 0x7F) | 0x80)
            x >>= 7
        buf.append(x)
        self._out.write(bytes(buf))

    def tag(self, field: int, wire: int) -> None:
        self.uvarint(field << 3 | wire)

    def string(self, field: int, s: str) -> None:
        data = s.encode("utf-8", errors="surrogateescape")
        self.tag(field, 2)
        self.uvarint(len(data))
        self._out.write(data)

    def bytes(self, field: int, b: bytes) -> None:
        self.tag(field, 2)
        self.uvarint(len(b))
        self._out.write(b)

    def uint(self, field: int, x: int) -> None:
        self.tag(field, 0)
        self.uvarint(x)

    def int(self, field: int, x: int) -> None:
        """Write a signed integer as its 64-bit two's complement varint."""
        self.tag(field, 0)
        self.uvarint(x & _UINT64)


def _message(fill: Callable[[ProtoEncoder], None]) -> bytes:
    buf = io.BytesIO()
    fill(ProtoEncoder(buf))
    return buf.getvalue()


@dataclass(frozen=True)
class ProfFrame:
    """One frame of a recorded call stack.

    fn is the callable value; pc is the program counter (compiled functions
    only); filename and line give the position of pc within the frame.
    """

    fn: Any
    pc: int = 0
    filename: str = ""
    line: int = 0


@dataclass(frozen=True)
class _ProfEvent:
    duration_ns: int
    stack: tuple[ProfFrame, ...]


def _callable_name(fn: Any) -> str:
    name = getattr(fn, "name", None)
    if callable(name):
        name = name()
    return type(fn).__name__ if name is None else str(name)


def _function_position(fn: Any) -> tuple[str, int]:
    pos = getattr(fn, "position", None)
    if callable(pos):
        pos = pos()
    if pos is None:
        return "", 0
    if isinstance(pos, tuple):
        return str(pos[0]), int(pos[1])
    return str(getattr(pos, "filename", "")), int(getattr(pos, "line", 0))


def _is_compiled(fn: Any) -> bool:
    return hasattr(fn, "funcode")


def _func_addr(fn: Any) -> int:
    """Return the canonical address of a callable for the profile."""
    if isinstance(fn, Builtin):
        addr = id(fn.fn)
    elif _is_compiled(fn):
        addr = id(fn.funcode)
    else:
        addr = id(fn)
    # Address zero is reserved by the protocol.
    return (addr & _UINT64) or 1


class _ProfileWriter:
    """Tables of strings, functions and locations already emitted."""

    def __init__(self, enc: ProtoEncoder):
        self._enc = enc
        self._strings: dict[str, int] = {}
        self._functions: dict[int, int] = {}
        self._locations: dict[int, int] = {}
        self.string_index("")

    def string_index(self, s: str) -> int:
        index = self._strings.get(s)
        if index is None:
            index = len(self._strings)
            self._enc.string(_PROFILE_STRING_TABLE, s)
            self._strings[s] = index
        return index

    def function_id(self, fn: Any, addr: int) -> int:
        fid = self._functions.get(addr)
        if fid is None:
            fid = addr
            filename, start_line = _function_position(fn)
            name = _callable_name(fn)
            if name == "<toplevel>":
                name = filename
            name_index = self.string_index(name)
            file_index = self.string_index(filename)

            def fill(e: ProtoEncoder) -> None:
                e.uint(_FUNCTION_ID, fid)
                e.int(_FUNCTION_NAME, name_index)
                e.int(_FUNCTION_SYSTEM_NAME, name_index)
                e.int(_FUNCTION_FILENAME, file_index)
                e.int(_FUNCTION_START_LINE, start_line)

            self._enc.bytes(_PROFILE_FUNCTION, _message(fill))
            self._functions[addr] = fid
        return fid

    def location_id(self, frame: ProfFrame) -> int:
        fn_addr = _func_addr(frame.fn)
        pc_addr = fn_addr
        if _is_compiled(frame.fn):
            # Mix the pc into the low bits of the function address.
            pc_addr = ((pc_addr << 16) ^ frame.pc) & _UINT64
        lid = self._locations.get(pc_addr)
        if lid is None:
            lid = pc_addr
            function_id = self.function_id(frame.fn, fn_addr)
            line = _message(
                lambda e: (
                    e.uint(_LINE_FUNCTION_ID, function_id),
                    e.int(_LINE_LINE, frame.line),
                )
            )

            def fill(e: ProtoEncoder) -> None:
                e.uint(_LOCATION_ID, lid)
                e.uint(_LOCATION_ADDRESS, pc_addr)
                e.bytes(_LOCATION_LINE, line)

            self._enc.bytes(_PROFILE_LOCATION, _message(fill))
            self._locations[pc_addr] = lid
        return lid


class Profiler:
    """Collects recorded stacks and streams them to a pprof profile."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: Optional[queue.Queue] = None
        self._thread: Optional[threading.Thread] = None
        self._error: Optional[BaseException] = None
        self._drained = False

    @property
    def enabled(self) -> bool:
        return self._events is not None

    def start(self, out: BinaryIO) -> None:
        """Begin profiling, writing the profile to the binary stream out."""
        with self._lock:
            if self._events is not None:
                raise StarlarkError("profiler already running")
            events: queue.Queue = queue.Queue(maxsize=1)
            self._error = None
            self._drained = False
            self._thread = threading.Thread(
                target=self._serve, args=(out, events), name="starlark-profiler", daemon=True
            )
            self._events = events
            self._thread.start()

    def stop(self) -> None:
        """Finish the profile; re-raise any error met while writing it."""
        with self._lock:
            events, thread = self._events, self._thread
            if events is None or thread is None:
                raise StarlarkError("profiler not running")
            events.put(None)
            thread.join()
            error = self._error
            self._events = None
            self._thread = None
            self._error = None
        if error is not None:
            raise error

    def record(self, duration_ns: int, stack: Sequence[ProfFrame]) -> None:
        """Record duration_ns of wall time spent in the given stack."""
        events = self._events
        if events is None:
            return
        events.put(_ProfEvent(duration_ns, tuple(stack)))

    def _pending(self, events: queue.Queue) -> Iterator[_ProfEvent]:
        while True:
            event = events.get()
            if event is None:
                self._drained = True
                return
            yield event

    def _serve(self, out: BinaryIO, events: queue.Queue) -> None:
        try:
            self._write(out, events)
        except BaseException as err:  # reported by stop
            self._error = err
            if not self._drained:
                for _ in self._pending(events):
                    pass

    def _write(self, out: BinaryIO, events: queue.Queue) -> None:
        gz = gzip.GzipFile(fileobj=out, mode="wb")
        try:
            enc = ProtoEncoder(gz)
            writer = _ProfileWriter(enc)
            wall_type = writer.string_index("wall")
            nanos_unit = writer.string_index("nanoseconds")
            wall_nanos = _message(
                lambda e: (
                    e.int(_VALUETYPE_TYPE, wall_type),
                    e.int(_VALUETYPE_UNIT, nanos_unit),
                )
            )
            enc.bytes(_PROFILE_SAMPLE_TYPE, wall_nanos)
            enc.int(_PROFILE_PERIOD, QUANTUM_NS)
            enc.bytes(_PROFILE_PERIOD_TYPE, wall_nanos)
            enc.int(_PROFILE_TIME_NANOS, time.time_ns())

            start_ns = time.monotonic_ns()
            for event in self._pending(events):
                location_ids = [writer.location_id(frame) for frame in event.stack]

                def fill(e: ProtoEncoder, event: _ProfEvent = event) -> None:
                    e.int(_SAMPLE_VALUE, event.duration_ns)
                    for lid in location_ids:
                        e.uint(_SAMPLE_LOCATION_ID, lid)

                enc.bytes(_PROFILE_SAMPLE, _message(fill))
            enc.int(_PROFILE_DURATION_NANOS, time.monotonic_ns() - start_ns)
        finally:
            gz.close()
        flush = getattr(out, "flush", None)
        if callable(flush):
            flush()


class SpanClock:
    """Per-thread accumulator of the time spent in profiled spans."""

    def __init__(self, clock: Callable[[], int] = time.monotonic_ns):
        self._clock = clock
        self.span_start = 0
        self.proftime = 0

    def begin_span(self) -> None:
        self.span_start = self._clock()

    def end_span(self, profiler: Optional[Profiler] = None, stack: Sequence[ProfFrame] = ()) -> int:
        """Close the current span and record any complete quanta.

        Returns the number of nanoseconds recorded, zero if none.
        """
        if profiler is None:
            profiler = _default_profiler
        if not profiler.enabled:
            return 0
        self.proftime += self._clock() - self.span_start
        if self.proftime < QUANTUM_NS:
            return 0
        recorded = (self.proftime // QUANTUM_NS) * QUANTUM_NS
        self.proftime -= recorded
        profiler.record(recorded, stack)
        return recorded


_default_profiler = Profiler()


def start_profile(out: BinaryIO) -> None:
    """Enable profiling of all threads, writing a pprof profile to out."""
    _default_profiler.start(out)


def stop_profile() -> None:
    """Stop the profiler started by start_profile and finish the profile."""
    _default_profiler.stop()