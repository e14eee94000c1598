"""Output sinks for the emission engine.

The emitter never builds an owned result buffer itself: it pushes bytes into a
:class:`Writer`. Growable writers accept everything in one pass. Fixed-size
writers are driven in two passes, first measured through a
:class:`CountingWriter`, then asked via :meth:`Writer.acquire` for the measured
size before the real writes happen.
"""

from abc import ABC, abstractmethod
from typing import BinaryIO, Union

from arena_yaml.shared.bridge import ErrorKind, report


class Writer(ABC):
    """Destination for emitted bytes.

    :attr:`position` counts every byte the emitter pushed, including bytes a
    fixed writer had to drop, so it always equals the length the output
    would occupy.
    """

    #: whether the writer can take any amount of output without an acquire
    growable = True

    def __init__(self) -> None:
        self._position = 0

    @property
    def position(self) -> int:
        return self._position

    def acquire(self, min_additional: int, error_on_excess: bool = True) -> int:
        """Request room for ``min_additional`` more bytes.

        Returns:
            Size of the writable region now available

        Raises:
            BufferExhausted: If the writer is fixed, cannot fit the request
                and ``error_on_excess`` is set
        """
        return min_additional

    def write(self, data: bytes) -> None:
        """Push ``data`` at the current position."""
        if data:
            self._store(data)
            self._position += len(data)

    def write_byte(self, byte: int) -> None:
        self.write(bytes((byte,)))

    def write_repeated(self, byte: int, count: int) -> None:
        """Push ``count`` copies of ``byte``."""
        if count > 0:
            self.write(bytes((byte,)) * count)

    @abstractmethod
    def _store(self, data: bytes) -> None:
        """Persist ``data``; called once per write."""


class CountingWriter(Writer):
    """Writer that keeps nothing and only counts, used for measuring passes."""

    def _store(self, data: bytes) -> None:
        pass


class GrowableWriter(Writer):
    """In-memory writer backed by a ``bytearray`` that doubles as needed."""

    def __init__(self, initial_capacity: int = 0) -> None:
        super().__init__()
        self._buffer = bytearray()
        self._capacity = initial_capacity

    @property
    def capacity(self) -> int:
        return self._capacity

    def acquire(self, min_additional: int, error_on_excess: bool = True) -> int:
        needed = len(self._buffer) + min_additional
        if needed > self._capacity:
            self._capacity = max(needed, self._capacity * 2)
        return self._capacity - len(self._buffer)

    def _store(self, data: bytes) -> None:
        self.acquire(len(data))
        self._buffer += data

    def getvalue(self) -> bytes:
        return bytes(self._buffer)

    def text(self) -> str:
        return self._buffer.decode("utf-8")


class BufferWriter(Writer):
    """Writer over a caller-owned, fixed-size buffer.

    Bytes past the end of the buffer are counted but not stored.

    Example:
        >>> buf = bytearray(4)
        >>> w = BufferWriter(buf)
        >>> w.write(b"abcdef")
        >>> bytes(buf), w.position, w.truncated
        (b'abcd', 6, True)
    """

    growable = False

    def __init__(self, buffer: Union[bytearray, memoryview]) -> None:
        super().__init__()
        view = memoryview(buffer)
        if view.readonly:
            raise TypeError("BufferWriter needs a writable buffer")
        self._view = view.cast("B") if view.format != "B" or view.ndim != 1 else view

    @property
    def capacity(self) -> int:
        return len(self._view)

    @property
    def truncated(self) -> bool:
        return self._position > self.capacity

    def acquire(self, min_additional: int, error_on_excess: bool = True) -> int:
        attempted = self._position + min_additional
        if attempted > self.capacity and error_on_excess:
            report(
                ErrorKind.BUFFER_EXHAUSTED,
                f"output needs {attempted} bytes but the buffer holds {self.capacity}",
                attempted=attempted,
                capacity=self.capacity,
            )
        return max(0, self.capacity - self._position)

    def _store(self, data: bytes) -> None:
        room = self.capacity - self._position
        if room <= 0:
            return
        chunk = data[:room]
        self._view[self._position:self._position + len(chunk)] = chunk

    def getvalue(self) -> bytes:
        """The stored prefix of the output."""
        return bytes(self._view[:min(self._position, self.capacity)])

    def release(self) -> None:
        """Drop the view so the caller may resize their buffer."""
        self._view.release()


class StreamWriter(Writer):
    """Writer forwarding to a binary file-like object."""

    def __init__(self, stream: BinaryIO) -> None:
        super().__init__()
        self._stream = stream

    def _store(self, data: bytes) -> None:
        self._stream.write(data)

    def flush(self) -> None:
        flush = getattr(self._stream, "flush", None)
        if flush is not None:
            flush()
