"""Reader/Writer ports consumed by the interpreter.

The engine only ever calls ``reader.read()`` and ``writer.write(cell)``; any
object with those methods can stand in for standard input/output (in-memory
buffers for tests, sockets, pipes).
"""

from __future__ import annotations

import io
from typing import BinaryIO, Callable, Dict, List, Optional, Protocol, TextIO, Union


class Reader(Protocol):
    def read(self) -> int:
        ...


class Writer(Protocol):
    def write(self, cell: int) -> None:
        ...


def _eof(eof_value: Optional[int]) -> int:
    if eof_value is None:
        raise EOFError("end of input")
    return eof_value


class StreamReader:
    """Reads one byte per call from a binary stream.

    At end of stream ``eof_value`` is returned (0 by default); pass
    ``eof_value=None`` to raise ``EOFError`` instead.
    """

    def __init__(self, source: BinaryIO, *, eof_value: Optional[int] = 0) -> None:
        self.source = source
        self.eof_value = eof_value

    def read(self) -> int:
        data = self.source.read(1)
        if not data:
            return _eof(self.eof_value)
        return data[0]


class BufferReader:
    def __init__(self, data: Union[bytes, str] = b"", *, eof_value: Optional[int] = 0) -> None:
        if isinstance(data, str):
            data = data.encode("latin-1")
        self.data = data
        self.index = 0
        self.eof_value = eof_value

    def read(self) -> int:
        if self.index >= len(self.data):
            return _eof(self.eof_value)
        value = self.data[self.index]
        self.index += 1
        return value


class AsciiWriter:
    """Renders each cell as the character with that code point."""

    def __init__(self, sink: TextIO, *, flush: bool = False) -> None:
        self.sink = sink
        self.flush = flush

    def render(self, cell: int) -> str:
        return chr(cell)

    def write(self, cell: int) -> None:
        self.sink.write(self.render(cell))
        if self.flush:
            self.sink.flush()


class IntWriter(AsciiWriter):
    """Renders each cell as its decimal digits, with no separator."""

    def render(self, cell: int) -> str:
        return str(cell)


CODECS: Dict[str, Callable[..., AsciiWriter]] = {
    "ascii": AsciiWriter,
    "int": IntWriter,
}


def normalize_codec(name: str) -> str:
    codec = name.strip().lower()
    if codec not in CODECS:
        known = ", ".join(sorted(CODECS))
        raise ValueError(f"Unknown output codec '{name}' (expected one of: {known})")
    return codec


def make_writer(codec: str, sink: TextIO, *, flush: bool = False) -> AsciiWriter:
    return CODECS[normalize_codec(codec)](sink, flush=flush)


class BufferWriter:
    """Collects rendered output in memory; ``cells`` keeps the raw values."""

    def __init__(self, codec: str = "ascii") -> None:
        self._buffer = io.StringIO()
        self._writer = make_writer(codec, self._buffer)
        self.cells: List[int] = []

    def write(self, cell: int) -> None:
        self.cells.append(cell)
        self._writer.write(cell)

    def getvalue(self) -> str:
        return self._buffer.getvalue()
