import io

import pytest

from ports import AsciiWriter, BufferReader, BufferWriter, IntWriter, StreamReader, make_writer, normalize_codec


def test_stream_reader_reads_bytes_then_zero_at_eof():
    reader = StreamReader(io.BytesIO(b"\x01\xff"))
    assert [reader.read(), reader.read(), reader.read()] == [1, 255, 0]


def test_stream_reader_eof_policy():
    reader = StreamReader(io.BytesIO(b""), eof_value=None)
    with pytest.raises(EOFError):
        reader.read()
    assert StreamReader(io.BytesIO(b""), eof_value=7).read() == 7


def test_buffer_reader_accepts_text():
    reader = BufferReader("hi")
    assert [reader.read(), reader.read(), reader.read()] == [ord("h"), ord("i"), 0]


def test_ascii_and_int_writers():
    sink = io.StringIO()
    AsciiWriter(sink).write(72)
    IntWriter(sink).write(72)
    IntWriter(sink).write(0)
    assert sink.getvalue() == "H720"


def test_ascii_writer_renders_high_cells_as_code_points():
    sink = io.StringIO()
    AsciiWriter(sink).write(233)
    assert sink.getvalue() == "é"


class _CountingSink(io.StringIO):
    flushes = 0

    def flush(self):
        self.flushes += 1
        super().flush()


def test_writer_flushes_when_asked():
    sink = _CountingSink()
    writer = AsciiWriter(sink, flush=True)
    writer.write(65)
    writer.write(66)
    assert sink.flushes == 2
    assert sink.getvalue() == "AB"


@pytest.mark.parametrize("name, cls", [("ascii", AsciiWriter), ("ASCII", AsciiWriter), ("Int", IntWriter), (" int ", IntWriter)])
def test_codec_selection_is_case_insensitive(name, cls):
    assert type(make_writer(name, io.StringIO())) is cls


def test_unknown_codec():
    with pytest.raises(ValueError, match="Unknown output codec 'hex'"):
        normalize_codec("hex")


def test_buffer_writer_keeps_cells_and_rendering():
    writer = BufferWriter("int")
    for cell in (1, 22, 255):
        writer.write(cell)
    assert writer.cells == [1, 22, 255]
    assert writer.getvalue() == "122255"
