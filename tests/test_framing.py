"""Tests for Content-Length framing."""

import io

import pytest

from hanumail.lsp.errors import FrameError, StreamClosedError
from hanumail.lsp.framing import FrameDecoder, FrameReader, FrameWriter, encode_frame, parse_header_block


def test_encode_frame_uses_byte_length():
    payload = '{"text":"héllo"}'.encode("utf-8")
    data = encode_frame(payload)
    assert data.startswith(f"Content-Length: {len(payload)}\r\n\r\n".encode("ascii"))
    assert data.endswith(payload)
    assert len(payload) == len('{"text":"héllo"}') + 1


def test_decoder_buffers_split_input():
    data = encode_frame(b'{"a":1}') + encode_frame(b'{"b":2}')
    decoder = FrameDecoder()
    frames = []
    for i in range(len(data)):
        decoder.feed(data[i : i + 1])
        while (frame := decoder.next_frame()) is not None:
            frames.append(frame)
    assert frames == [b'{"a":1}', b'{"b":2}']
    assert not decoder.has_partial


def test_header_names_are_case_insensitive_and_content_type_is_optional():
    decoder = FrameDecoder()
    decoder.feed(b"content-length: 2\r\nContent-Type: application/vscode-jsonrpc; charset=utf-8\r\n\r\n{}")
    assert decoder.next_frame() == b"{}"


def test_missing_length_raises_and_decoder_recovers():
    decoder = FrameDecoder()
    decoder.feed(b"Content-Type: text/plain\r\n\r\ngarbage" + encode_frame(b"{}"))
    with pytest.raises(FrameError):
        decoder.next_frame()
    assert decoder.next_frame() == b"{}"


def test_non_numeric_length_raises_and_decoder_recovers():
    decoder = FrameDecoder()
    decoder.feed(b"Content-Length: abc\r\n\r\n" + encode_frame(b"[1]"))
    with pytest.raises(FrameError):
        decoder.next_frame()
    assert decoder.next_frame() == b"[1]"


def test_unicode_digits_are_not_a_length():
    with pytest.raises(FrameError):
        parse_header_block("Content-Length: ٣".encode("utf-8"))


def test_unsupported_charset_rejected():
    with pytest.raises(FrameError):
        parse_header_block(b"Content-Length: 2\r\nContent-Type: application/json; charset=latin-1")


def test_oversized_frame_is_skipped():
    decoder = FrameDecoder(max_message_size=4)
    decoder.feed(encode_frame(b"0123456789") + encode_frame(b"{}"))
    with pytest.raises(FrameError):
        decoder.next_frame()
    assert decoder.next_frame() == b"{}"


def test_reader_returns_none_on_clean_eof():
    reader = FrameReader(io.BytesIO(encode_frame(b"{}")))
    assert reader.read_frame() == b"{}"
    assert reader.read_frame() is None


def test_reader_raises_on_eof_inside_frame():
    reader = FrameReader(io.BytesIO(b"Content-Length: 10\r\n\r\n{}"))
    with pytest.raises(StreamClosedError):
        reader.read_frame()


def test_reader_reports_bad_frame_then_continues():
    stream = io.BytesIO(b"Content-Length: x\r\n\r\n" + encode_frame(b"{}"))
    reader = FrameReader(stream, chunk_size=3)
    with pytest.raises(FrameError):
        reader.read_frame()
    assert reader.read_frame() == b"{}"


def test_writer_frames_and_flushes():
    out = io.BytesIO()
    FrameWriter(out).write(b'{"x":true}')
    assert out.getvalue() == b'Content-Length: 10\r\n\r\n{"x":true}'


def test_writer_on_closed_stream():
    out = io.BytesIO()
    out.close()
    with pytest.raises(StreamClosedError):
        FrameWriter(out).write(b"{}")
