"""
Content-Length framing for the base protocol.

    Content-Length: <length>\\r\\n
    [Content-Type: <type>]\\r\\n
    \\r\\n
    <payload>

The decoder buffers partial input until a whole frame is present. A header
block without a usable length is dropped with a FrameError and the decoder
resynchronises on the next Content-Length header, so one bad frame never
stalls the stream.
"""

from __future__ import annotations

import re
import threading
from typing import BinaryIO

from .errors import FrameError, StreamClosedError

CONTENT_LENGTH = "content-length"
CONTENT_TYPE = "content-type"
HEADER_ENCODING = "ascii"
MAX_HEADER_SIZE = 64 * 1024
DEFAULT_MAX_MESSAGE_SIZE = 64 * 1024 * 1024

_HEADER_END = re.compile(rb"\r?\n\r?\n")
_RESYNC_TOKEN = b"content-length:"
_ACCEPTED_CHARSETS = {"utf-8", "utf8"}


def parse_header_block(block: bytes) -> dict[str, str]:
    """Parse header lines into a dict keyed by lower-cased header name.

    Raises:
        FrameError: if a line is malformed or Content-Length is missing,
            non-numeric or negative.
    """
    try:
        text = block.decode(HEADER_ENCODING)
    except UnicodeDecodeError as e:
        raise FrameError(f"Header contains non-ASCII bytes: {e}") from e

    headers: dict[str, str] = {}
    for line in re.split(r"\r?\n", text):
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            raise FrameError(f"Malformed header line: {line!r}")
        headers[name.strip().lower()] = value.strip()

    raw_length = headers.get(CONTENT_LENGTH)
    if raw_length is None:
        raise FrameError("Missing Content-Length header")
    if not (raw_length.isascii() and raw_length.isdigit()):
        raise FrameError(f"Invalid Content-Length value: {raw_length!r}")

    content_type = headers.get(CONTENT_TYPE)
    if content_type:
        for param in content_type.split(";")[1:]:
            key, _, val = param.partition("=")
            if key.strip().lower() == "charset" and val.strip().strip('"').lower() not in _ACCEPTED_CHARSETS:
                raise FrameError(f"Unsupported charset in Content-Type: {content_type!r}")

    return headers


class FrameDecoder:
    """Incremental frame decoder. Feed bytes in, pull complete payloads out."""

    def __init__(self, max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE):
        self.max_message_size = max_message_size
        self._buffer = bytearray()
        self._body_length: int | None = None
        self._skip = 0
        self._resync = False

    def feed(self, data: bytes) -> None:
        self._buffer.extend(data)

    @property
    def has_partial(self) -> bool:
        """True when a frame has started but is not complete yet."""
        if self._body_length is not None or self._skip:
            return True
        return not self._resync and bool(self._buffer.strip())

    def next_frame(self) -> bytes | None:
        """Return the next complete payload, or None if more input is needed.

        Raises:
            FrameError: the header block just consumed was unusable. The
                decoder has already discarded it; call again to continue.
        """
        if self._skip:
            dropped = min(self._skip, len(self._buffer))
            del self._buffer[:dropped]
            self._skip -= dropped
            if self._skip:
                return None

        if self._resync and not self._resynchronise():
            return None

        if self._body_length is None:
            match = _HEADER_END.search(self._buffer)
            if match is None:
                if len(self._buffer) > MAX_HEADER_SIZE:
                    self._buffer.clear()
                    self._resync = True
                    raise FrameError(f"Header block exceeds {MAX_HEADER_SIZE} bytes")
                return None
            block = bytes(self._buffer[: match.start()])
            del self._buffer[: match.end()]
            try:
                headers = parse_header_block(block)
            except FrameError:
                self._resync = True
                raise
            length = int(headers[CONTENT_LENGTH])
            if length > self.max_message_size:
                self._skip = length
                raise FrameError(f"Message size {length} exceeds maximum {self.max_message_size}")
            self._body_length = length

        if len(self._buffer) < self._body_length:
            return None
        payload = bytes(self._buffer[: self._body_length])
        del self._buffer[: self._body_length]
        self._body_length = None
        return payload

    def _resynchronise(self) -> bool:
        idx = bytes(self._buffer).lower().find(_RESYNC_TOKEN)
        if idx == -1:
            keep = len(_RESYNC_TOKEN) - 1
            if len(self._buffer) > keep:
                del self._buffer[: len(self._buffer) - keep]
            return False
        del self._buffer[:idx]
        self._resync = False
        return True


class FrameReader:
    """Reads frames from a binary stream, tolerating arbitrarily split reads."""

    def __init__(
        self,
        stream: BinaryIO,
        *,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        chunk_size: int = 64 * 1024,
    ):
        self.stream = stream
        self.chunk_size = chunk_size
        self._decoder = FrameDecoder(max_message_size)
        self._read = getattr(stream, "read1", stream.read)

    def read_frame(self) -> bytes | None:
        """Block until a frame is available.

        Returns:
            The payload bytes, or None on a clean end of stream.

        Raises:
            FrameError: a malformed frame was skipped; reading may continue.
            StreamClosedError: the stream ended inside a frame or failed.
        """
        while True:
            frame = self._decoder.next_frame()
            if frame is not None:
                return frame
            try:
                chunk = self._read(self.chunk_size)
            except (OSError, ValueError) as e:
                raise StreamClosedError(f"Read failed: {e}") from e
            if not chunk:
                if self._decoder.has_partial:
                    raise StreamClosedError("Stream closed in the middle of a frame")
                return None
            self._decoder.feed(chunk)


class FrameWriter:
    """Writes framed payloads; safe to share between threads."""

    def __init__(self, stream: BinaryIO):
        self.stream = stream
        self._lock = threading.Lock()

    def write(self, payload: bytes) -> None:
        data = encode_frame(payload)
        with self._lock:
            try:
                self.stream.write(data)
                self.stream.flush()
            except (OSError, ValueError) as e:
                raise StreamClosedError(f"Write failed: {e}") from e


def encode_frame(payload: bytes) -> bytes:
    """Frame a payload in memory."""
    return f"Content-Length: {len(payload)}\r\n\r\n".encode(HEADER_ENCODING) + payload
