"""
Error taxonomy for the protocol layer.

- TransportError: the byte stream itself is broken (bad frame, closed stream)
- Document store errors: lookups and inserts that do not fit the session state

Errors answered to the peer are pygls' `JsonRpcException` family
(`JsonRpcInvalidParams`, `JsonRpcServerNotInitialized`, ...).
"""

from __future__ import annotations


class TransportError(Exception):
    """Base class for failures of the framed byte stream."""


class FrameError(TransportError):
    """A single frame could not be decoded; the stream itself is still usable."""


class StreamClosedError(TransportError):
    """The stream ended in the middle of a frame, or could not be written."""


class DocumentExistsError(KeyError):
    """A document with this uri is already open."""


class DocumentNotFoundError(KeyError):
    """No open document has this uri."""
