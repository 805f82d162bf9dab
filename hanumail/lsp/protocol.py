"""
The JSON-RPC session, built on pygls' `LanguageServerProtocol`.

pygls structures incoming messages with the lsprotocol converter, routes them
to the registered features and serializes the answers. `EmailProtocol` adds
what an editor session here needs on top of that:

- every frame is checked for a well-formed JSON-RPC 2.0 shape before it is
  structured; anything else is answered with ParseError
- the lifecycle: ServerNotInitialized before `initialize`, InvalidRequest for
  a second `initialize` and for requests after `shutdown`
- a table of pending requests, each with a `CancellationToken` that pool
  jobs poll; a request reusing a pending id gets InvalidParams
- `exit` records an exit code instead of calling `sys.exit`, so the serve
  loop can return it (0 after shutdown, 1 without, 2 when the transport
  closed first)
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from lsprotocol import types
from pygls.exceptions import (
    JsonRpcException,
    JsonRpcInvalidParams,
    JsonRpcInvalidRequest,
    JsonRpcMethodNotFound,
    JsonRpcParseError,
    JsonRpcRequestCancelled,
    JsonRpcServerNotInitialized,
)
from pygls.protocol import LanguageServerProtocol, lsp_method

from .cancellation import CancellationToken

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"

EXIT_OK = 0
EXIT_WITHOUT_SHUTDOWN = 1
EXIT_TRANSPORT_CLOSED = 2

RequestId = Union[int, str]


class MessageKind(str, Enum):
    REQUEST = "request"
    NOTIFICATION = "notification"
    RESPONSE = "response"


class ProtocolState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    SHUTTING_DOWN = "shutting_down"
    EXITED = "exited"


class MalformedMessage(JsonRpcParseError):
    """A payload that is not a JSON-RPC 2.0 message.

    `request_id` is the id when one could still be read, so the error
    response can be correlated.
    """

    def __init__(self, message: str, request_id: RequestId | None = None):
        super().__init__(message)
        self.request_id = request_id


@dataclass
class PendingRequest:
    id: RequestId
    method: str
    token: CancellationToken = field(default_factory=CancellationToken)


def _is_valid_id(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, (int, str))


def classify_message(data: Any) -> tuple[MessageKind, RequestId | None, str | None]:
    """Tell a decoded payload's shape: (kind, id, method).

    Raises:
        MalformedMessage: the payload is not a request, notification or response.
    """
    if not isinstance(data, dict):
        raise MalformedMessage(f"Message must be a JSON object, got {type(data).__name__}")

    has_id = "id" in data
    raw_id = data.get("id")
    request_id = raw_id if _is_valid_id(raw_id) else None

    if data.get("jsonrpc") != JSONRPC_VERSION:
        raise MalformedMessage("Missing or unsupported 'jsonrpc' version", request_id)

    if has_id and raw_id is not None and request_id is None:
        raise MalformedMessage(f"Invalid id type: {type(raw_id).__name__}")

    params = data.get("params")
    if params is not None and not isinstance(params, (dict, list)):
        raise MalformedMessage("'params' must be an object or an array", request_id)

    method = data.get("method")
    if method is not None:
        if not isinstance(method, str) or not method:
            raise MalformedMessage("'method' must be a non-empty string", request_id)
        if "result" in data or "error" in data:
            raise MalformedMessage("A message cannot carry both a method and a result", request_id)
        if has_id:
            if request_id is None:
                raise MalformedMessage("A request id cannot be null")
            return MessageKind.REQUEST, request_id, method
        return MessageKind.NOTIFICATION, None, method

    if not has_id:
        raise MalformedMessage("Message has neither 'method' nor 'id'")

    has_result = "result" in data
    has_error = "error" in data
    if has_result == has_error:
        raise MalformedMessage("A response must carry exactly one of 'result' or 'error'", request_id)
    if has_error:
        error = data["error"]
        if not isinstance(error, dict) or not isinstance(error.get("code"), int):
            raise MalformedMessage("Response 'error' must be an object with an integer code", request_id)
    return MessageKind.RESPONSE, request_id, None


class EmailProtocol(LanguageServerProtocol):
    """Lifecycle, cancellation and exit-code handling over pygls' protocol."""

    def __init__(self, server, converter):
        # set before super().__init__, which inspects every attribute for builtins
        self.state = ProtocolState.UNINITIALIZED
        self.exit_code: int | None = None
        self._pending: dict[RequestId, PendingRequest] = {}
        self._discarded: set[RequestId] = set()
        super().__init__(server, converter)

    @property
    def exited(self) -> bool:
        return self.state is ProtocolState.EXITED

    @property
    def pending_ids(self) -> list[RequestId]:
        return list(self._pending)

    def cancellation_token(self) -> CancellationToken:
        """Token of the request being handled in the current context."""
        pending = self._pending.get(self.msg_id) if self.msg_id is not None else None
        return pending.token if pending is not None else CancellationToken()

    # Incoming frames

    def handle_frame(self, payload: bytes) -> None:
        """Decode, check and dispatch one frame payload."""
        if self.exited:
            logger.debug("Ignoring frame after exit")
            return
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._reject(MalformedMessage(f"Invalid JSON payload: {e}"))
            return
        try:
            kind, request_id, method = classify_message(data)
        except MalformedMessage as e:
            self._reject(e)
            return

        if not self._admit(kind, request_id, method):
            return

        try:
            message = self.structure_message(data)
        except JsonRpcException as e:
            if kind is MessageKind.REQUEST:
                logger.warning(f"Invalid params for {method} ({request_id!r})")
                self._send_response(request_id, error=e.to_response_error())
            else:
                logger.warning(f"Dropping malformed {kind.value} {method or request_id!r}: {e.message}")
            return
        self.handle_message(message)

    def _reject(self, error: MalformedMessage) -> None:
        logger.warning(f"Rejected message: {error.message}")
        # sent as a plain dict: the id must be present even when it is null
        self._send_data(
            {
                "jsonrpc": JSONRPC_VERSION,
                "id": error.request_id,
                "error": {"code": error.code, "message": error.message},
            }
        )

    def _admit(self, kind: MessageKind, request_id: RequestId | None, method: str | None) -> bool:
        """Apply the lifecycle to a classified message; False when it was answered or dropped."""
        if kind is MessageKind.RESPONSE:
            return True

        if kind is MessageKind.REQUEST:
            assert request_id is not None and method is not None
            error = self._lifecycle_error(method)
            if error is not None:
                logger.info(f"Rejected {method} in state {self.state.value}: {error.message}")
                self._send_response(request_id, error=error.to_response_error())
                return False
            if method == types.SHUTDOWN and self.state is ProtocolState.SHUTTING_DOWN:
                self._send_response(request_id, None)
                return False
            if method not in self.fm.features and method not in self.fm.builtin_features:
                logger.warning(f"Unknown method {method} ({request_id!r})")
                self._send_response(request_id, error=JsonRpcMethodNotFound.of(method).to_response_error())
                return False
            return True

        assert method is not None
        if method in (types.EXIT, types.CANCEL_REQUEST):
            return True
        if self.state is ProtocolState.UNINITIALIZED:
            logger.debug(f"Dropping {method} before initialize")
            return False
        if self.state is ProtocolState.SHUTTING_DOWN:
            logger.debug(f"Ignoring {method} while shutting down")
            return False
        if method not in self.fm.features and method not in self.fm.builtin_features:
            if not method.startswith("$/"):
                logger.debug(f"No handler for notification {method}")
            return False
        return True

    def _lifecycle_error(self, method: str) -> JsonRpcException | None:
        if method == types.INITIALIZE:
            if self.state is not ProtocolState.UNINITIALIZED:
                return JsonRpcInvalidRequest("Server is already initialized")
            return None
        if self.state is ProtocolState.UNINITIALIZED:
            return JsonRpcServerNotInitialized("Server is not initialized")
        if self.state is ProtocolState.SHUTTING_DOWN and method != types.SHUTDOWN:
            return JsonRpcInvalidRequest(f"Server is shutting down; {method} is not accepted")
        return None

    # Requests

    def _handle_request(self, msg_id, method_name, params):
        if msg_id in self._pending:
            error = JsonRpcInvalidParams(f"Request id {msg_id!r} is already pending")
            self._send_response(msg_id, error=error.to_response_error())
            return
        self._pending[msg_id] = PendingRequest(id=msg_id, method=method_name)
        super()._handle_request(msg_id, method_name, params)
        # answered without a future (a handler that raised before returning)
        if msg_id not in self._request_futures:
            self._pending.pop(msg_id, None)

    def _send_handler_result(self, future, *, msg_id):
        self._pending.pop(msg_id, None)
        if msg_id in self._discarded:
            self._discarded.discard(msg_id)
            self._request_futures.pop(msg_id, None)
            logger.debug(f"Discarding late outcome of {msg_id!r}")
            return
        if self.exited:
            self._request_futures.pop(msg_id, None)
            return
        super()._send_handler_result(future, msg_id=msg_id)

    def _handle_cancel_notification(self, msg_id):
        pending = self._pending.pop(msg_id, None)
        if pending is None:
            logger.debug(f"Cancel for unknown or finished request {msg_id!r}")
            return
        pending.token.cancel()
        logger.debug(f"Cancelled {pending.method} ({msg_id!r})")
        future = self._request_futures.pop(msg_id, None)
        if future is not None and future.cancel():
            # the done callback answers with RequestCancelled
            return
        self._discarded.add(msg_id)
        error = JsonRpcRequestCancelled(f'Request with id "{msg_id}" is canceled')
        self._send_response(msg_id, error=error.to_response_error())

    # Lifecycle builtins

    @lsp_method(types.INITIALIZE)
    def lsp_initialize(self, params: types.InitializeParams):
        result = yield from super().lsp_initialize(params)
        # offsets are always counted in UTF-16 code units
        result.capabilities.position_encoding = types.PositionEncodingKind.Utf16
        self.state = ProtocolState.INITIALIZED
        return result

    @lsp_method(types.SHUTDOWN)
    def lsp_shutdown(self, *args):
        self.state = ProtocolState.SHUTTING_DOWN
        current = self.msg_id
        for pending in self._pending.values():
            if pending.id != current:
                pending.token.cancel()
        result = yield from super().lsp_shutdown(*args)
        return result

    @lsp_method(types.EXIT)
    def lsp_exit(self, *args):
        if (user_handler := self.fm.features.get(types.EXIT)) is not None:
            yield user_handler, args, None

        if self.state is ProtocolState.SHUTTING_DOWN:
            self.exit_code = EXIT_OK
        else:
            logger.warning("exit received without a prior shutdown")
            self.exit_code = EXIT_WITHOUT_SHUTDOWN
        self._finish()

    def transport_closed(self) -> None:
        """The input ended (or the output failed) before `exit`."""
        if self.exited:
            return
        logger.warning("Transport closed without exit")
        self.exit_code = EXIT_TRANSPORT_CLOSED
        self._finish()

    def _finish(self) -> None:
        self.state = ProtocolState.EXITED
        for pending in self._pending.values():
            pending.token.cancel()
            future = self._request_futures.get(pending.id)
            if future is not None and not future.done():
                future.cancel()
        self._pending.clear()

    # Document sync: the server's DocumentStore owns the text, not pygls' Workspace

    @lsp_method(types.TEXT_DOCUMENT_DID_OPEN)
    def lsp_text_document__did_open(self, params: types.DidOpenTextDocumentParams):
        if (user_handler := self.fm.features.get(types.TEXT_DOCUMENT_DID_OPEN)) is not None:
            yield user_handler, (params,), None

    @lsp_method(types.TEXT_DOCUMENT_DID_CHANGE)
    def lsp_text_document__did_change(self, params: types.DidChangeTextDocumentParams):
        if (user_handler := self.fm.features.get(types.TEXT_DOCUMENT_DID_CHANGE)) is not None:
            yield user_handler, (params,), None

    @lsp_method(types.TEXT_DOCUMENT_DID_CLOSE)
    def lsp_text_document__did_close(self, params: types.DidCloseTextDocumentParams):
        if (user_handler := self.fm.features.get(types.TEXT_DOCUMENT_DID_CLOSE)) is not None:
            yield user_handler, (params,), None
