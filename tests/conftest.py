"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import json
from concurrent.futures import Future
from typing import Any, Callable

import pytest

from hanumail.lsp.framing import FrameDecoder, encode_frame
from hanumail.lsp.server import EmailLanguageServer, create_server

SIMPLE_MESSAGE = (
    "From: Alice Example <alice@example.com>\r\n"
    "To: bob@example.org, \"Carol C.\" <carol@example.net>\r\n"
    "Date: Tue, 1 Jul 2025 10:00:00 +0000\r\n"
    "Subject: Lunch\r\n"
    "Message-ID: <lunch-1@example.com>\r\n"
    "\r\n"
    "Are we still on for lunch?\r\n"
)


class ManualExecutor:
    """Executor that queues work until the test runs it."""

    def __init__(self) -> None:
        self.jobs: list[tuple[Future, Callable[[], Any]]] = []

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        self.jobs.append((future, lambda: fn(*args)))
        return future

    def run_all(self) -> int:
        count = 0
        while self.jobs:
            future, job = self.jobs.pop(0)
            count += 1
            if not future.set_running_or_notify_cancel():
                continue
            try:
                future.set_result(job())
            except BaseException as e:
                future.set_exception(e)
        return count

    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        self.jobs.clear()


class RecordingWriter:
    """Stands in for FrameWriter; keeps decoded outgoing messages."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    def write(self, payload: bytes) -> None:
        self.messages.append(json.loads(payload))

    def responses(self, request_id: Any = None) -> list[dict[str, Any]]:
        return [m for m in self.messages if "method" not in m and (request_id is None or m.get("id") == request_id)]

    def notifications(self, method: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("method") == method and "id" not in m]

    def requests(self, method: str) -> list[dict[str, Any]]:
        return [m for m in self.messages if m.get("method") == method and "id" in m]


def message(request_id: Any = None, method: str | None = None, params: Any = None, **extra: Any) -> bytes:
    """A JSON-RPC payload; `request_id` None makes a notification."""
    data: dict[str, Any] = {"jsonrpc": "2.0"}
    if request_id is not None:
        data["id"] = request_id
    if method is not None:
        data["method"] = method
    if params is not None:
        data["params"] = params
    data.update(extra)
    return json.dumps(data).encode("utf-8")


def request(request_id: Any, method: str, params: Any = None) -> bytes:
    return message(request_id, method, params)


def notification(method: str, params: Any = None) -> bytes:
    return message(None, method, params)


def frame(payload: bytes) -> bytes:
    return encode_frame(payload)


def read_frames(data: bytes) -> list[dict[str, Any]]:
    decoder = FrameDecoder()
    decoder.feed(data)
    out = []
    while (payload := decoder.next_frame()) is not None:
        out.append(json.loads(payload))
    return out


class ServerHarness:
    """Drives an EmailLanguageServer on a private event loop, without streams."""

    def __init__(self, server: EmailLanguageServer, executor: ManualExecutor, writer: RecordingWriter):
        self.server = server
        self.executor = executor
        self.writer = writer
        self.loop = asyncio.new_event_loop()
        self._ids = 100

    @property
    def protocol(self):
        return self.server.protocol

    def close(self) -> None:
        for task in asyncio.all_tasks(self.loop):
            task.cancel()
        self.spin()
        self.loop.close()

    def spin(self, rounds: int = 10) -> None:
        for _ in range(rounds):
            self.loop.run_until_complete(asyncio.sleep(0))

    def send(self, payload: bytes) -> None:
        async def handle() -> None:
            self.protocol.handle_frame(payload)

        self.loop.run_until_complete(handle())
        self.spin()

    def request(self, method: str, params: Any = None, request_id: Any = None) -> Any:
        if request_id is None:
            self._ids += 1
            request_id = self._ids
        self.send(request(request_id, method, params))
        return request_id

    def notify(self, method: str, params: Any = None) -> None:
        self.send(notification(method, params))

    def settle(self) -> None:
        """Run queued jobs and loop callbacks until nothing is left."""
        for _ in range(50):
            self.spin()
            ran = self.executor.run_all()
            self.spin()
            if not ran and not self.executor.jobs:
                return

    def result(self, request_id: Any) -> Any:
        responses = self.writer.responses(request_id)
        assert len(responses) == 1, responses
        assert "error" not in responses[0], responses[0]
        return responses[0].get("result")

    def error(self, request_id: Any) -> dict[str, Any]:
        responses = self.writer.responses(request_id)
        assert len(responses) == 1, responses
        return responses[0]["error"]

    def initialize(self, **params: Any) -> None:
        self.request("initialize", {"capabilities": {}, **params}, request_id="init")
        self.notify("initialized", {})

    def open(self, uri: str, text: str, version: int = 1) -> None:
        self.notify(
            "textDocument/didOpen",
            {"textDocument": {"uri": uri, "languageId": "email", "version": version, "text": text}},
        )

    def published(self, uri: str) -> list[dict[str, Any]]:
        return [m["params"] for m in self.writer.notifications("textDocument/publishDiagnostics") if m["params"]["uri"] == uri]


@pytest.fixture
def executor() -> ManualExecutor:
    return ManualExecutor()


@pytest.fixture
def writer() -> RecordingWriter:
    return RecordingWriter()


@pytest.fixture
def harness(executor: ManualExecutor, writer: RecordingWriter):
    server = create_server(executor=executor)
    server.protocol.set_writer(writer, include_headers=False)
    h = ServerHarness(server, executor, writer)
    yield h
    h.close()


@pytest.fixture
def ready(harness: ServerHarness) -> ServerHarness:
    """A server past the initialize handshake."""
    harness.initialize()
    harness.writer.messages.clear()
    return harness
