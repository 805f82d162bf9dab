"""
LSP server for email messages.

Provides:
- Push diagnostics on open/change, pull diagnostics on request
- Completion of header names and enumerated header values
- Hover on addresses and header names
- Definition/references between messages via Message-ID
- Quote-aware reflow formatting

Threads: a reader thread feeds frames to the asyncio loop, and the worker
pool runs analysis. Only the loop touches the protocol state and the
document store; pool jobs work on snapshots and hand their results back
by being awaited on the loop.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import sys
import threading
from concurrent.futures import Future
from enum import Enum
from typing import Any, Callable, Mapping, TypeVar

from lsprotocol import types as lsp
from pygls.exceptions import JsonRpcException, JsonRpcInternalError, JsonRpcInvalidParams, JsonRpcRequestCancelled
from pygls.lsp.server import LanguageServer

from .. import __version__
from ..config import ConfigError, ServerConfig
from ..documents import DocumentSnapshot, DocumentStore
from ..email.rules import DiagnosticEngine
from .cancellation import CancellationToken
from .completion import complete
from .diagnostics import analyze_document, to_lsp_diagnostics
from .errors import DocumentExistsError, DocumentNotFoundError, FrameError, StreamClosedError
from .formatting import format_document, format_range
from .framing import FrameReader, FrameWriter
from .hover import get_hover_info
from .protocol import EmailProtocol
from .references import build_message_id_index, find_definition, find_references

logger = logging.getLogger(__name__)

SERVER_NAME = "hanumail"
SETTINGS_SECTION = "hanumail"

T = TypeVar("T")


class InboxKind(Enum):
    FRAME = "frame"
    FRAME_ERROR = "frame_error"
    CLOSED = "closed"


class EmailLanguageServer(LanguageServer):
    """Language server for email message documents."""

    protocol: EmailProtocol

    def __init__(self, config: ServerConfig | None = None, *, executor: Any = None):
        self.config = config or ServerConfig()
        super().__init__(
            name=SERVER_NAME,
            version=__version__,
            protocol_cls=EmailProtocol,
            max_workers=self.config.workers,
        )
        if executor is not None:
            self._thread_pool = executor
        self.documents = DocumentStore()
        self.engine = DiagnosticEngine(self.config.diagnostics)
        self._analysis_tokens: dict[str, CancellationToken] = {}

    @property
    def exit_code(self) -> int | None:
        return self.protocol.exit_code

    def report_server_error(self, error: Exception, source) -> None:
        if isinstance(error, StreamClosedError):
            logger.warning(f"Output stream closed: {error}")
            self.protocol.transport_closed()
            return
        if source is JsonRpcInternalError:
            # failures of the send path itself; reporting them would send again
            logger.error(f"Failed to send message: {error}")
            return
        super().report_server_error(error, source)

    # Outgoing notifications

    def publish_diagnostics(self, uri: str, diagnostics: list[lsp.Diagnostic], version: int | None = None) -> None:
        self.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics, version=version)
        )

    def log_message(self, message: str, message_type: lsp.MessageType = lsp.MessageType.Info) -> None:
        self.window_log_message(lsp.LogMessageParams(type=message_type, message=message))

    # Documents

    def snapshot(self, uri: str) -> DocumentSnapshot:
        """Snapshot for a request; unknown documents are an InvalidParams error."""
        try:
            return self.documents.snapshot(uri)
        except DocumentNotFoundError:
            raise JsonRpcInvalidParams(f"Document not open: {uri}") from None

    def analyzed_snapshot(self, uri: str) -> DocumentSnapshot:
        """Snapshot whose analysis is populated, parsing on the loop if needed."""
        snapshot = self.snapshot(uri)
        if snapshot.analyzed is None:
            self.documents.cache_analysis(uri, snapshot.version, snapshot.analyze())
            snapshot = self.documents.snapshot(uri)
        return snapshot

    async def run_job(self, job: Callable[[CancellationToken], T]) -> T:
        """Run `job` on the worker pool with the current request's token."""
        token = self.protocol.cancellation_token()

        def work() -> T:
            token.check()
            return job(token)

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.thread_pool, work)

    def schedule_analysis(self, uri: str) -> None:
        """Queue push diagnostics for the current version of `uri`."""
        self.cancel_analysis(uri)
        snapshot = self.documents.snapshot(uri)
        token = CancellationToken()
        self._analysis_tokens[uri] = token
        asyncio.get_running_loop().create_task(self._analyze_and_publish(snapshot, token))

    async def _analyze_and_publish(self, snapshot: DocumentSnapshot, token: CancellationToken) -> None:
        uri = snapshot.uri
        engine = self.engine

        def work():
            ast, diagnostics = analyze_document(snapshot, engine, token)
            return ast, to_lsp_diagnostics(diagnostics, snapshot.lines)

        loop = asyncio.get_running_loop()
        try:
            ast, diagnostics = await loop.run_in_executor(self.thread_pool, work)
        except JsonRpcRequestCancelled:
            logger.debug(f"Analysis of {uri} v{snapshot.version} cancelled")
            return
        except Exception:
            logger.exception(f"Analysis of {uri} v{snapshot.version} failed")
            return
        finally:
            if self._analysis_tokens.get(uri) is token:
                del self._analysis_tokens[uri]

        if token.cancelled or self.protocol.exited or self.documents.version(uri) != snapshot.version:
            logger.debug(f"Discarding stale diagnostics for {uri} v{snapshot.version}")
            return
        self.documents.cache_analysis(uri, snapshot.version, ast)
        self.publish_diagnostics(uri, diagnostics, snapshot.client_version)

    def cancel_analysis(self, uri: str) -> None:
        token = self._analysis_tokens.pop(uri, None)
        if token is not None:
            token.cancel()

    def cancel_all_analysis(self) -> None:
        for uri in list(self._analysis_tokens):
            self.cancel_analysis(uri)

    # Settings

    def apply_settings(self, settings: Mapping[str, Any] | None) -> bool:
        """Apply editor settings on top of the current config and re-lint open documents."""
        if not settings:
            return False
        try:
            config = self.config.with_editor_settings(settings)
        except ConfigError as e:
            logger.warning(f"Ignoring invalid settings: {e}")
            self.log_message(f"hanumail: ignoring invalid settings: {e}", lsp.MessageType.Warning)
            return False
        if config == self.config:
            return False
        self.config = config
        self.engine = DiagnosticEngine(config.diagnostics)
        logger.info("Settings updated")
        for uri in self.documents.uris():
            self.schedule_analysis(uri)
        return True

    def request_settings(self) -> None:
        """Ask the client for the `hanumail` settings section, if it supports it."""
        workspace = self.client_capabilities.workspace
        if workspace is None or not workspace.configuration:
            return
        future = self.workspace_configuration(
            lsp.ConfigurationParams(items=[lsp.ConfigurationItem(section=SETTINGS_SECTION)])
        )
        future.add_done_callback(self._on_settings)

    def _on_settings(self, future: Future) -> None:
        if future.cancelled():
            return
        try:
            result = future.result()
        except JsonRpcException as e:
            logger.warning(f"workspace/configuration failed: {e.message}")
            return
        if result and isinstance(result[0], Mapping):
            self.apply_settings(result[0])

    # Loop

    def serve(self, reader: FrameReader, writer: FrameWriter) -> int:
        """Run until exit or end of input; returns the process exit code."""
        self.protocol.set_writer(writer, include_headers=False)
        try:
            asyncio.run(self._serve(reader))
        finally:
            self.cancel_all_analysis()
            self.protocol.transport_closed()
            self.shutdown()
        assert self.exit_code is not None
        return self.exit_code

    async def _serve(self, reader: FrameReader) -> None:
        loop = asyncio.get_running_loop()
        inbox: asyncio.Queue[tuple[InboxKind, Any]] = asyncio.Queue()

        def post(kind: InboxKind, payload: Any = None) -> bool:
            try:
                loop.call_soon_threadsafe(inbox.put_nowait, (kind, payload))
            except RuntimeError:
                # the loop has already finished
                return False
            return True

        thread = threading.Thread(target=_read_frames, args=(reader, post), name="hanumail-reader", daemon=True)
        thread.start()

        while not self.protocol.exited:
            kind, payload = await inbox.get()
            if kind is InboxKind.FRAME:
                self.protocol.handle_frame(payload)
            elif kind is InboxKind.FRAME_ERROR:
                logger.warning(f"Dropped malformed frame: {payload}")
            else:
                if payload:
                    logger.warning(f"Input stream failed: {payload}")
                self.protocol.transport_closed()


def _read_frames(reader: FrameReader, post: Callable[..., bool]) -> None:
    while True:
        try:
            frame = reader.read_frame()
        except FrameError as e:
            if not post(InboxKind.FRAME_ERROR, str(e)):
                return
            continue
        except StreamClosedError as e:
            post(InboxKind.CLOSED, str(e))
            return
        if frame is None:
            post(InboxKind.CLOSED)
            return
        if not post(InboxKind.FRAME, frame):
            return


def create_server(config: ServerConfig | None = None, executor: Any = None) -> EmailLanguageServer:
    """Create and configure the LSP server."""
    server = EmailLanguageServer(config, executor=executor)

    @server.feature(lsp.INITIALIZE)
    def initialize(params: lsp.InitializeParams) -> None:
        options = params.initialization_options
        if isinstance(options, Mapping):
            try:
                server.config = server.config.with_editor_settings(options)
                server.engine = DiagnosticEngine(server.config.diagnostics)
            except ConfigError as e:
                logger.warning(f"Ignoring invalid initializationOptions: {e}")
        client = params.client_info.name if params.client_info else "unknown client"
        logger.info(f"Initialize from {client}")

    @server.feature(lsp.INITIALIZED)
    def initialized(params: lsp.InitializedParams) -> None:
        server.log_message(f"{SERVER_NAME} {__version__} ready")
        server.request_settings()

    @server.feature(lsp.SHUTDOWN)
    def shutdown(params: None) -> None:
        logger.info("Shutdown requested")
        server.cancel_all_analysis()

    @server.feature(lsp.WORKSPACE_DID_CHANGE_CONFIGURATION)
    def did_change_configuration(params: lsp.DidChangeConfigurationParams) -> None:
        settings = params.settings
        if isinstance(settings, Mapping) and isinstance(settings.get(SETTINGS_SECTION), Mapping):
            server.apply_settings(settings[SETTINGS_SECTION])
        else:
            server.request_settings()

    @server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
    def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
        doc = params.text_document
        try:
            server.documents.open(
                doc.uri,
                doc.text,
                language_id=doc.language_id or "email",
                client_version=doc.version,
            )
        except DocumentExistsError:
            logger.warning(f"didOpen for already open document {doc.uri}; ignored")
            return
        server.schedule_analysis(doc.uri)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
    def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
        uri = params.text_document.uri
        try:
            server.documents.change(uri, params.content_changes, client_version=params.text_document.version)
        except DocumentNotFoundError:
            logger.warning(f"didChange for unknown document {uri}; ignored")
            return
        except JsonRpcInvalidParams as e:
            logger.warning(f"didChange for {uri} rejected: {e.message}")
            return
        server.schedule_analysis(uri)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
    def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
        uri = params.text_document.uri
        server.cancel_analysis(uri)
        try:
            server.documents.close(uri)
        except DocumentNotFoundError:
            logger.warning(f"didClose for unknown document {uri}; ignored")
            return
        server.publish_diagnostics(uri, [])

    @server.feature(lsp.TEXT_DOCUMENT_DID_SAVE)
    def did_save(params: lsp.DidSaveTextDocumentParams) -> None:
        logger.debug(f"Saved {params.text_document.uri}")

    @server.feature(lsp.TEXT_DOCUMENT_COMPLETION, lsp.CompletionOptions(trigger_characters=[":"]))
    def completion(params: lsp.CompletionParams) -> lsp.CompletionList:
        snapshot = server.analyzed_snapshot(params.text_document.uri)
        offset = snapshot.lines.offset_at(params.position)
        return complete(snapshot.analyze(), snapshot.lines, params.position.line, offset)

    @server.feature(lsp.TEXT_DOCUMENT_HOVER)
    def hover(params: lsp.HoverParams) -> lsp.Hover | None:
        snapshot = server.analyzed_snapshot(params.text_document.uri)
        offset = snapshot.lines.offset_at(params.position)
        info = get_hover_info(snapshot.analyze(), offset)
        if info is None:
            return None
        text, span = info
        return lsp.Hover(
            contents=lsp.MarkupContent(kind=lsp.MarkupKind.Markdown, value=text),
            range=snapshot.lines.range_of(span.start, span.end),
        )

    @server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
    async def definition(params: lsp.DefinitionParams) -> list[lsp.Location]:
        current = server.snapshot(params.text_document.uri)
        snapshots = list(server.documents.snapshots())

        def job(token: CancellationToken) -> list[lsp.Location]:
            index = build_message_id_index(snapshots, token)
            offset = current.lines.offset_at(params.position)
            return find_definition(index, current.analyze(), offset)

        return await server.run_job(job)

    @server.feature(lsp.TEXT_DOCUMENT_REFERENCES)
    async def references(params: lsp.ReferenceParams) -> list[lsp.Location]:
        current = server.snapshot(params.text_document.uri)
        snapshots = list(server.documents.snapshots())
        include_declaration = params.context.include_declaration

        def job(token: CancellationToken) -> list[lsp.Location]:
            index = build_message_id_index(snapshots, token)
            offset = current.lines.offset_at(params.position)
            return find_references(index, current.analyze(), offset, include_declaration)

        return await server.run_job(job)

    @server.feature(lsp.TEXT_DOCUMENT_DIAGNOSTIC)
    async def diagnostic(params: lsp.DocumentDiagnosticParams) -> lsp.RelatedFullDocumentDiagnosticReport:
        uri = params.text_document.uri
        snapshot = server.snapshot(uri)
        engine = server.engine
        # a pull takes over from the queued push for this uri
        server.cancel_analysis(uri)

        def job(token: CancellationToken):
            ast, diagnostics = analyze_document(snapshot, engine, token)
            return ast, to_lsp_diagnostics(diagnostics, snapshot.lines)

        ast, diagnostics = await server.run_job(job)
        server.documents.cache_analysis(uri, snapshot.version, ast)
        return lsp.RelatedFullDocumentDiagnosticReport(items=diagnostics)

    @server.feature(lsp.TEXT_DOCUMENT_FORMATTING)
    async def formatting(params: lsp.DocumentFormattingParams) -> list[lsp.TextEdit]:
        snapshot = server.snapshot(params.text_document.uri)
        width = server.config.format.wrap_width
        return await server.run_job(lambda token: format_document(snapshot.analyze(), snapshot.lines, width, token))

    @server.feature(lsp.TEXT_DOCUMENT_RANGE_FORMATTING)
    async def range_formatting(params: lsp.DocumentRangeFormattingParams) -> list[lsp.TextEdit]:
        snapshot = server.snapshot(params.text_document.uri)
        width = server.config.format.wrap_width
        rng = params.range
        return await server.run_job(
            lambda token: format_range(snapshot.analyze(), snapshot.lines, rng, width, token)
        )

    return server


def start_server(
    config: ServerConfig | None = None,
    transport: str = "stdio",
    host: str = "localhost",
    port: int = 2087,
) -> int:
    """Start the LSP server.

    Args:
        config: Server configuration (defaults when None)
        transport: Transport method ("stdio" or "tcp")
        host: Interface to listen on for tcp
        port: Port to listen on for tcp

    Returns:
        Process exit code
    """
    config = config or ServerConfig()
    server = create_server(config)

    if transport == "stdio":
        reader = FrameReader(sys.stdin.buffer, max_message_size=config.max_message_size)
        return server.serve(reader, FrameWriter(sys.stdout.buffer))

    # TCP transport for debugging: serve a single client connection
    with socket.create_server((host, port)) as listener:
        logger.info(f"Listening on {host}:{port}")
        conn, addr = listener.accept()
        logger.info(f"Client connected from {addr[0]}:{addr[1]}")
        with conn, conn.makefile("rb") as rfile, conn.makefile("wb") as wfile:
            reader = FrameReader(rfile, max_message_size=config.max_message_size)
            return server.serve(reader, FrameWriter(wfile))
