"""Threaded HTTP transport serving the configured mock rules."""

from __future__ import annotations

import selectors
import socket
import socketserver
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, BinaryIO, Iterable, Optional
from urllib.parse import unquote, urlsplit

import structlog

from .dispatcher import Cancellation, MockDispatcher, Outcome
from .models import MockConfig
from .request import BodyReadError, BufferedBody, MockRequest

LOGGER = structlog.get_logger("http_mock_server.server")


class ThreadedHTTPServer(socketserver.ThreadingMixIn, HTTPServer):
    daemon_threads = True


class ChunkedStream:
    """Decodes a ``Transfer-Encoding: chunked`` request body on read."""

    def __init__(self, rfile: BinaryIO) -> None:
        self._rfile = rfile

    def read(self, size: int = -1) -> bytes:
        chunks = bytearray()
        while True:
            line = self._rfile.readline(65537)
            if not line:
                raise ValueError("connection closed inside chunked body")
            chunk_size = int(line.split(b";", 1)[0].strip(), 16)
            if chunk_size == 0:
                # trailers end with an empty line
                while self._rfile.readline(65537) not in (b"\r\n", b"\n", b""):
                    pass
                return bytes(chunks)
            chunks.extend(self._rfile.read(chunk_size))
            self._rfile.readline(65537)


def wire_text(value: str) -> str:
    """Map text onto the latin-1 header channel as its UTF-8 bytes."""

    return value.encode("utf-8").decode("latin-1")


def merged_headers(pairs: Iterable[tuple[str, str]]) -> dict[str, str]:
    """Header pairs keyed by name; repeated headers keep every value, comma-joined."""

    merged: dict[str, str] = {}
    for name, value in pairs:
        merged[name] = f"{merged[name]}, {value}" if name in merged else value
    return merged


def peer_closed(sock: socket.socket) -> bool:
    """True when the client has closed its side of the connection."""

    try:
        with selectors.DefaultSelector() as selector:
            selector.register(sock, selectors.EVENT_READ)
            if not selector.select(timeout=0):
                return False
        return sock.recv(1, socket.MSG_PEEK) == b""
    except OSError:
        return True


class MockServerRunner:
    """Runs one HTTP server instance for a mock configuration."""

    def __init__(self, config: MockConfig, dispatcher: Optional[MockDispatcher] = None) -> None:
        self._config = config
        self._dispatcher = dispatcher or MockDispatcher(config)
        self._httpd: ThreadedHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self._ready = threading.Event()
        self._logger = LOGGER.bind(host=config.server.host, port=config.server.port)

    @property
    def server_address(self) -> tuple[str, int]:
        if self._httpd is None:
            return self._config.server.host, self._config.server.port
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        handler_factory = self._build_handler_factory()
        self._logger.info("server_starting", rules=len(self._config.requests))
        httpd = ThreadedHTTPServer((self._config.server.host, self._config.server.port), handler_factory)
        self._httpd = httpd
        self._thread = threading.Thread(target=httpd.serve_forever, daemon=True)
        self._thread.start()
        self._ready.set()
        host, port = self.server_address
        self._logger = LOGGER.bind(host=host, port=port)
        self._logger.info("server_started")

    def stop(self) -> None:
        if not self._httpd:
            return
        self._logger.info("server_stopping")
        try:
            self._httpd.shutdown()
            self._httpd.server_close()
        finally:
            if self._thread:
                self._thread.join(timeout=2)
            self._httpd = None
            self._ready.clear()
        self._logger.info("server_stopped")

    def wait_until_ready(self, timeout: float = 1.0) -> bool:
        return self._ready.wait(timeout=timeout)

    def __enter__(self) -> "MockServerRunner":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _build_handler_factory(self) -> type[BaseHTTPRequestHandler]:
        dispatcher = self._dispatcher
        health_path = self._config.server.health_path
        read_timeout = self._config.server.timeout
        runner = self

        class Handler(BaseHTTPRequestHandler):
            server_version = "http-mock-server"
            timeout = read_timeout

            def log_message(self, format: str, *args: Any) -> None:  # pragma: no cover - avoid stderr
                LOGGER.debug("http_trace", client_ip=self.client_address[0], message=format % args)

            def do_GET(self) -> None:  # noqa: N802 (BaseHTTPRequestHandler requirement)
                self._handle()

            def do_POST(self) -> None:  # noqa: N802
                self._handle()

            def do_PUT(self) -> None:  # noqa: N802
                self._handle()

            def do_DELETE(self) -> None:  # noqa: N802
                self._handle()

            def do_PATCH(self) -> None:  # noqa: N802
                self._handle()

            def do_HEAD(self) -> None:  # noqa: N802
                self._handle(head_only=True)

            def do_OPTIONS(self) -> None:  # noqa: N802
                self._handle()

            def _handle(self, *, head_only: bool = False) -> None:
                target = urlsplit(self.path)
                path = unquote(target.path) or "/"
                request_logger = runner._logger.bind(method=self.command, uri=self.path)

                if health_path and path == health_path:
                    self._send(HTTPStatus.OK, {"Content-Type": "text/plain; charset=utf-8"}, b"OK", head_only)
                    return

                body = self._request_body()
                if body is None:
                    return
                request = MockRequest(
                    method=self.command,
                    path=path,
                    headers=list(self.headers.items()),
                    query=target.query,
                    body=body,
                )
                try:
                    body.read()
                except BodyReadError as exc:
                    if isinstance(exc.__cause__, TimeoutError):
                        self.close_connection = True
                        request_logger.warning("request_body_timed_out", path=path, timeout=self.timeout)
                        return
                    request_logger.warning("request_body_unreadable", error=str(exc))

                try:
                    cancellation = Cancellation(probe=lambda: peer_closed(self.connection))
                    result = dispatcher.dispatch(request, cancellation)
                except Exception:  # pragma: no cover - resilience path
                    request_logger.exception("request_failed", path=path)
                    self._send(HTTPStatus.INTERNAL_SERVER_ERROR, {}, b"", head_only)
                    return

                if result.outcome is Outcome.CANCELLED:
                    self.close_connection = True
                    request_logger.info("request_cancelled", path=path, delay_ms=result.delay_ms)
                    return

                self._send(result.status_code, result.headers, result.body, head_only)
                log_fields = dict(
                    remote_ip=self.client_address[0],
                    path=path,
                    request_headers=merged_headers(request.headers),
                    request_body=body.text(placeholder="(empty)"),
                    status=result.status_code,
                )
                if result.outcome is Outcome.NOT_FOUND:
                    request_logger.warning("request_unmatched", **log_fields)
                    return
                request_logger.info(
                    "request_served",
                    **log_fields,
                    response_headers=result.headers,
                    response_body=result.body.decode("utf-8", errors="replace") or "(empty)",
                    delay_ms=result.delay_ms,
                )

            def _request_body(self) -> Optional[BufferedBody]:
                if "chunked" in self.headers.get("Transfer-Encoding", "").lower():
                    return BufferedBody(ChunkedStream(self.rfile))
                raw_length = self.headers.get("Content-Length")
                if not raw_length:
                    return BufferedBody()
                try:
                    length = int(raw_length)
                except ValueError:
                    length = -1
                if length < 0:
                    self.send_error(HTTPStatus.BAD_REQUEST, "invalid Content-Length")
                    return None
                return BufferedBody(self.rfile, length=length)

            def _send(self, status: int, headers: dict[str, str], body: bytes, head_only: bool) -> None:
                try:
                    self.send_response(status)
                    for key, value in headers.items():
                        self.send_header(wire_text(key), wire_text(value))
                    if not any(key.lower() == "content-length" for key in headers):
                        self.send_header("Content-Length", str(len(body)))
                    self.end_headers()
                    if body and not head_only:
                        self.wfile.write(body)
                except (OSError, ValueError) as exc:
                    self.close_connection = True
                    LOGGER.warning("response_write_failed", status=status, error=str(exc))

        return Handler
