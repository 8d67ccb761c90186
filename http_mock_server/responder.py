"""Serialization of a matched rule's response onto an outbound writer."""

from __future__ import annotations

import json
from datetime import date, time
from typing import Optional, Protocol

import structlog

from .models import ResponseSpec

LOGGER = structlog.get_logger("http_mock_server.responder")


class ResponseCommittedError(RuntimeError):
    """Raised when headers or status are changed after the status was written."""


class ResponseWriter(Protocol):
    def set_header(self, name: str, value: str) -> None: ...

    def write_header(self, status_code: int) -> None: ...

    def write(self, data: bytes) -> None: ...


class BufferedResponse:
    """In-memory response writer handed back to the transport."""

    def __init__(self) -> None:
        self.status_code: Optional[int] = None
        self.headers: dict[str, str] = {}
        self._body = bytearray()

    @property
    def committed(self) -> bool:
        return self.status_code is not None

    @property
    def body(self) -> bytes:
        return bytes(self._body)

    def set_header(self, name: str, value: str) -> None:
        if self.committed:
            raise ResponseCommittedError(f"cannot set header {name!r} after status was written")
        self.headers[name] = value

    def write_header(self, status_code: int) -> None:
        if self.committed:
            raise ResponseCommittedError("status already written")
        self.status_code = status_code

    def write(self, data: bytes) -> None:
        if not self.committed:
            self.write_header(200)
        self._body.extend(data)


def _json_default(value: object) -> str:
    if isinstance(value, (date, time)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def render_body(body: object) -> bytes:
    """Literal strings pass through; anything else is encoded as compact JSON."""

    if isinstance(body, str):
        return body.encode("utf-8")
    return json.dumps(body, separators=(",", ":"), default=_json_default).encode("utf-8")


def write_response(spec: ResponseSpec, writer: ResponseWriter) -> None:
    for name, value in spec.headers.items():
        writer.set_header(name, value)
    writer.write_header(spec.status_code)

    if spec.body is None:
        return
    try:
        payload = render_body(spec.body)
    except (TypeError, ValueError) as exc:
        # status and headers are already out; the partial response stands
        LOGGER.error(
            "response_body_serialization_failed",
            status=spec.status_code,
            error=str(exc),
        )
        return
    writer.write(payload)
