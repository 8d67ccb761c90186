"""Inbound request representation shared by matchers and the transport."""

from __future__ import annotations

import io
from functools import cached_property
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable, Optional, Union
from urllib.parse import parse_qsl


class BodyReadError(Exception):
    """Raised when the request body source fails while being buffered."""


class BufferedBody:
    """One-shot byte source buffered on first read and replayable afterwards."""

    def __init__(self, source: Union[bytes, BinaryIO, None] = None, length: Optional[int] = None) -> None:
        self._source = source
        self._length = length
        self._buffer: Optional[bytes] = source if isinstance(source, bytes) else None
        self._error: Optional[BodyReadError] = None
        if source is None:
            self._buffer = b""

    def read(self) -> bytes:
        if self._buffer is not None:
            return self._buffer
        if self._error is not None:
            raise self._error
        try:
            if self._length is None:
                data = self._source.read()
            else:
                data = self._source.read(self._length) if self._length > 0 else b""
        except (OSError, ValueError) as exc:
            self._error = BodyReadError(f"failed to read request body: {exc}")
            raise self._error from exc
        self._buffer = bytes(data or b"")
        return self._buffer

    def open(self) -> io.BytesIO:
        """Return a fresh read view over the buffered content."""

        return io.BytesIO(self.read())

    def text(self, placeholder: str = "") -> str:
        """Best-effort decoded body for diagnostics; never raises."""

        try:
            data = self.read()
        except BodyReadError:
            return "(unreadable)"
        if not data:
            return placeholder
        return data.decode("utf-8", errors="replace")


@dataclass
class MockRequest:
    method: str
    path: str
    headers: list[tuple[str, str]] = field(default_factory=list)
    query: str = ""
    body: BufferedBody = field(default_factory=BufferedBody)

    def header(self, name: str) -> str:
        """First value of a header (case-insensitive), empty string if absent."""

        lowered = name.lower()
        for key, value in self.headers:
            if key.lower() == lowered:
                return value
        return ""

    def query_param(self, name: str) -> str:
        """First value of a decoded query parameter, empty string if absent."""

        for key, value in self.query_params:
            if key == name:
                return value
        return ""

    @cached_property
    def query_params(self) -> list[tuple[str, str]]:
        return parse_qsl(self.query, keep_blank_values=True)

    @classmethod
    def build(
        cls,
        method: str,
        target: str,
        headers: Union[dict[str, str], Iterable[tuple[str, str]], None] = None,
        body: Union[bytes, str, None] = None,
    ) -> "MockRequest":
        """Convenience constructor from a request target such as ``/search?page=3``."""

        path, _, query = target.partition("?")
        if isinstance(headers, dict):
            header_pairs = list(headers.items())
        else:
            header_pairs = list(headers or [])
        if isinstance(body, str):
            body = body.encode("utf-8")
        return cls(method=method, path=path, headers=header_pairs, query=query, body=BufferedBody(body))
