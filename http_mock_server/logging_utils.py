"""Structured logging setup for the mock server."""

from __future__ import annotations

import logging
import os
import sys
from io import StringIO
from typing import Any, Literal, Mapping, Optional

import structlog
from rich.console import Console
from rich.text import Text

LogFormat = Literal["json", "console", "plain"]

ENV_LOG_FORMAT = "HTTP_MOCK_LOG_FORMAT"
LOG_FORMATS = ("json", "console", "plain")


def resolve_log_format(cli_override: Optional[str] = None) -> LogFormat:
    """CLI option, then ``HTTP_MOCK_LOG_FORMAT``, then ``console``."""

    for candidate in (cli_override, os.environ.get(ENV_LOG_FORMAT)):
        if candidate and candidate.lower() in LOG_FORMATS:
            return candidate.lower()  # type: ignore[return-value]
    return "console"


class RichConsoleRenderer:
    """Renders events as one coloured line; mapping values become indented blocks."""

    level_styles = {
        "debug": "dim cyan",
        "info": "green",
        "warning": "yellow",
        "error": "bold red",
        "critical": "bold white on red",
    }
    hidden_keys = ("color_message", "stack")

    def __init__(self, width: int = 200) -> None:
        self._width = width

    def __call__(self, logger: Any, name: str, event_dict: dict[str, Any]) -> str:
        timestamp = event_dict.pop("timestamp", "")
        level = event_dict.pop("level", "info")
        event = event_dict.pop("event", "")
        exception = event_dict.pop("exception", None)

        text = Text()
        text.append(str(timestamp), style="dim white")
        text.append(" ")
        text.append(f"[{level:<8}]", style=self.level_styles.get(level, "white"))
        text.append(" ")
        text.append(str(event), style="bold white")

        blocks: list[tuple[str, Mapping[Any, Any]]] = []
        for key, value in sorted(event_dict.items()):
            if key in self.hidden_keys:
                continue
            if isinstance(value, Mapping) and value:
                blocks.append((key, value))
                continue
            text.append(" ")
            text.append(f"{key}=", style="dim white")
            text.append(str(value), style="bright_cyan")

        for key, mapping in blocks:
            text.append(f"\n    {key}:", style="dim white")
            for inner_key, inner_value in mapping.items():
                text.append(f"\n        {inner_key}: ", style="white")
                text.append(str(inner_value), style="bright_cyan")

        if exception:
            text.append(f"\n{exception}", style="red")

        buffer = StringIO()
        Console(file=buffer, force_terminal=True, width=self._width, legacy_windows=False).print(text, end="")
        return buffer.getvalue()


def configure_logging(log_level: str = "info", log_format: LogFormat = "console") -> structlog.stdlib.BoundLogger:
    """Configure structlog once for the whole process."""

    normalized_level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=normalized_level,
        stream=sys.stdout,
        format="%(message)s",
        force=True,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", key="timestamp"),
        structlog.processors.format_exc_info,
    ]
    if log_format == "console":
        processors.append(RichConsoleRenderer())
    elif log_format == "plain":
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(normalized_level),
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger("http_mock_server")
