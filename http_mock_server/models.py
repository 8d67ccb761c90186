"""Pydantic models describing mock rules and server configuration."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

MAX_RESPONSE_DELAY_MS = 10_000
DEFAULT_PORT = 8080


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, coerce_numbers_to_str=True)


def _scalar_text(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _scalar_map(value: Any) -> Any:
    """Stringify scalar values of a name -> text mapping the way YAML authors write them."""

    if not value:
        return {}
    if not isinstance(value, dict):
        return value
    return {str(key): _scalar_text(item) for key, item in value.items()}


class ResponseDelay(_FrozenModel):
    """Artificial latency range in milliseconds applied before responding."""

    min: int = 0
    max: int = 0

    @model_validator(mode="after")
    def _check_bounds(self) -> "ResponseDelay":
        if self.min < 0:
            raise ValueError("responseDelay min cannot be negative")
        if self.max < 0:
            raise ValueError("responseDelay max cannot be negative")
        if self.min > self.max:
            raise ValueError(f"responseDelay min ({self.min}) cannot exceed max ({self.max})")
        if self.max > MAX_RESPONSE_DELAY_MS:
            raise ValueError(
                f"responseDelay max ({self.max}) exceeds maximum allowed ({MAX_RESPONSE_DELAY_MS}ms)"
            )
        return self


class ResponseSpec(_FrozenModel):
    """Static response returned when a rule matches."""

    status_code: int = Field(
        200,
        ge=100,
        le=599,
        validation_alias=AliasChoices("statusCode", "status-code", "status_code"),
    )
    headers: dict[str, str] = Field(default_factory=dict)
    body: Any = None

    @field_validator("status_code", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        if value in (None, 0):
            return 200
        return value

    @field_validator("headers", mode="before")
    @classmethod
    def _empty_headers(cls, value: Any) -> Any:
        return _scalar_map(value)


class RequestRule(_FrozenModel):
    """Single matching rule: request predicates plus the response to emit."""

    path: str = Field(..., min_length=1)
    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("queryParams", "query-params", "query_params"),
    )
    body: str = ""
    response_delay: Optional[ResponseDelay] = Field(
        None,
        validation_alias=AliasChoices("responseDelay", "response-delay", "response_delay"),
    )
    response: ResponseSpec = Field(default_factory=ResponseSpec)

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Any:
        if value is None or value == "":
            return "GET"
        if isinstance(value, str):
            normalized = value.strip().upper()
            if not normalized:
                raise ValueError("method is required")
            return normalized
        return value

    @field_validator("headers", "query_params", mode="before")
    @classmethod
    def _empty_patterns(cls, value: Any) -> Any:
        return _scalar_map(value)

    @field_validator("body", mode="before")
    @classmethod
    def _empty_body(cls, value: Any) -> Any:
        return "" if value is None else value

    def describe(self) -> str:
        return f"{self.method} {self.path}"


class ServerConfig(_FrozenModel):
    """Listening socket options."""

    host: str = "0.0.0.0"
    port: int = Field(DEFAULT_PORT, ge=1, le=65535)
    health_path: Optional[str] = Field(
        "/health",
        validation_alias=AliasChoices("healthPath", "health-path", "health_path"),
    )
    timeout: float = Field(15.0, gt=0)

    @field_validator("port", mode="before")
    @classmethod
    def _default_port(cls, value: Any) -> Any:
        if value in (None, 0):
            return DEFAULT_PORT
        return value


class MockConfig(_FrozenModel):
    """Top-level configuration: server options plus rules in evaluation order."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    requests: list[RequestRule] = Field(default_factory=list)

    @field_validator("server", mode="before")
    @classmethod
    def _empty_server(cls, value: Any) -> Any:
        return value or {}

    @field_validator("requests", mode="before")
    @classmethod
    def _empty_requests(cls, value: Any) -> Any:
        return value or []

    def with_server(self, **overrides: Any) -> "MockConfig":
        """Return a copy with selected server options replaced."""

        updates = {key: value for key, value in overrides.items() if value is not None}
        if not updates:
            return self
        server = ServerConfig.model_validate({**self.server.model_dump(), **updates})
        return self.model_copy(update={"server": server})
