from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from http_mock_server.config import ConfigError, load_config, resolve_config_path
from http_mock_server.models import MAX_RESPONSE_DELAY_MS, MockConfig, RequestRule, ResponseDelay


def _write(tmp_path: Path, payload: object, name: str = "config.yaml") -> Path:
    target = tmp_path / name
    target.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
    return target


def test_load_config_applies_defaults(tmp_path: Path) -> None:
    path = _write(tmp_path, {"requests": [{"path": "/ping", "method": "post"}, {"path": "/pong"}]})

    config = load_config(path)

    assert config.server.port == 8080
    assert config.server.health_path == "/health"
    assert [rule.method for rule in config.requests] == ["POST", "GET"]
    assert config.requests[1].response.status_code == 200
    assert config.requests[1].response.body is None
    assert config.requests[1].response_delay is None
    assert config.requests[1].headers == {}
    assert config.requests[1].body == ""


def test_load_config_reads_document_keys(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        {
            "server": {"port": 9100},
            "requests": [
                {
                    "path": "/search",
                    "queryParams": {"page": 3},
                    "headers": {"X-Trace": "abc"},
                    "body": "needle",
                    "responseDelay": {"min": 10, "max": 20},
                    "response": {
                        "status-code": 201,
                        "headers": {"X-Mock": "yes"},
                        "body": {"items": [1, 2]},
                    },
                }
            ],
        },
    )

    config = load_config(path)
    rule = config.requests[0]

    assert config.server.port == 9100
    assert rule.query_params == {"page": "3"}
    assert rule.headers == {"X-Trace": "abc"}
    assert rule.body == "needle"
    assert rule.response_delay == ResponseDelay(min=10, max=20)
    assert rule.response.status_code == 201
    assert rule.response.headers == {"X-Mock": "yes"}
    assert rule.response.body == {"items": [1, 2]}


def test_status_code_accepts_camel_case_and_zero_means_default() -> None:
    config = MockConfig.model_validate(
        {
            "requests": [
                {"path": "/a", "response": {"statusCode": 418}},
                {"path": "/b", "response": {"status-code": 0}},
            ]
        }
    )

    assert config.requests[0].response.status_code == 418
    assert config.requests[1].response.status_code == 200


@pytest.mark.parametrize(
    "rule, message",
    [
        ({"path": ""}, "path"),
        ({"path": "/x", "method": "   "}, "method is required"),
        ({"path": "/x", "response": {"statusCode": 600}}, "less than or equal to 599"),
        ({"path": "/x", "response": {"statusCode": 99}}, "greater than or equal to 100"),
        ({"path": "/x", "responseDelay": {"min": -100, "max": 100}}, "responseDelay min cannot be negative"),
        ({"path": "/x", "responseDelay": {"min": 0, "max": -100}}, "responseDelay max cannot be negative"),
        ({"path": "/x", "responseDelay": {"min": 500, "max": 100}}, "responseDelay min (500) cannot exceed max (100)"),
        ({"path": "/x", "responseDelay": {"min": 0, "max": 15000}}, "exceeds maximum allowed"),
    ],
)
def test_invalid_rules_are_rejected(rule: dict, message: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        RequestRule.model_validate(rule)
    assert message in str(excinfo.value)


def test_response_delay_limits() -> None:
    assert ResponseDelay(min=0, max=MAX_RESPONSE_DELAY_MS).max == MAX_RESPONSE_DELAY_MS
    assert ResponseDelay(min=MAX_RESPONSE_DELAY_MS, max=MAX_RESPONSE_DELAY_MS).min == MAX_RESPONSE_DELAY_MS
    with pytest.raises(ValidationError):
        ResponseDelay(min=0, max=MAX_RESPONSE_DELAY_MS + 1)


def test_rules_are_immutable() -> None:
    rule = RequestRule(path="/frozen")
    with pytest.raises(ValidationError):
        rule.path = "/other"


def test_load_config_wraps_validation_errors(tmp_path: Path) -> None:
    path = _write(tmp_path, {"requests": [{"method": "GET"}]})

    with pytest.raises(ConfigError) as excinfo:
        load_config(path)

    assert str(path) in str(excinfo.value)


def test_load_config_rejects_bad_documents(tmp_path: Path) -> None:
    broken = tmp_path / "broken.yaml"
    broken.write_text("requests: [\n", encoding="utf-8")
    listing = _write(tmp_path, ["not", "a", "mapping"], name="list.yaml")

    with pytest.raises(ConfigError, match="error parsing"):
        load_config(broken)
    with pytest.raises(ConfigError, match="must contain a mapping"):
        load_config(listing)
    with pytest.raises(ConfigError, match="could not read"):
        load_config(tmp_path / "missing.yaml")


def test_empty_document_yields_empty_config(tmp_path: Path) -> None:
    path = tmp_path / "empty.yaml"
    path.write_text("", encoding="utf-8")

    config = load_config(path)

    assert config.requests == []
    assert config.server.port == 8080


def test_resolve_config_path_precedence(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("HTTP_MOCK_CONFIG", raising=False)

    with pytest.raises(ConfigError, match="could not find config file"):
        resolve_config_path()

    (tmp_path / "config").mkdir()
    nested = _write(tmp_path / "config", {"requests": []})
    assert resolve_config_path() == Path("config/config.yaml")
    assert nested.exists()

    _write(tmp_path, {"requests": []})
    assert resolve_config_path() == Path("config.yaml")

    monkeypatch.setenv("HTTP_MOCK_CONFIG", "from-env.yaml")
    assert resolve_config_path() == Path("from-env.yaml")
    assert resolve_config_path(Path("explicit.yaml")) == Path("explicit.yaml")


def test_with_server_overrides_only_given_values() -> None:
    config = MockConfig.model_validate({"server": {"port": 9000, "host": "127.0.0.1"}})

    assert config.with_server(host=None, port=None) is config
    updated = config.with_server(port=9001)

    assert updated.server.port == 9001
    assert updated.server.host == "127.0.0.1"
    assert config.server.port == 9000


def test_scalar_pattern_values_are_stringified(tmp_path: Path) -> None:
    path = tmp_path / "scalars.yaml"
    path.write_text(
        "requests:\n"
        "  - path: /flags\n"
        "    headers:\n"
        "      X-Flag: yes\n"
        "      X-Enabled: true\n"
        "    queryParams:\n"
        "      debug: false\n"
        "      page: 3\n"
        "      ratio: 0.5\n"
        "    response:\n"
        "      headers:\n"
        "        X-Cached: true\n",
        encoding="utf-8",
    )

    rule = load_config(path).requests[0]

    assert rule.headers == {"X-Flag": "yes", "X-Enabled": "true"}
    assert rule.query_params == {"debug": "false", "page": "3", "ratio": "0.5"}
    assert rule.response.headers == {"X-Cached": "true"}


def test_booleans_in_pattern_maps_become_lowercase_text() -> None:
    rule = RequestRule.model_validate({"path": "/x", "headers": {"X-On": True, "X-Off": False, "X-None": None}})

    assert rule.headers == {"X-On": "true", "X-Off": "false", "X-None": ""}


def test_timestamps_in_response_bodies_stay_strings(tmp_path: Path) -> None:
    path = tmp_path / "dates.yaml"
    path.write_text(
        "requests:\n"
        "  - path: /d\n"
        "    response:\n"
        "      body:\n"
        "        created: 2024-01-01\n"
        "        updated: 2024-01-01T10:00:00Z\n"
        "        active: true\n",
        encoding="utf-8",
    )

    body = load_config(path).requests[0].response.body

    assert body == {"created": "2024-01-01", "updated": "2024-01-01T10:00:00Z", "active": True}


def test_server_timeout_defaults_and_validates() -> None:
    assert MockConfig.model_validate({}).server.timeout == 15.0
    assert MockConfig.model_validate({"server": {"timeout": 0.5}}).server.timeout == 0.5
    with pytest.raises(ValidationError):
        MockConfig.model_validate({"server": {"timeout": 0}})
