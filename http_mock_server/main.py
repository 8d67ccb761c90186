"""CLI entrypoint for the HTTP mock server."""

from __future__ import annotations

import signal
import threading
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Optional

import typer

from .config import ConfigError, load_config, resolve_config_path
from .logging_utils import configure_logging, resolve_log_format
from .models import MockConfig
from .server import MockServerRunner

app = typer.Typer(help="Serve canned HTTP responses from declarative matching rules.")

DISTRIBUTION = "http-mock-server"


def _version() -> str:
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "0.0.0-dev"


def _load(config_path: Optional[Path]) -> tuple[Path, MockConfig]:
    try:
        path = resolve_config_path(config_path)
        return path, load_config(path)
    except ConfigError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc


def describe_rules(config: MockConfig) -> list[str]:
    lines = []
    for index, rule in enumerate(config.requests, start=1):
        details = [f"  {index}. {rule.describe()} -> {rule.response.status_code}"]
        if rule.headers:
            details.append(f"headers={rule.headers}")
        if rule.query_params:
            details.append(f"query={rule.query_params}")
        if rule.body:
            details.append(f"body={rule.body!r}")
        if rule.response_delay is not None:
            details.append(f"delay={rule.response_delay.min}-{rule.response_delay.max}ms")
        lines.append(" ".join(details))
    if not lines:
        lines.append("  (no rules configured)")
    return lines


@app.command()
def serve(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the rules YAML file."),
    host: Optional[str] = typer.Option(None, help="Override the bind host from the config file."),
    port: Optional[int] = typer.Option(None, "--port", "-p", envvar="PORT", help="Override the listening port."),
    log_level: str = typer.Option("info", help="Log level (debug, info, warning, error)."),
    log_format: Optional[str] = typer.Option(None, help="Log output: console, plain or json."),
) -> None:
    """Start the mock server and block until SIGINT/SIGTERM."""

    logger = configure_logging(log_level, resolve_log_format(log_format))
    logger.info("starting_http_mock_server", version=_version())
    _, cfg = _load(config)
    cfg = cfg.with_server(host=host, port=port)

    stop_requested = threading.Event()

    def _request_stop(signum: int, frame: object) -> None:
        logger.info("shutdown_signal_received", signal=signal.Signals(signum).name)
        stop_requested.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    runner = MockServerRunner(cfg)
    try:
        runner.start()
    except OSError as exc:
        typer.secho(f"Could not listen on {cfg.server.host}:{cfg.server.port}: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    host_bound, port_bound = runner.server_address
    typer.secho(f"[http-mock-server] listening on {host_bound}:{port_bound}", fg=typer.colors.GREEN)
    for line in describe_rules(cfg):
        typer.echo(line)

    try:
        while not stop_requested.wait(timeout=0.5):
            pass
    finally:
        runner.stop()
    logger.info("server_stopped_gracefully")


@app.command()
def validate(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to the rules YAML file."),
) -> None:
    """Validate a rules file and print a summary of its rules."""

    path, cfg = _load(config)
    typer.secho(
        f"{path}: {len(cfg.requests)} rule(s), port {cfg.server.port}",
        fg=typer.colors.GREEN,
    )
    for line in describe_rules(cfg):
        typer.echo(line)


@app.command("version")
def show_version() -> None:
    """Print the installed version."""

    typer.echo(_version())


def run() -> None:
    """Console_scripts hook."""

    app()


if __name__ == "__main__":  # pragma: no cover
    run()
