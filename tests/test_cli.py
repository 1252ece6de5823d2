import signal
from pathlib import Path
from typing import Any

import pytest
import uvicorn
from click.testing import CliRunner

from toolgate import cli
from toolgate.server.session import SessionStore
from toolgate.server.settings import Settings
from toolgate.server.watchdog import ExitWatchdog
from toolgate.tools.base import ToolCapability
from toolgate.tools.registry import ToolRegistry


@pytest.fixture
def launched(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> list[tuple[Any, Settings]]:
    """Capture what main() would run instead of starting a server."""
    monkeypatch.chdir(tmp_path)
    calls: list[tuple[Any, Settings]] = []
    monkeypatch.setattr(cli.anyio, "run", lambda fn, settings: calls.append((fn, settings)))
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return calls


def test_defaults_serve_http(launched: list[tuple[Any, Settings]]):
    result = CliRunner().invoke(cli.main, [])
    assert result.exit_code == 0, result.output

    [(fn, settings)] = launched
    assert fn is cli.serve_http
    assert settings.host == "localhost"
    assert settings.port == 8000
    assert settings.capabilities is None
    assert settings.vision is False


def test_options_override_settings(launched: list[tuple[Any, Settings]]):
    result = CliRunner().invoke(
        cli.main,
        ["--host", "0.0.0.0", "--port", "9000", "--caps", "tabs, pdf", "--vision", "--json-response", "--log-level", "debug"],
    )
    assert result.exit_code == 0, result.output

    [(_, settings)] = launched
    assert settings.host == "0.0.0.0"
    assert settings.port == 9000
    assert settings.capabilities == [ToolCapability.TABS, ToolCapability.PDF]
    assert settings.vision is True
    assert settings.json_response is True
    assert settings.log_level == "DEBUG"


def test_stdio_transport(launched: list[tuple[Any, Settings]]):
    result = CliRunner().invoke(cli.main, ["--transport", "stdio"])
    assert result.exit_code == 0, result.output
    [(fn, _)] = launched
    assert fn is cli.serve_stdio


def test_unknown_capability_is_rejected(launched: list[tuple[Any, Settings]]):
    result = CliRunner().invoke(cli.main, ["--caps", "teleport"])
    assert result.exit_code != 0
    assert launched == []


def test_environment_configures_capabilities(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("TOOLGATE_CAPABILITIES", "history,tabs")
    monkeypatch.setenv("TOOLGATE_CORS_ALLOW_ORIGINS", "http://a.example, http://b.example")
    settings = Settings(_env_file=None)
    assert settings.capabilities == [ToolCapability.HISTORY, ToolCapability.TABS]
    assert settings.cors_allow_origins == ["http://a.example", "http://b.example"]


def test_signal_arms_the_watchdog(registry: ToolRegistry):
    exits: list[int] = []
    watchdog = ExitWatchdog(SessionStore(registry), timeout=60, hard_exit=exits.append)
    server = cli.WatchdogServer(uvicorn.Config(app=lambda scope, receive, send: None), watchdog)

    try:
        server.handle_exit(signal.SIGTERM, None)
        assert watchdog.armed
        assert watchdog.shutting_down
        assert server.should_exit
    finally:
        watchdog.disarm()
    assert exits == []


@pytest.mark.parametrize("timeout", [15.0, 2.0, 1.0])
def test_graceful_shutdown_ends_before_the_watchdog(timeout: float):
    server = cli.build_server(Settings(_env_file=None, shutdown_timeout=timeout))
    assert server.config.timeout_graceful_shutdown is not None
    assert server.config.timeout_graceful_shutdown >= 1
    assert server.watchdog.timeout == timeout
    if timeout > 1:
        assert server.config.timeout_graceful_shutdown < timeout
