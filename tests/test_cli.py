"""
CLI and config file tests
"""

import json

import pytest
import tomli_w
from click.testing import CliRunner

from sse_eventsource import EventSource, EventSourceConfig
from sse_eventsource import cli as cli_module
from sse_eventsource.config import coerce_value, load_config, set_nested

from .conftest import STREAM_URL, ScriptedServer, sse_response


@pytest.fixture
def config_path(tmp_path):
    return tmp_path / "config.toml"


@pytest.fixture
def patch_source(monkeypatch):
    """Route the CLI's EventSource through a scripted server."""
    captured = {}

    def install(server: ScriptedServer):
        def factory(url, config=None):
            captured["config"] = config
            return EventSource(url, client=server.client(), config=config)

        monkeypatch.setattr(cli_module, "EventSource", factory)
        return captured

    return install


# ============================================================================
# Config file
# ============================================================================


class TestConfigFile:
    def test_missing_file_gives_defaults(self, config_path):
        assert load_config(config_path) == EventSourceConfig()

    def test_reads_default_section(self, config_path):
        config_path.write_bytes(
            tomli_w.dumps({"default": {"retry_interval_ms": 5, "last_event_id": "9"}}).encode()
        )
        cfg = load_config(config_path)
        assert cfg.retry_interval_ms == 5
        assert cfg.last_event_id == "9"

    def test_overrides_win_over_file(self, config_path):
        config_path.write_bytes(tomli_w.dumps({"default": {"retry_interval_ms": 5}}).encode())
        cfg = load_config(config_path, retry_interval_ms=50, last_event_id=None)
        assert cfg.retry_interval_ms == 50
        assert cfg.last_event_id == ""

    def test_set_nested(self):
        cfg = {}
        set_nested(cfg, "default.retry_interval_ms", 10)
        assert cfg == {"default": {"retry_interval_ms": 10}}

    def test_coerce_value(self):
        assert coerce_value("default.retry_interval_ms", "2000") == 2000
        assert coerce_value("default.retry_interval_ms", "abc") == "abc"
        assert coerce_value("default.retry_interval_ms", "-1") == "-1"

    def test_event_ids_stay_text(self):
        assert coerce_value("default.last_event_id", "42") == "42"
        assert coerce_value("default.last_event_id", "007") == "007"

    def test_numeric_id_in_file_is_read_as_text(self, config_path):
        config_path.write_bytes(tomli_w.dumps({"default": {"last_event_id": 42}}).encode())
        assert load_config(config_path).last_event_id == "42"
        assert EventSourceConfig(last_event_id=42).last_event_id == "42"


# ============================================================================
# sse-eventsource config
# ============================================================================


class TestConfigCommands:
    def test_set_then_show(self, config_path):
        runner = CliRunner()
        result = runner.invoke(
            cli_module.cli,
            ["--config-file", str(config_path), "config", "set", "default.retry_interval_ms", "2500"],
        )
        assert result.exit_code == 0, result.output
        assert "Set default.retry_interval_ms = 2500" in result.output

        result = runner.invoke(cli_module.cli, ["--config-file", str(config_path), "config", "show"])
        assert result.exit_code == 0
        assert "retry_interval_ms = 2500" in result.output

    def test_show_without_file(self, config_path):
        result = CliRunner().invoke(cli_module.cli, ["--config-file", str(config_path), "config", "show"])
        assert result.exit_code == 0
        assert "No config file found" in result.output


# ============================================================================
# sse-eventsource listen
# ============================================================================


class TestListen:
    def test_prints_messages_until_server_stops(self, config_path, patch_source):
        server = ScriptedServer(sse_response("id: 7\nevent: greet\ndata: hi\ndata: there\n\n"))
        patch_source(server)

        result = CliRunner().invoke(
            cli_module.cli,
            ["--config-file", str(config_path), "listen", STREAM_URL, "--retry", "10"],
        )

        assert result.exit_code == 0, result.output
        assert "event: greet\nid: 7\ndata: hi\ndata: there\n" in result.output
        assert len(server.requests) == 2
        assert server.requests[1].headers["last-event-id"] == "7"

    def test_json_output(self, config_path, patch_source):
        server = ScriptedServer(sse_response("id: 1\ndata: x\n\n"))
        patch_source(server)

        result = CliRunner().invoke(
            cli_module.cli,
            ["--config-file", str(config_path), "listen", STREAM_URL, "--retry", "10", "--json"],
        )

        assert result.exit_code == 0, result.output
        first = result.output.splitlines()[0]
        assert json.loads(first) == {"id": "1", "name": "", "data": "x"}

    def test_last_event_id_option_is_sent(self, config_path, patch_source):
        server = ScriptedServer(sse_response("data: x\n\n"))
        patch_source(server)

        CliRunner().invoke(
            cli_module.cli,
            ["--config-file", str(config_path), "listen", STREAM_URL,
             "--retry", "10", "--last-event-id", "abc"],
        )

        assert server.requests[0].headers["last-event-id"] == "abc"

    def test_uses_config_file_defaults(self, config_path, patch_source):
        config_path.write_bytes(tomli_w.dumps({"default": {"retry_interval_ms": 15}}).encode())
        captured = patch_source(ScriptedServer(sse_response("data: x\n\n")))

        result = CliRunner().invoke(cli_module.cli, ["--config-file", str(config_path), "listen", STREAM_URL])

        assert result.exit_code == 0, result.output
        assert captured["config"].retry_interval_ms == 15

    def test_numeric_last_event_id_from_config_set(self, config_path, patch_source):
        runner = CliRunner()
        result = runner.invoke(
            cli_module.cli,
            ["--config-file", str(config_path), "config", "set", "default.last_event_id", "42"],
        )
        assert result.exit_code == 0, result.output

        server = ScriptedServer(sse_response("data: x\n\n"))
        patch_source(server)
        result = runner.invoke(
            cli_module.cli, ["--config-file", str(config_path), "listen", STREAM_URL, "--retry", "10"]
        )

        assert result.exit_code == 0, result.output
        assert server.requests[0].headers["last-event-id"] == "42"

    def test_terminal_error_exits_non_zero(self, config_path, patch_source):
        server = ScriptedServer(sse_response("<html>", content_type="text/html"))
        patch_source(server)

        result = CliRunner().invoke(cli_module.cli, ["--config-file", str(config_path), "listen", STREAM_URL])

        assert result.exit_code == 1
        assert "content type" in result.output
        assert len(server.requests) == 1

    def test_invalid_url_exits_non_zero(self, config_path):
        result = CliRunner().invoke(cli_module.cli, ["--config-file", str(config_path), "listen", "ftp://nope"])
        assert result.exit_code == 1
        assert "Error:" in result.output
