"""Tests for the output formatting system.

Covers format resolution, colour disabling, the stdout/stderr split,
quiet and verbose modes, the payload renderers used by ``rpcache call``
and the cache disposition line it prints.
"""

from __future__ import annotations

import json

import pytest

from rpcache import output as output_module
from rpcache.models import CacheStatus, RpcResponse
from rpcache.output import (
    OutputFormat,
    OutputManager,
    _should_disable_color,
    get_output,
    reset_output,
    set_output,
)


# ------------------------------------------------------------------ #
# Fixtures
# ------------------------------------------------------------------ #


@pytest.fixture()
def non_tty(monkeypatch):
    """Patch stdout.isatty() to return False."""
    monkeypatch.setattr("rpcache.output._is_tty", lambda: False)


@pytest.fixture()
def tty(monkeypatch):
    """Patch stdout.isatty() to return True."""
    monkeypatch.setattr("rpcache.output._is_tty", lambda: True)


# ------------------------------------------------------------------ #
# Format resolution and colour
# ------------------------------------------------------------------ #


class TestOutputFormatResolution:
    def test_auto_resolves_to_plain_when_not_tty(self, non_tty):
        assert OutputManager().format == OutputFormat.PLAIN

    def test_auto_resolves_to_rich_when_tty(self, tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        assert OutputManager().format == OutputFormat.RICH

    def test_auto_resolves_to_plain_when_no_color(self, tty):
        assert OutputManager(no_color=True).format == OutputFormat.PLAIN

    def test_explicit_json_stays_json(self, tty):
        assert OutputManager(format=OutputFormat.JSON).format == OutputFormat.JSON


class TestColorDisabling:
    def test_no_color_env_disables_color(self, monkeypatch):
        monkeypatch.setenv("NO_COLOR", "")
        assert _should_disable_color() is True

    def test_term_dumb_disables_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "dumb")
        assert _should_disable_color() is True

    def test_normal_term_keeps_color(self, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.setenv("TERM", "xterm-256color")
        assert _should_disable_color() is False


# ------------------------------------------------------------------ #
# stdout / stderr discipline
# ------------------------------------------------------------------ #


class TestStreams:
    def test_payload_goes_to_stdout(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"message": "Hello"})
        captured = capfd.readouterr()
        assert json.loads(captured.out) == {"message": "Hello"}
        assert captured.err == ""

    def test_info_goes_to_stderr(self, capfd, non_tty):
        OutputManager(no_color=True).info("cache: HIT, age: 1")
        captured = capfd.readouterr()
        assert captured.out == ""
        assert "cache: HIT, age: 1" in captured.err

    def test_error_prefix(self, capfd, non_tty):
        OutputManager(no_color=True).error("upstream down")
        assert capfd.readouterr().err.strip() == "Error: upstream down"


class TestQuietMode:
    def test_quiet_suppresses_info_and_success(self, capfd, non_tty):
        out = OutputManager(no_color=True, quiet=True)
        out.info("hidden")
        out.success("hidden")
        assert capfd.readouterr().err == ""

    def test_quiet_keeps_errors_and_data(self, capfd, non_tty):
        out = OutputManager(format=OutputFormat.PLAIN, no_color=True, quiet=True)
        out.error("shown")
        out.format_response("payload")
        captured = capfd.readouterr()
        assert "shown" in captured.err
        assert captured.out.strip() == "payload"


class TestVerboseMode:
    def test_debug_hidden_by_default(self, capfd, non_tty):
        OutputManager(no_color=True).debug("Cache hit: svc/Get/abc")
        assert capfd.readouterr().err == ""

    def test_debug_shown_with_verbose(self, capfd, non_tty):
        out = OutputManager(no_color=True, verbose=True)
        out.debug("Cache hit: svc/Get/abc")
        assert capfd.readouterr().err.strip() == "[debug] Cache hit: svc/Get/abc"


# ------------------------------------------------------------------ #
# Renderers
# ------------------------------------------------------------------ #


class TestFormats:
    def test_json_string_is_reparsed(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response('{"a":1}')
        assert capfd.readouterr().out == '{\n  "a": 1\n}\n'

    def test_json_keeps_unicode(self, capfd, non_tty):
        OutputManager(format=OutputFormat.JSON).format_response({"name": "Zoë"})
        assert "Zoë" in capfd.readouterr().out

    def test_plain_dict_as_key_value(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response({"backend": "memory", "size": 2})
        assert capfd.readouterr().out.splitlines() == ["backend\tmemory", "size\t2"]

    def test_plain_list_of_dicts_as_rows(self, capfd, non_tty):
        OutputManager(format=OutputFormat.PLAIN).format_response([{"a": 1, "b": 2}])
        assert capfd.readouterr().out.strip() == "1\t2"

    def test_rich_dict_produces_output(self, capfd, non_tty):
        OutputManager(format=OutputFormat.RICH, no_color=True).format_response({"message": "hi"})
        assert "message" in capfd.readouterr().out


class TestUseFormat:
    def test_switches_payload_format(self, capfd, non_tty):
        out = OutputManager(format=OutputFormat.PLAIN)
        out.use_format("json")
        assert out.format == OutputFormat.JSON
        out.format_response({"a": 1})
        assert json.loads(capfd.readouterr().out) == {"a": 1}

    def test_auto_resolves_against_terminal(self, non_tty):
        out = OutputManager(format=OutputFormat.JSON)
        out.use_format(OutputFormat.AUTO)
        assert out.format == OutputFormat.PLAIN

    def test_unknown_format_rejected(self):
        with pytest.raises(ValueError):
            OutputManager().use_format("yaml")


class TestReportCache:
    def test_hit_line(self, capfd, non_tty):
        response = RpcResponse(payload={}).tagged(CacheStatus.HIT, 3)
        OutputManager(no_color=True).report_cache(response)
        captured = capfd.readouterr()
        assert captured.out == ""
        assert captured.err.strip() == "cache: HIT, age: 3"

    def test_untagged_response_prints_nothing(self, capfd, non_tty):
        OutputManager(no_color=True).report_cache(RpcResponse(payload={}))
        assert capfd.readouterr().err == ""

    def test_quiet_suppresses_line(self, capfd, non_tty):
        response = RpcResponse(payload={}).tagged(CacheStatus.MISS, 0)
        OutputManager(no_color=True, quiet=True).report_cache(response)
        assert capfd.readouterr().err == ""

    def test_coloured_line_keeps_text(self, capfd, non_tty, monkeypatch):
        monkeypatch.delenv("NO_COLOR", raising=False)
        monkeypatch.delenv("TERM", raising=False)
        response = RpcResponse(payload={}).tagged(CacheStatus.MISS, 0)
        OutputManager().report_cache(response)
        assert "cache: MISS, age: 0" in capfd.readouterr().err


# ------------------------------------------------------------------ #
# Global instance
# ------------------------------------------------------------------ #


class TestGlobalInstance:
    def test_get_output_creates_default(self):
        reset_output()
        assert isinstance(get_output(), OutputManager)

    def test_set_output_overrides(self):
        custom = OutputManager(format=OutputFormat.JSON)
        set_output(custom)
        assert get_output() is custom

    def test_reset_output_clears(self):
        set_output(OutputManager(format=OutputFormat.JSON))
        reset_output()
        assert output_module._output is None

    def test_convenience_functions_delegate(self, capfd, non_tty):
        set_output(OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True))
        output_module.info("info")
        output_module.debug("debug")
        output_module.format_response("data")
        captured = capfd.readouterr()
        assert captured.out.strip() == "data"
        assert "info" in captured.err
        assert "[debug] debug" in captured.err
