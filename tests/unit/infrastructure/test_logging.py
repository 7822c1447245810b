"""Unit tests for logging configuration."""

from __future__ import annotations

import io
import json

import structlog

from deployer.infrastructure.observability.logging import setup_logging


class TestSetupLogging:
    def test_renders_json_events(self) -> None:
        sink = io.StringIO()
        setup_logging("INFO", sink)
        structlog.get_logger("deployer.test").info("deploy_started", host="10.0.0.10")

        line = json.loads(sink.getvalue().splitlines()[-1])
        assert line["event"] == "deploy_started"
        assert line["host"] == "10.0.0.10"
        assert line["level"] == "info"
        assert "timestamp" in line

    def test_level_filters_debug(self) -> None:
        sink = io.StringIO()
        setup_logging("WARNING", sink)
        structlog.get_logger("deployer.test").info("probe_attempt_failed")
        assert sink.getvalue() == ""

    def test_bound_context_is_merged(self) -> None:
        sink = io.StringIO()
        setup_logging("DEBUG", sink)
        structlog.contextvars.bind_contextvars(run_id="r-1")
        try:
            structlog.get_logger("deployer.test").debug("stage_changed")
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
        assert json.loads(sink.getvalue().splitlines()[-1])["run_id"] == "r-1"
