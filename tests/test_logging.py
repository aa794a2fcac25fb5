"""Tests for structlog configuration helpers."""

from __future__ import annotations

import structlog

from promptbench.logging_config import bound_batch_context, setup_logging


class TestBoundBatchContext:
    def test_binds_and_resets(self):
        assert "batch_id" not in structlog.contextvars.get_contextvars()
        with bound_batch_context("b-1", variants=2):
            bound = structlog.contextvars.get_contextvars()
            assert bound["batch_id"] == "b-1"
            assert bound["variants"] == 2
        assert "batch_id" not in structlog.contextvars.get_contextvars()

    def test_nested_contexts_restore_outer(self):
        with bound_batch_context("outer"):
            with bound_batch_context("inner"):
                assert structlog.contextvars.get_contextvars()["batch_id"] == "inner"
            assert structlog.contextvars.get_contextvars()["batch_id"] == "outer"


class TestSetupLogging:
    def test_json_renderer(self):
        setup_logging("DEBUG", json_logs=True)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        structlog.reset_defaults()

    def test_console_renderer(self):
        setup_logging("INFO", json_logs=False)
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)
        structlog.reset_defaults()

    def test_reads_environment(self, monkeypatch):
        monkeypatch.setenv("JSON_LOGS", "true")
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        setup_logging()
        processors = structlog.get_config()["processors"]
        assert isinstance(processors[-1], structlog.processors.JSONRenderer)
        structlog.reset_defaults()
