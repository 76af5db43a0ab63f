"""Tests for setup_logging renderer selection and context binding."""

import json
import logging

import pytest
import structlog

from riskbot.logging import bound_context, get_logger, setup_logging


@pytest.mark.usefixtures("restore_logging")
class TestSetupLogging:
    def test_json_lines_carry_bound_context(self, monkeypatch, capsys) -> None:
        monkeypatch.setenv("LOG_FORMAT", "json")
        setup_logging("DEBUG")

        with bound_context(portfolio_id=7, job="check_drawdown"):
            get_logger("riskbot.test_json").warning("drawdown_warning", drawdown="-15.20")

        line = capsys.readouterr().err.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "drawdown_warning"
        assert record["level"] == "warning"
        assert record["logger"] == "riskbot.test_json"
        assert record["portfolio_id"] == 7
        assert record["drawdown"] == "-15.20"
        assert "timestamp" in record
        assert logging.getLogger().level == logging.DEBUG

    def test_console_renderer_by_default(self, monkeypatch, capsys) -> None:
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        setup_logging("warning")

        logger = get_logger("riskbot.test_console")
        logger.info("hidden_event")
        logger.error("trading_halted", portfolio_id=3)

        err = capsys.readouterr().err
        assert "trading_halted" in err
        assert "hidden_event" not in err
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_unknown_level_falls_back_to_info(self, monkeypatch) -> None:
        monkeypatch.delenv("LOG_FORMAT", raising=False)
        setup_logging("chatty")
        assert logging.getLogger().level == logging.INFO
