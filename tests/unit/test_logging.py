"""
Unit Tests - Logging Configuration
"""
import logging

import pytest
import structlog
from structlog.contextvars import get_contextvars

from analytics_dw.config.logging import configure_logging, run_context


class TestRunContext:
    """Tests for run-scoped log context"""

    def test_binds_process_and_run_id(self):
        with run_context("sp_load_sales_data") as run_id:
            bound = get_contextvars()
            assert bound["process_name"] == "sp_load_sales_data"
            assert bound["run_id"] == run_id

        assert "process_name" not in get_contextvars()
        assert "run_id" not in get_contextvars()

    def test_each_run_gets_its_own_id(self):
        with run_context("sp_update_customer_ltv") as first:
            pass
        with run_context("sp_update_customer_ltv") as second:
            pass

        assert first != second

    def test_context_cleared_on_error(self):
        with pytest.raises(RuntimeError):
            with run_context("sp_generate_daily_aggregates"):
                raise RuntimeError("boom")

        assert "process_name" not in get_contextvars()


def test_configure_logging_sets_level():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        configure_logging("WARNING")
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
    finally:
        root.handlers[:] = handlers
        root.setLevel(level)
        structlog.reset_defaults()
