"""
Unit Tests - Warehouse Workflow
"""
import pytest

from workflows.warehouse_etl import (
    check_scd_integrity,
    daily_warehouse_etl,
    load_sales,
    refresh_lifetime_values,
    stage_sales_files,
    update_aggregates,
)


@pytest.mark.parametrize(
    "step",
    [stage_sales_files, load_sales, update_aggregates, refresh_lifetime_values, check_scd_integrity],
    ids=lambda step: step.name,
)
def test_steps_run_once(step):
    """A failed step goes straight to the alert instead of rerunning"""
    assert step.retries == 0


def test_flow_runs_once():
    assert not daily_warehouse_etl.retries
