from __future__ import annotations

import json
import logging
import sys
import uuid
from decimal import Decimal

from budget_execution.core.errors import BalanceMismatchError
from budget_execution.core.logging import LogContext, StructuredFormatter, get_logger
from budget_execution.models.entities import Quarter


def _record(message: str, **extra: object) -> logging.LogRecord:
    record = logging.LogRecord("budget_execution.test", logging.INFO, __file__, 1, message, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_emits_json_with_bound_context() -> None:
    execution_id = uuid.uuid4()

    with LogContext.bind(execution_id=execution_id, quarter=Quarter.Q2, facility_id=None):
        line = StructuredFormatter().format(_record("rollups_computed", total=Decimal("12.50")))

    payload = json.loads(line)
    assert payload["message"] == "rollups_computed"
    assert payload["level"] == "INFO"
    assert payload["execution_id"] == str(execution_id)
    assert payload["quarter"] == "Q2"
    assert "facility_id" not in payload
    assert payload["total"] == "12.50"


def test_context_is_restored_after_bind() -> None:
    with LogContext.bind(project_id=7):
        with LogContext.bind(project_id=8):
            assert LogContext.get_all()["project_id"] == "8"
        assert LogContext.get_all()["project_id"] == "7"

    assert "project_id" not in LogContext.get_all()


def test_formatter_includes_error_code() -> None:
    try:
        raise BalanceMismatchError(
            net_financial_assets=Decimal("700"),
            closing_balance=Decimal("600"),
            difference=Decimal("100"),
            tolerance=Decimal("0.01"),
        )
    except BalanceMismatchError:
        record = logging.LogRecord(
            "budget_execution.test", logging.ERROR, __file__, 1, "write_rejected", (), sys.exc_info()
        )

    payload = json.loads(StructuredFormatter().format(record))
    assert payload["exc_type"] == "BalanceMismatchError"
    assert payload["exc_code"] == "CUMULATIVE_BALANCE_MISMATCH"
    assert "traceback" in payload


def test_loggers_share_the_package_namespace() -> None:
    assert get_logger("services.cascade").name == "budget_execution.services.cascade"
