from __future__ import annotations

import logging
from decimal import Decimal

import pytest

from budget_execution.models.entities import Section
from budget_execution.services.cumulative_balance import (
    apply_cumulative_balances,
    cumulative_balance,
    is_surplus_deficit_of_period,
)
from budget_execution.services.execution_types import Activity


def _d(value: str | int | None) -> Decimal | None:
    return Decimal(str(value)) if value is not None else None


def test_flow_section_sums_quarters_with_missing_as_zero() -> None:
    result = cumulative_balance(_d(100), _d(200), None, _d(0), Section.RECEIPTS, None, "HIV_EXEC_HOSPITAL_A_1")

    assert result == Decimal("300")


def test_flow_section_with_no_data_is_zero() -> None:
    assert cumulative_balance(None, None, None, None, "B", None) == Decimal("0")


def test_stock_section_takes_latest_reported_quarter() -> None:
    result = cumulative_balance(_d(500), None, _d(300), None, Section.FINANCIAL_ASSETS, None, "HIV_EXEC_HOSPITAL_D_1")

    assert result == Decimal("300")


def test_stock_section_explicit_zero_stops_the_scan() -> None:
    result = cumulative_balance(_d(500), _d(400), _d(0), None, Section.FINANCIAL_LIABILITIES, None)

    assert result == Decimal("0")


def test_stock_section_without_data_has_no_cumulative_value() -> None:
    assert cumulative_balance(None, None, None, None, Section.FINANCIAL_ASSETS, None) is None


@pytest.mark.parametrize(
    "q2,q3,q4",
    [
        (1000, 1000, 1000),
        (1500, None, 2000),
    ],
)
def test_accumulated_surplus_keeps_q1_value(q2: int | None, q3: int | None, q4: int | None) -> None:
    result = cumulative_balance(
        _d(1000),
        _d(q2),
        _d(q3),
        _d(q4),
        Section.CLOSING_BALANCE,
        None,
        "HIV_EXEC_HOSPITAL_G_1",
        "Accumulated Surplus/Deficit",
    )

    assert result == Decimal("1000")


def test_accumulated_surplus_without_q1_is_zero() -> None:
    result = cumulative_balance(
        None, _d(400), None, None, Section.CLOSING_BALANCE, None, "HIV_EXEC_HOSPITAL_G_1", "Accumulated Surplus/Deficit"
    )

    assert result == Decimal("0")


def test_prior_year_adjustment_is_a_flow() -> None:
    result = cumulative_balance(
        _d(50), _d(25), None, None, Section.CLOSING_BALANCE, "G-01", "HIV_EXEC_HOSPITAL_G_G-01_1", "Prior Year Adjustment"
    )

    assert result == Decimal("75")


def test_other_section_g_items_are_flows() -> None:
    result = cumulative_balance(_d(10), _d(20), _d(30), _d(40), Section.CLOSING_BALANCE, None, "X", "Other movement")

    assert result == Decimal("100")


def test_hyphenated_sub_section_aggregates_as_flow() -> None:
    # Effective section is the sub-section, which is neither a flow nor a stock letter.
    result = cumulative_balance(_d(500), _d(300), None, None, Section.FINANCIAL_ASSETS, "D-01")

    assert result == Decimal("800")


def test_unclassified_defaults_to_flow() -> None:
    assert cumulative_balance(_d(1), _d(2), _d(3), None, None, None) == Decimal("6")


def test_surplus_of_period_detection() -> None:
    assert is_surplus_deficit_of_period("Surplus/Deficit of the Period")
    assert not is_surplus_deficit_of_period("Accumulated Surplus/Deficit of the period")
    assert not is_surplus_deficit_of_period("Prior Year Adjustment")
    assert not is_surplus_deficit_of_period(None)


def test_apply_cumulative_balances_classifies_and_logs_unknown_codes(caplog: pytest.LogCaptureFixture) -> None:
    activities = {
        "HIV_EXEC_HOSPITAL_A_1": Activity(code="HIV_EXEC_HOSPITAL_A_1", q1=_d(100), q2=_d(50)),
        "HIV_EXEC_HOSPITAL_E_1": Activity(code="HIV_EXEC_HOSPITAL_E_1", q1=_d(70), q2=_d(20)),
        "LEGACY_LINE": Activity(code="LEGACY_LINE", q1=_d(5)),
    }

    with caplog.at_level(logging.WARNING, logger="budget_execution"):
        apply_cumulative_balances(activities)

    assert activities["HIV_EXEC_HOSPITAL_A_1"].section is Section.RECEIPTS
    assert activities["HIV_EXEC_HOSPITAL_A_1"].cumulative_balance == Decimal("150")
    assert activities["HIV_EXEC_HOSPITAL_E_1"].section is Section.FINANCIAL_LIABILITIES
    assert activities["HIV_EXEC_HOSPITAL_E_1"].cumulative_balance == Decimal("20")
    assert activities["LEGACY_LINE"].section is None
    assert activities["LEGACY_LINE"].cumulative_balance == Decimal("5")
    assert any(record.getMessage() == "activity_unclassified" for record in caplog.records)
