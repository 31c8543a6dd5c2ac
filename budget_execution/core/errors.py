"""Error taxonomy surfaced by execution writes."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import HTTPException, status


class ExecutionError(HTTPException):
    """Base for errors that reject an execution request."""

    code = "EXECUTION_ERROR"
    status_code_default = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, **details: object) -> None:
        self.message = message
        self.details = details
        super().__init__(
            status_code=self.status_code_default,
            detail={"message": message, "code": self.code, **details},
        )


class BalanceMismatchError(ExecutionError):
    """Net Financial Assets (F) differ from Closing Balance (G) beyond tolerance."""

    code = "CUMULATIVE_BALANCE_MISMATCH"

    def __init__(
        self,
        *,
        net_financial_assets: Decimal,
        closing_balance: Decimal,
        difference: Decimal,
        tolerance: Decimal,
        facility_type: str | None = None,
        project_type: str | None = None,
    ) -> None:
        super().__init__(
            (
                f"Cumulative: F ({net_financial_assets}) != G ({closing_balance}). "
                f"Difference: {difference}"
            ),
            net_financial_assets=str(net_financial_assets),
            closing_balance=str(closing_balance),
            difference=str(difference),
            tolerance=str(tolerance),
            facility_type=facility_type,
            project_type=project_type,
        )
        self.net_financial_assets = net_financial_assets
        self.closing_balance = closing_balance
        self.difference = difference


class MissingRollupStructureError(ExecutionError):
    code = "INVALID_FORM_DATA"

    def __init__(self, missing: list[str]) -> None:
        super().__init__(
            "Form data is missing required rollups structure for balance validation.",
            missing=missing,
        )


class ExecutionNotFoundError(ExecutionError):
    code = "EXECUTION_NOT_FOUND"
    status_code_default = status.HTTP_404_NOT_FOUND

    def __init__(self, execution_id: UUID) -> None:
        super().__init__("Execution not found.", execution_id=str(execution_id))


class ExecutionConflictError(ExecutionError):
    code = "EXECUTION_ALREADY_EXISTS"
    status_code_default = status.HTTP_409_CONFLICT

    def __init__(self, message: str, *, code: str | None = None, **details: object) -> None:
        if code is not None:
            self.code = code
        super().__init__(message, **details)


class InvalidQuarterDataError(ExecutionError):
    code = "INVALID_QUARTER_DATA"
    status_code_default = status.HTTP_422_UNPROCESSABLE_ENTITY


class CascadeRecalculationError(Exception):
    """Failure while recalculating a subsequent quarter. Never leaves the cascade engine."""

    code = "CASCADE_RECALCULATION_FAILED"

    def __init__(self, quarter: str, reason: str) -> None:
        super().__init__(f"Recalculation of {quarter} failed: {reason}")
        self.quarter = quarter
        self.reason = reason
