"""Quarterly execution endpoints."""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from budget_execution.db.dependencies import get_db_session
from budget_execution.models.entities import Quarter
from budget_execution.services.activity_catalog import ActivityCatalog, StaticActivityCatalog
from budget_execution.services.execution_service import (
    ActivityInput,
    ExecutionCreateData,
    ExecutionService,
    ExecutionUpdateData,
)

router = APIRouter(tags=["executions"])


class ActivityPayload(BaseModel):
    code: str = Field(min_length=1, max_length=128)
    name: str | None = Field(default=None, max_length=255)
    q1: Decimal | None = None
    q2: Decimal | None = None
    q3: Decimal | None = None
    q4: Decimal | None = None
    comment: str | None = Field(default=None, max_length=2000)


class ExecutionCreatePayload(BaseModel):
    project_id: int
    facility_id: int
    reporting_period_id: int
    quarter: Quarter
    project_type: str = Field(min_length=1, max_length=32)
    facility_type: str = Field(min_length=1, max_length=64)
    activities: list[ActivityPayload] = Field(min_length=1)
    vat_receivables: dict[str, dict[str, Decimal | None]] | None = None
    previous_reporting_period_id: int | None = None


class ExecutionUpdatePayload(BaseModel):
    activities: list[ActivityPayload] = Field(min_length=1)
    quarter: Quarter | None = None
    vat_receivables: dict[str, dict[str, Decimal | None]] | None = None
    version: int | None = Field(default=None, ge=1)


def get_activity_catalog() -> ActivityCatalog:
    return StaticActivityCatalog()


def _execution_service(db: Session, catalog: ActivityCatalog) -> ExecutionService:
    return ExecutionService(db, catalog=catalog)


def _activity_inputs(payloads: list[ActivityPayload]) -> list[ActivityInput]:
    return [
        ActivityInput(
            code=item.code,
            name=item.name,
            q1=item.q1,
            q2=item.q2,
            q3=item.q3,
            q4=item.q4,
            comment=item.comment,
        )
        for item in payloads
    ]


def _vat_payload(value: dict[str, dict[str, Decimal | None]] | None) -> dict[str, dict[str, object]] | None:
    if value is None:
        return None
    return {
        category: {key: str(amount) if amount is not None else None for key, amount in data.items()}
        for category, data in value.items()
    }


@router.post("/executions", status_code=status.HTTP_201_CREATED)
def create_execution(
    payload: ExecutionCreatePayload,
    db: Session = Depends(get_db_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
) -> dict[str, object]:
    service = _execution_service(db, catalog)
    outcome = service.create_execution(
        data=ExecutionCreateData(
            project_id=payload.project_id,
            facility_id=payload.facility_id,
            reporting_period_id=payload.reporting_period_id,
            quarter=payload.quarter,
            project_type=payload.project_type,
            facility_type=payload.facility_type,
            activities=_activity_inputs(payload.activities),
            vat_receivables=_vat_payload(payload.vat_receivables),
            previous_reporting_period_id=payload.previous_reporting_period_id,
        )
    )
    return service.build_document(outcome)


@router.get("/executions/{execution_id}")
def get_execution(
    execution_id: UUID,
    db: Session = Depends(get_db_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
) -> dict[str, object]:
    service = _execution_service(db, catalog)
    return service.build_document(service.get_execution(execution_id))


@router.put("/executions/{execution_id}")
def update_execution(
    execution_id: UUID,
    payload: ExecutionUpdatePayload,
    db: Session = Depends(get_db_session),
    catalog: ActivityCatalog = Depends(get_activity_catalog),
) -> dict[str, object]:
    service = _execution_service(db, catalog)
    outcome = service.update_execution(
        execution_id=execution_id,
        data=ExecutionUpdateData(
            activities=_activity_inputs(payload.activities),
            quarter=payload.quarter,
            vat_receivables=_vat_payload(payload.vat_receivables),
            expected_version=payload.version,
        ),
    )
    return service.build_document(outcome)
