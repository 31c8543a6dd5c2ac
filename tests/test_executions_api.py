from __future__ import annotations

from decimal import Decimal

from fastapi.testclient import TestClient

from budget_execution.api.routes.executions import get_activity_catalog
from budget_execution.services.activity_catalog import CatalogItem, StaticActivityCatalog

A_1 = "HIV_EXEC_HOSPITAL_A_1"
B_1 = "HIV_EXEC_HOSPITAL_B_B-01_1"
D_1 = "HIV_EXEC_HOSPITAL_D_1"
E_1 = "HIV_EXEC_HOSPITAL_E_1"
G_ACC = "HIV_EXEC_HOSPITAL_G_1"
G_PYA = "HIV_EXEC_HOSPITAL_G_G-01_1"


def _q1_activities(*, receipts: int = 1000, assets: int = 800, liabilities: int = 200) -> list[dict[str, object]]:
    return [
        {"code": A_1, "name": "Transfers from SPIU", "q1": receipts},
        {"code": B_1, "name": "Salaries", "q1": 700},
        {"code": D_1, "name": "Cash at bank", "q1": assets},
        {"code": E_1, "name": "Payables", "q1": liabilities},
        {"code": G_ACC, "name": "Accumulated Surplus/Deficit", "q1": 200},
        {"code": G_PYA, "name": "Prior Year Adjustment", "q1": 100},
    ]


def _create_payload(quarter: str = "Q1", activities: list[dict[str, object]] | None = None) -> dict[str, object]:
    return {
        "project_id": 1,
        "facility_id": 10,
        "reporting_period_id": 2026,
        "quarter": quarter,
        "project_type": "HIV",
        "facility_type": "hospital",
        "activities": activities if activities is not None else _q1_activities(),
    }


def _activity(document: dict[str, object], code: str) -> dict[str, object]:
    return next(item for item in document["activities"] if item["code"] == code)


def test_create_execution_runs_the_balance_pipeline(client: TestClient) -> None:
    response = client.post("/api/v1/executions", json=_create_payload())

    assert response.status_code == 201
    body = response.json()
    assert body["is_balanced"] is True
    assert body["execution"]["quarter"] == "Q1"
    assert body["execution"]["metadata"]["last_quarter_reported"] == "Q1"
    assert body["execution"]["validation_state"]["is_balanced"] is True
    assert body["balances"]["surplus"]["cumulative_balance"] == "300.00"
    assert body["balances"]["net_financial_assets"]["cumulative_balance"] == "600.00"
    assert body["balances"]["closing_balance"]["cumulative_balance"] == "600.00"
    assert body["rollups"]["by_section"]["G"]["total"] == "300.00"
    assert body["rollups"]["by_sub_section"]["B-01"]["total"] == "700.00"
    assert _activity(body, D_1)["section"] == "D"
    assert _activity(body, D_1)["cumulative_balance"] == "800.00"
    assert _activity(body, A_1)["q2"] is None
    assert body["cascade_impact"] == {
        "affected_quarters": [],
        "immediately_recalculated": [],
        "queued_for_recalculation": [],
        "status": "none",
    }
    assert body["quarter_sequence"]["previous"] is None
    assert body["previous_quarter_balances"]["exists"] is False


def test_create_rejects_imbalanced_statement(client: TestClient) -> None:
    response = client.post("/api/v1/executions", json=_create_payload(activities=_q1_activities(liabilities=100)))

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "CUMULATIVE_BALANCE_MISMATCH"
    assert Decimal(detail["net_financial_assets"]) == Decimal("700")
    assert Decimal(detail["closing_balance"]) == Decimal("600")
    assert Decimal(detail["difference"]) == Decimal("100")
    assert detail["facility_type"] == "hospital"


def test_duplicate_create_is_a_conflict(client: TestClient) -> None:
    first = client.post("/api/v1/executions", json=_create_payload())
    assert first.status_code == 201

    second = client.post("/api/v1/executions", json=_create_payload())

    assert second.status_code == 409
    detail = second.json()["detail"]
    assert detail["code"] == "EXECUTION_ALREADY_EXISTS"
    assert detail["execution_id"] == first.json()["execution"]["id"]


def test_create_requires_activities(client: TestClient) -> None:
    response = client.post("/api/v1/executions", json=_create_payload(activities=[]))

    assert response.status_code == 422


def test_duplicate_activity_codes_are_rejected(client: TestClient) -> None:
    activities = _q1_activities() + [{"code": A_1, "q1": 1}]

    response = client.post("/api/v1/executions", json=_create_payload(activities=activities))

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "INVALID_QUARTER_DATA"


def test_get_execution(client: TestClient) -> None:
    created = client.post("/api/v1/executions", json=_create_payload()).json()

    response = client.get(f"/api/v1/executions/{created['execution']['id']}")

    assert response.status_code == 200
    body = response.json()
    assert body["balances"] == created["balances"]
    assert body["rollups"] == created["rollups"]
    assert body["cascade_impact"]["status"] == "none"


def test_get_unknown_execution_is_not_found(client: TestClient) -> None:
    response = client.get("/api/v1/executions/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "EXECUTION_NOT_FOUND"


def test_update_merges_only_the_submitted_quarter(client: TestClient) -> None:
    created = client.post("/api/v1/executions", json=_create_payload()).json()
    execution_id = created["execution"]["id"]

    response = client.put(
        f"/api/v1/executions/{execution_id}",
        json={
            "quarter": "Q1",
            "version": created["execution"]["version"],
            "activities": [
                {"code": D_1, "q1": 900},
                {"code": E_1, "q1": 300, "q2": 12345},
            ],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["is_balanced"] is True
    assert _activity(body, D_1)["q1"] == "900.00"
    assert _activity(body, D_1)["name"] == "Cash at bank"
    assert _activity(body, E_1)["q1"] == "300.00"
    assert _activity(body, E_1)["q2"] is None
    assert _activity(body, A_1)["q1"] == "1000.00"
    assert body["execution"]["version"] > created["execution"]["version"]
    assert "last_reported_at" in body["execution"]["metadata"]


def test_rejected_update_leaves_stored_entry_untouched(client: TestClient) -> None:
    created = client.post("/api/v1/executions", json=_create_payload()).json()
    execution_id = created["execution"]["id"]

    response = client.put(
        f"/api/v1/executions/{execution_id}",
        json={"activities": [{"code": E_1, "q1": 100}]},
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "CUMULATIVE_BALANCE_MISMATCH"

    stored = client.get(f"/api/v1/executions/{execution_id}").json()
    assert _activity(stored, E_1)["q1"] == "200.00"
    assert stored["execution"]["version"] == created["execution"]["version"]
    assert stored["balances"] == created["balances"]


def test_update_with_stale_version_is_a_conflict(client: TestClient) -> None:
    created = client.post("/api/v1/executions", json=_create_payload()).json()
    execution_id = created["execution"]["id"]

    response = client.put(
        f"/api/v1/executions/{execution_id}",
        json={"version": created["execution"]["version"] + 5, "activities": [{"code": D_1, "q1": 800}]},
    )

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "CONCURRENT_MODIFICATION"


def test_update_cannot_report_a_later_quarter(client: TestClient) -> None:
    created = client.post("/api/v1/executions", json=_create_payload()).json()

    response = client.put(
        f"/api/v1/executions/{created['execution']['id']}",
        json={"quarter": "Q3", "activities": [{"code": D_1, "q3": 800}]},
    )

    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "INVALID_QUARTER_DATA"


def test_previous_quarter_balances_are_reported(client: TestClient) -> None:
    client.post("/api/v1/executions", json=_create_payload())
    q2_activities = _q1_activities()
    for item in q2_activities:
        if item["code"] in (D_1, E_1):
            item["q2"] = item["q1"]

    response = client.post("/api/v1/executions", json=_create_payload("Q2", q2_activities))

    assert response.status_code == 201
    body = response.json()
    assert body["quarter_sequence"]["previous"] == "Q1"
    previous = body["previous_quarter_balances"]
    assert previous["exists"] is True
    assert previous["quarter"] == "Q1"
    assert previous["closing_balances"]["D"] == {D_1: "800.00"}
    assert previous["totals"]["net_financial_assets"] == "600.00"


def test_cross_year_q4_is_used_as_previous_for_q1(client: TestClient) -> None:
    prior_year = _create_payload("Q4")
    prior_year["reporting_period_id"] = 2025
    assert client.post("/api/v1/executions", json=prior_year).status_code == 201

    payload = _create_payload()
    payload["previous_reporting_period_id"] = 2025
    response = client.post("/api/v1/executions", json=payload)

    body = response.json()
    assert body["quarter_sequence"]["previous"] == "Q4"
    assert body["quarter_sequence"]["is_cross_fiscal_year_rollover"] is True
    assert body["previous_quarter_balances"]["quarter"] == "Q4"


def test_catalog_supplies_missing_names_and_order(client: TestClient) -> None:
    catalog = StaticActivityCatalog(
        {
            ("HIV", "hospital"): [
                CatalogItem(code=G_ACC, name="Accumulated Surplus/Deficit", display_order=1),
                CatalogItem(code=A_1, name="Other Incomes", display_order=2),
            ]
        }
    )
    client.app.dependency_overrides[get_activity_catalog] = lambda: catalog
    activities = _q1_activities()
    for item in activities:
        item.pop("name")

    response = client.post("/api/v1/executions", json=_create_payload(activities=activities))

    assert response.status_code == 201
    body = response.json()
    assert body["is_balanced"] is True
    assert [item["code"] for item in body["activities"][:2]] == [G_ACC, A_1]
    assert _activity(body, A_1)["name"] == "Other Incomes"
    assert _activity(body, G_ACC)["cumulative_balance"] == "200.00"
    assert _activity(body, D_1)["name"] is None
