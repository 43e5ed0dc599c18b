"""
HTTP tests for the energy settlement endpoints.

Exercises the full lifecycle through the API: create, calculate, reset,
create credit notes and delete, plus authorization and tenant isolation.
"""

from decimal import Decimal

import pytest

from windpark_backend.app.models.energy_settlement import EnergySettlement
from windpark_backend.app.models.settlement_enums import DistributionMode, EnergySettlementStatus

BASE_URL = "/v1/energy/settlements"


def settlement_payload(park_id, **overrides):
    payload = {
        "park_id": park_id,
        "year": 2026,
        "month": 3,
        "net_operator_revenue_eur": "100000.00",
        "total_production_kwh": "500000.000",
        "eeg_production_kwh": "400000.000",
        "eeg_revenue_eur": "80000.00",
        "dv_production_kwh": "100000.000",
        "dv_revenue_eur": "20000.00",
    }
    payload.update(overrides)
    return payload


def calculation_payload(park):
    funds, turbines = park["funds"], park["turbines"]
    return {
        "items": [
            {
                "recipient_fund_id": funds[0].id,
                "turbine_id": turbines[0].id,
                "production_share_kwh": "300000.000",
                "revenue_share_eur": "60000.00",
            },
            {
                "recipient_fund_id": funds[1].id,
                "turbine_id": turbines[1].id,
                "production_share_kwh": "200000.000",
                "revenue_share_eur": "40000.00",
            },
        ],
        "calculation_details": {"mode": "PROPORTIONAL"},
    }


async def create_calculated(client, headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=headers)
    assert response.status_code == 201
    settlement_id = response.json()["id"]

    response = await client.post(
        f"{BASE_URL}/{settlement_id}/calculation", json=calculation_payload(park), headers=headers
    )
    assert response.status_code == 200
    return settlement_id


@pytest.mark.asyncio
async def test_create_settlement(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "DRAFT"
    assert data["period_label"] == "03/2026"
    assert data["net_operator_revenue_eur"] == "100000.00"
    assert data["distribution_mode"] == "SMOOTHED"
    assert data["items"] == []


@pytest.mark.asyncio
async def test_create_uses_park_defaults(client, manager_headers, park, db_session):
    park["park"].default_distribution_mode = DistributionMode.TOLERATED
    park["park"].default_tolerance_percent = Decimal("5")
    await db_session.commit()

    response = await client.post(
        BASE_URL, json=settlement_payload(park["park"].id, month=None), headers=manager_headers
    )

    assert response.status_code == 201
    data = response.json()
    assert data["distribution_mode"] == "TOLERATED"
    assert data["tolerance_percentage"] == "5.00"
    assert data["period_label"] == "2026"


@pytest.mark.asyncio
async def test_duplicate_period_conflicts(client, manager_headers, park):
    payload = settlement_payload(park["park"].id)
    await client.post(BASE_URL, json=payload, headers=manager_headers)

    response = await client.post(BASE_URL, json=payload, headers=manager_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_half_revenue_split_is_rejected(client, manager_headers, park):
    payload = settlement_payload(park["park"].id, dv_revenue_eur=None)

    response = await client.post(BASE_URL, json=payload, headers=manager_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_negative_revenue_is_rejected(client, manager_headers, park):
    payload = settlement_payload(park["park"].id, net_operator_revenue_eur="-1.00")

    response = await client.post(BASE_URL, json=payload, headers=manager_headers)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_viewer_cannot_create(client, viewer_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=viewer_headers)

    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_missing_token_is_rejected(client, park):
    response = await client.get(BASE_URL)

    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_foreign_park_is_not_found(client, manager_headers, foreign_park):
    response = await client.post(
        BASE_URL, json=settlement_payload(foreign_park["park"].id), headers=manager_headers
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_list_with_aggregates(client, manager_headers, viewer_headers, park):
    park_id = park["park"].id
    await client.post(BASE_URL, json=settlement_payload(park_id, month=3), headers=manager_headers)
    await client.post(
        BASE_URL,
        json=settlement_payload(
            park_id, month=4, net_operator_revenue_eur="50000.50", total_production_kwh="250000.000",
            eeg_revenue_eur=None, dv_revenue_eur=None, eeg_production_kwh=None, dv_production_kwh=None,
        ),
        headers=manager_headers,
    )

    response = await client.get(BASE_URL, params={"park_id": park_id, "year": 2026}, headers=viewer_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["total"] == 2
    assert [s["month"] for s in data["settlements"]] == [4, 3]
    assert data["aggregates"]["total_revenue_eur"] == "150000.50"
    assert data["aggregates"]["total_production_kwh"] == "750000.000"

    response = await client.get(BASE_URL, params={"month": 4}, headers=viewer_headers)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_list_filters_by_status(client, manager_headers, park):
    await create_calculated(client, manager_headers, park)
    await client.post(BASE_URL, json=settlement_payload(park["park"].id, month=4), headers=manager_headers)

    response = await client.get(BASE_URL, params={"status": "CALCULATED"}, headers=manager_headers)

    data = response.json()
    assert data["total"] == 1
    assert data["settlements"][0]["status"] == "CALCULATED"


@pytest.mark.asyncio
async def test_record_calculation(client, manager_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=manager_headers)

    data = response.json()
    assert data["status"] == "CALCULATED"
    assert data["calculation_details"] == {"mode": "PROPORTIONAL"}
    assert [item["revenue_share_eur"] for item in data["items"]] == ["60000.00", "40000.00"]
    assert all(item["invoice_id"] is None for item in data["items"])


@pytest.mark.asyncio
async def test_calculation_must_match_totals(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    payload = calculation_payload(park)
    payload["items"][1]["revenue_share_eur"] = "39999.00"
    response = await client.post(f"{BASE_URL}/{settlement_id}/calculation", json=payload, headers=manager_headers)

    assert response.status_code == 422
    errors = response.json()["details"]["errors"]
    assert errors[0]["loc"] == ["body", "items", "revenue_share_eur"]

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=manager_headers)
    assert response.json()["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_calculation_rejects_foreign_fund(client, manager_headers, park, foreign_park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    payload = calculation_payload(park)
    payload["items"][0]["recipient_fund_id"] = foreign_park["fund"].id
    response = await client.post(f"{BASE_URL}/{settlement_id}/calculation", json=payload, headers=manager_headers)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_calculated_settlement_is_not_editable(client, manager_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.patch(
        f"{BASE_URL}/{settlement_id}", json={"notes": "late correction"}, headers=manager_headers
    )

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_STATE_001"
    assert body["details"]["allowed"] == ["DRAFT"]


@pytest.mark.asyncio
async def test_reset_to_draft_then_edit(client, manager_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.post(f"{BASE_URL}/{settlement_id}/reset-draft", headers=manager_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "DRAFT"
    assert response.json()["calculation_details"] is None

    response = await client.patch(
        f"{BASE_URL}/{settlement_id}",
        json={
            "net_operator_revenue_eur": "100500.00",
            "eeg_revenue_eur": "80500.00",
            "notes": "corrected statement",
        },
        headers=manager_headers,
    )
    assert response.status_code == 200
    data = response.json()
    assert data["net_operator_revenue_eur"] == "100500.00"
    assert data["eeg_revenue_eur"] == "80500.00"
    assert data["notes"] == "corrected statement"


@pytest.mark.asyncio
async def test_reset_requires_calculated(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.post(f"{BASE_URL}/{settlement_id}/reset-draft", headers=manager_headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_update_rejects_half_split(client, manager_headers, park):
    payload = settlement_payload(
        park["park"].id, eeg_revenue_eur=None, dv_revenue_eur=None,
        eeg_production_kwh=None, dv_production_kwh=None,
    )
    response = await client.post(BASE_URL, json=payload, headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.patch(
        f"{BASE_URL}/{settlement_id}", json={"eeg_revenue_eur": "80000.00"}, headers=manager_headers
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_create_invoices(client, manager_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=manager_headers)

    assert response.status_code == 201
    data = response.json()
    summary = data["summary"]
    assert summary["invoice_count"] == 2
    assert summary["total_gross"] == "115200.00"
    assert summary["period"] == "03/2026"
    assert summary["park_name"] == "Windpark Nordfeld"

    first = data["invoices"][0]
    assert first["invoice_type"] == "CREDIT_NOTE"
    assert first["status"] == "DRAFT"
    assert first["invoice_number"].startswith("GS-")
    assert first["gross_amount"] == "69120.00"
    assert [item["tax_type"] for item in first["items"]] == ["STANDARD", "EXEMPT"]

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=manager_headers)
    settlement = response.json()
    assert settlement["status"] == "INVOICED"
    assert {item["invoice_id"] for item in settlement["items"]} == {inv["id"] for inv in data["invoices"]}


@pytest.mark.asyncio
async def test_create_invoices_twice_conflicts(client, manager_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)
    await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=manager_headers)

    response = await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=manager_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_create_invoices_requires_calculation(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=manager_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_viewer_cannot_create_invoices(client, manager_headers, viewer_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=viewer_headers)

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_delete_requires_admin(client, manager_headers, admin_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.delete(f"{BASE_URL}/{settlement_id}", headers=manager_headers)
    assert response.status_code == 403

    response = await client.delete(f"{BASE_URL}/{settlement_id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_delete_unlinks_periods(client, manager_headers, admin_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)
    response = await client.post(
        "/v1/admin/settlement-periods",
        json={"park_id": park["park"].id, "year": 2026, "month": 3, "linked_energy_settlement_id": settlement_id},
        headers=manager_headers,
    )
    period_id = response.json()["id"]

    response = await client.delete(f"{BASE_URL}/{settlement_id}", headers=admin_headers)
    assert response.status_code == 204

    response = await client.get(f"/v1/admin/settlement-periods/{period_id}", headers=manager_headers)
    assert response.json()["linked_energy_settlement_id"] is None


@pytest.mark.asyncio
async def test_invoiced_settlement_cannot_be_deleted(client, manager_headers, admin_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)
    await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=manager_headers)

    response = await client.delete(f"{BASE_URL}/{settlement_id}", headers=admin_headers)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_foreign_tenant_cannot_see_settlement(client, manager_headers, foreign_headers, park):
    settlement_id = await create_calculated(client, manager_headers, park)

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=foreign_headers)
    assert response.status_code == 404

    response = await client.post(f"{BASE_URL}/{settlement_id}/create-invoices", headers=foreign_headers)
    assert response.status_code == 404

    response = await client.get(BASE_URL, headers=foreign_headers)
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_split_must_add_up_to_net_revenue(client, manager_headers, park):
    payload = settlement_payload(park["park"].id, eeg_revenue_eur="50000.00")

    response = await client.post(BASE_URL, json=payload, headers=manager_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["error_code"] == "ERR_VALIDATION"
    assert body["details"]["errors"][0]["loc"] == ["body", "eeg_revenue_eur"]


@pytest.mark.asyncio
async def test_update_keeps_split_consistent(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.patch(
        f"{BASE_URL}/{settlement_id}", json={"net_operator_revenue_eur": "130000.00"}, headers=manager_headers
    )
    assert response.status_code == 422

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=manager_headers)
    assert response.json()["net_operator_revenue_eur"] == "100000.00"


@pytest.mark.asyncio
async def test_calculation_rejects_stored_inconsistent_split(client, manager_headers, park, db_session):
    settlement = EnergySettlement(
        tenant_id=park["park"].tenant_id,
        park_id=park["park"].id,
        year=2026,
        month=3,
        status=EnergySettlementStatus.DRAFT,
        net_operator_revenue_eur=Decimal("100000.00"),
        total_production_kwh=Decimal("500000.000"),
        eeg_revenue_eur=Decimal("50000.00"),
        dv_revenue_eur=Decimal("20000.00"),
        distribution_mode=DistributionMode.PROPORTIONAL,
    )
    db_session.add(settlement)
    await db_session.commit()

    response = await client.post(
        f"{BASE_URL}/{settlement.id}/calculation", json=calculation_payload(park), headers=manager_headers
    )

    assert response.status_code == 422
    response = await client.get(f"{BASE_URL}/{settlement.id}", headers=manager_headers)
    assert response.json()["status"] == "DRAFT"


@pytest.mark.asyncio
async def test_calculation_off_by_one_cent_is_rejected(client, manager_headers, park):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    payload = calculation_payload(park)
    payload["items"][1]["revenue_share_eur"] = "40000.01"
    response = await client.post(f"{BASE_URL}/{settlement_id}/calculation", json=payload, headers=manager_headers)

    assert response.status_code == 422
    errors = response.json()["details"]["errors"]
    assert errors[0]["loc"] == ["body", "items", "revenue_share_eur"]
    assert "100000.01" in errors[0]["msg"]


@pytest.mark.asyncio
@pytest.mark.parametrize("field", ["net_operator_revenue_eur", "total_production_kwh", "distribution_mode"])
async def test_required_fields_cannot_be_cleared(client, manager_headers, park, field):
    response = await client.post(BASE_URL, json=settlement_payload(park["park"].id), headers=manager_headers)
    settlement_id = response.json()["id"]

    response = await client.patch(f"{BASE_URL}/{settlement_id}", json={field: None}, headers=manager_headers)

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"

    response = await client.get(f"{BASE_URL}/{settlement_id}", headers=manager_headers)
    assert response.status_code == 200
    assert response.json()[field] is not None
