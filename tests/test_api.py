"""API tests for sites, meters, readings and tariffs."""

from decimal import Decimal

from fastapi.testclient import TestClient


def _create_site(client: TestClient) -> tuple[int, int]:
    """Helper: create a supply authority and a site, return (authority_id, site_id)."""
    authority = client.post("/api/supply-authorities", json={"name": "Metro Power"})
    assert authority.status_code == 201
    authority_id = authority.json()["id"]

    site = client.post(
        "/api/sites",
        json={"name": "Riverside Centre", "supply_authority_id": authority_id},
    )
    assert site.status_code == 201
    return authority_id, site.json()["id"]


def _create_meter(client: TestClient, site_id: int, number: str, meter_type: str) -> int:
    response = client.post(
        "/api/meters",
        json={"site_id": site_id, "meter_number": number, "meter_type": meter_type},
    )
    assert response.status_code == 201
    return response.json()["id"]


def _create_block_tariff(client: TestClient, authority_id: int) -> dict:
    response = client.post(
        "/api/tariffs/",
        json={
            "supply_authority_id": authority_id,
            "name": "Business Block",
            "effective_from": "2024-01-01",
            "blocks": [
                {"block_number": 1, "kwh_from": "0", "kwh_to": "100", "energy_charge_cents": "100"},
                {"block_number": 2, "kwh_from": "100", "energy_charge_cents": "200"},
            ],
            "charges": [
                {"charge_type": "basic_monthly", "charge_amount": "50", "unit": "R/month"},
            ],
        },
    )
    assert response.status_code == 201
    return response.json()


class TestSites:
    """Site and supply authority endpoints."""

    def test_create_and_get_site(self, client: TestClient) -> None:
        authority_id, site_id = _create_site(client)
        response = client.get(f"/api/sites/{site_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Riverside Centre"
        assert data["supply_authority_id"] == authority_id

    def test_duplicate_supply_authority_rejected(self, client: TestClient) -> None:
        client.post("/api/supply-authorities", json={"name": "Dup"})
        response = client.post("/api/supply-authorities", json={"name": "Dup"})
        assert response.status_code == 400

    def test_site_not_found(self, client: TestClient) -> None:
        response = client.get("/api/sites/999")
        assert response.status_code == 404
        assert response.json()["detail"] == "Site not found"

    def test_update_and_deactivate_site(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        response = client.patch(f"/api/sites/{site_id}", json={"address": "2 River Road"})
        assert response.status_code == 200
        assert response.json()["address"] == "2 River Road"

        assert client.delete(f"/api/sites/{site_id}").status_code == 204
        assert client.get("/api/sites").json() == []


class TestMeters:
    """Meter, connection and hierarchy endpoints."""

    def test_duplicate_meter_number_rejected(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.post(
            "/api/meters",
            json={"site_id": site_id, "meter_number": "T1", "meter_type": "tenant_meter"},
        )
        assert response.status_code == 400

    def test_update_requires_a_field(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        meter_id = _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.patch(f"/api/meters/{meter_id}", json={})
        assert response.status_code == 422

    def test_hierarchy(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        grid = _create_meter(client, site_id, "GRID", "council_meter")
        t1 = _create_meter(client, site_id, "T1", "tenant_meter")
        t2 = _create_meter(client, site_id, "T2", "tenant_meter")
        for child in (t1, t2):
            response = client.post(
                "/api/meter-connections",
                json={"parent_meter_id": grid, "child_meter_id": child},
            )
            assert response.status_code == 201

        nodes = client.get(f"/api/sites/{site_id}/hierarchy").json()
        assert [n["meter_number"] for n in nodes] == ["GRID", "T1", "T2"]
        assert [n["indent_level"] for n in nodes] == [0, 1, 1]
        assert nodes[1]["parent_meter_number"] == "GRID"

    def test_cycle_rejected(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        a = _create_meter(client, site_id, "A", "bulk_meter")
        b = _create_meter(client, site_id, "B", "check_meter")
        client.post("/api/meter-connections", json={"parent_meter_id": a, "child_meter_id": b})
        response = client.post(
            "/api/meter-connections", json={"parent_meter_id": b, "child_meter_id": a}
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Connection would create a cycle"

    def test_self_connection_rejected(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        a = _create_meter(client, site_id, "A", "bulk_meter")
        response = client.post(
            "/api/meter-connections", json={"parent_meter_id": a, "child_meter_id": a}
        )
        assert response.status_code == 422

    def test_replace_hierarchy_from_layout(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        grid = _create_meter(client, site_id, "GRID", "council_meter")
        bulk = _create_meter(client, site_id, "BULK", "bulk_meter")
        t1 = _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.put(
            f"/api/sites/{site_id}/hierarchy",
            json={
                "entries": [
                    {"meter_id": grid, "indent_level": 0},
                    {"meter_id": bulk, "indent_level": 1},
                    {"meter_id": t1, "indent_level": 2},
                ]
            },
        )
        assert response.status_code == 200
        pairs = {(c["parent_meter_id"], c["child_meter_id"]) for c in response.json()}
        assert pairs == {(grid, bulk), (bulk, t1)}


class TestReadings:
    """Reading ingestion and history."""

    def test_bulk_upload_and_history(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        meter_id = _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.post(
            "/api/readings/bulk",
            json={
                "meter_id": meter_id,
                "readings": [
                    {
                        "reading_timestamp": "2024-01-01T00:30:00",
                        "kwh_value": "1.5",
                        "imported_fields": {"P1 (kWh)": "1.5", "S (kVA)": "4"},
                    },
                    {"reading_timestamp": "2024-01-01T01:00:00", "kwh_value": "2.0"},
                ],
            },
        )
        assert response.status_code == 201
        assert response.json() == {"created": 2}

        history = client.get(f"/api/readings/meter/{meter_id}/history").json()
        assert history["total"] == 2
        assert history["readings"][1]["reading_metadata"] == {
            "imported_fields": {"P1 (kWh)": 1.5, "S (kVA)": 4.0}
        }

        date_range = client.get(f"/api/readings/meter/{meter_id}/range").json()
        assert date_range["readings_count"] == 2
        assert date_range["earliest"].startswith("2024-01-01T00:30")

    def test_empty_upload_rejected(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        meter_id = _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.post("/api/readings/bulk", json={"meter_id": meter_id, "readings": []})
        assert response.status_code == 422

    def test_reading_for_unknown_meter(self, client: TestClient) -> None:
        response = client.post(
            "/api/readings/",
            json={"meter_id": 999, "reading_timestamp": "2024-01-01T00:30:00", "kwh_value": "1"},
        )
        assert response.status_code == 404


class TestTariffs:
    """Tariff CRUD and cost calculation."""

    def test_create_tariff_with_components(self, client: TestClient) -> None:
        authority_id, _ = _create_site(client)
        tariff = _create_block_tariff(client, authority_id)
        assert [b["block_number"] for b in tariff["blocks"]] == [1, 2]
        assert tariff["charges"][0]["charge_type"] == "basic_monthly"

    def test_invalid_block_range(self, client: TestClient) -> None:
        authority_id, _ = _create_site(client)
        response = client.post(
            "/api/tariffs/",
            json={
                "supply_authority_id": authority_id,
                "name": "Broken",
                "effective_from": "2024-01-01",
                "blocks": [
                    {"block_number": 1, "kwh_from": "100", "kwh_to": "50", "energy_charge_cents": "1"}
                ],
            },
        )
        assert response.status_code == 422

    def test_calculate_cost(self, client: TestClient) -> None:
        authority_id, site_id = _create_site(client)
        tariff = _create_block_tariff(client, authority_id)
        meter_id = _create_meter(client, site_id, "T1", "tenant_meter")

        response = client.post(
            "/api/tariffs/calculate-cost",
            json={
                "meter_id": meter_id,
                "tariff_structure_id": tariff["id"],
                "date_from": "2024-01-01T00:00:00",
                "date_to": "2024-01-31T23:59:59",
                "total_kwh": "150",
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["has_error"] is False
        assert Decimal(data["energy_cost"]) == Decimal("200")
        assert Decimal(data["fixed_charges"]) == Decimal("50")
        assert Decimal(data["total_cost"]) == Decimal("250")
        assert data["tariff_name"] == "Business Block"

    def test_calculate_cost_missing_tariff_is_structured_error(self, client: TestClient) -> None:
        _, site_id = _create_site(client)
        meter_id = _create_meter(client, site_id, "T1", "tenant_meter")
        response = client.post(
            "/api/tariffs/calculate-cost",
            json={
                "meter_id": meter_id,
                "tariff_structure_id": 999,
                "date_from": "2024-01-01T00:00:00",
                "date_to": "2024-01-31T23:59:59",
            },
        )
        assert response.status_code == 200
        data = response.json()
        assert data["has_error"] is True
        assert data["error_message"] == "Tariff structure not found"
        assert data["tariff_name"] == "Unknown"

    def test_deactivate_tariff(self, client: TestClient) -> None:
        authority_id, _ = _create_site(client)
        tariff = _create_block_tariff(client, authority_id)
        assert client.delete(f"/api/tariffs/{tariff['id']}").status_code == 204
        assert client.get("/api/tariffs/").json() == []


class TestTariffAssignments:
    """Batch tariff assignment."""

    def test_partial_failure_is_reported(self, client: TestClient) -> None:
        authority_id, site_id = _create_site(client)
        tariff = _create_block_tariff(client, authority_id)
        t1 = _create_meter(client, site_id, "T1", "tenant_meter")

        response = client.post(
            "/api/meters/tariff-assignments",
            json={
                "assignments": [
                    {"meter_id": t1, "tariff_structure_id": tariff["id"]},
                    {"meter_id": 999, "tariff_structure_id": tariff["id"]},
                ]
            },
        )
        assert response.status_code == 200
        outcome = response.json()
        assert outcome["succeeded"] == 1
        assert outcome["failed"] == 1
        assert "999" in outcome["errors"][0]

        meter = client.get(f"/api/meters/{t1}").json()
        assert meter["tariff_structure_id"] == tariff["id"]
        assert meter["assigned_tariff_name"] == "Business Block"

    def test_clear_assignments(self, client: TestClient) -> None:
        authority_id, site_id = _create_site(client)
        tariff = _create_block_tariff(client, authority_id)
        t1 = _create_meter(client, site_id, "T1", "tenant_meter")
        client.post(
            "/api/meters/tariff-assignments",
            json={"assignments": [{"meter_id": t1, "tariff_structure_id": tariff["id"]}]},
        )

        response = client.delete(f"/api/sites/{site_id}/tariff-assignments")
        assert response.json() == {"cleared": 1}
        assert client.get(f"/api/meters/{t1}").json()["tariff_structure_id"] is None
