"""Tests for site reconciliation."""

from datetime import datetime
from decimal import Decimal

import pytest
from fastapi import HTTPException

from app.models.enums import MeterAssignment, MeterType
from app.models.meter_reading import MeterReading
from app.schemas.reconciliation import MeterReconciliationResult, ReconciliationRequest
from app.services.reconciliation import (
    calculate_recovery_rate,
    run_reconciliation,
    save_reconciliation,
    summarize,
)
from conftest import add_meter, connect

JANUARY = {"date_from": "2024-01-01T00:00:00", "date_to": "2024-01-31T23:59:59"}


def _january(**kwargs) -> ReconciliationRequest:
    return ReconciliationRequest(
        date_from=datetime(2024, 1, 1), date_to=datetime(2024, 1, 31, 23, 59, 59), **kwargs
    )


def _read(db, meter, *values: str) -> None:
    """Helper: store half-hourly readings for a meter on 15 January."""
    for index, value in enumerate(values):
        db.add(
            MeterReading(
                meter_id=meter.id,
                reading_timestamp=datetime(2024, 1, 15, index // 2, 30 * (index % 2)),
                kwh_value=Decimal(value),
            )
        )
    db.commit()


def _result(assignment: MeterAssignment, kwh: str, cost: str = "0") -> MeterReconciliationResult:
    return MeterReconciliationResult(
        meter_id=1,
        meter_number="M",
        meter_type=MeterType.OTHER,
        assignment=assignment,
        direct_total_kwh=Decimal(kwh),
        direct_kwh_positive=max(Decimal(kwh), Decimal("0")),
        direct_kwh_negative=min(Decimal(kwh), Decimal("0")),
        direct_total_cost=Decimal(cost),
    )


class TestSummary:
    """Folding per-meter totals into site figures."""

    def test_supply_includes_solar(self) -> None:
        summary = summarize(
            [
                _result(MeterAssignment.GRID_SUPPLY, "1000"),
                _result(MeterAssignment.SOLAR_ENERGY, "-100"),
                _result(MeterAssignment.TENANT, "300"),
                _result(MeterAssignment.TENANT, "500"),
            ]
        )
        assert summary.grid_supply_total == Decimal("1000")
        assert summary.solar_total == Decimal("100")
        assert summary.total_supply == Decimal("1100")
        assert summary.tenant_total == Decimal("800")
        assert summary.discrepancy == Decimal("300")
        assert summary.recovery_rate.quantize(Decimal("0.01")) == Decimal("72.73")

    def test_negative_grid_reading_does_not_reduce_supply(self) -> None:
        summary = summarize(
            [
                _result(MeterAssignment.GRID_SUPPLY, "500"),
                _result(MeterAssignment.GRID_SUPPLY, "-50"),
            ]
        )
        assert summary.grid_supply_total == Decimal("500")
        assert summary.grid_negative_total == Decimal("-50")
        assert summary.total_supply == Decimal("500")

    def test_grid_export_offsets_solar(self) -> None:
        grid = _result(MeterAssignment.GRID_SUPPLY, "1000")
        grid.direct_kwh_positive = Decimal("1100")
        grid.direct_kwh_negative = Decimal("-100")
        summary = summarize(
            [
                grid,
                _result(MeterAssignment.SOLAR_ENERGY, "300"),
                _result(MeterAssignment.TENANT, "1200"),
            ]
        )
        assert summary.grid_supply_total == Decimal("1100")
        assert summary.other_total == Decimal("200")
        assert summary.total_supply == Decimal("1300")
        assert summary.discrepancy == Decimal("100")

    def test_export_beyond_solar_adds_nothing(self) -> None:
        grid = _result(MeterAssignment.GRID_SUPPLY, "0")
        grid.direct_kwh_positive = Decimal("400")
        grid.direct_kwh_negative = Decimal("-400")
        summary = summarize([grid, _result(MeterAssignment.SOLAR_ENERGY, "100")])
        assert summary.other_total == Decimal("-300")
        assert summary.total_supply == Decimal("400")

    def test_parent_cost_is_hierarchical_even_when_zero(self) -> None:
        parent = _result(MeterAssignment.GRID_SUPPLY, "900", "900")
        parent.has_children = True
        assert parent.total_cost == Decimal("0")
        parent.hierarchical_total_cost = Decimal("450")
        assert parent.total_cost == Decimal("450")

    def test_leaf_cost_is_direct(self) -> None:
        leaf = _result(MeterAssignment.TENANT, "10", "25")
        leaf.hierarchical_total_cost = Decimal("99")
        assert leaf.total_cost == Decimal("25")

    def test_parent_split_by_sign_of_rolled_up_total(self) -> None:
        parent = _result(MeterAssignment.GRID_SUPPLY, "5")
        parent.has_children = True
        parent.hierarchical_total_kwh = Decimal("-20")
        assert parent.kwh_split == (Decimal("0"), Decimal("-20"))

    def test_revenue_totals(self) -> None:
        summary = summarize(
            [
                _result(MeterAssignment.GRID_SUPPLY, "1000", "2000"),
                _result(MeterAssignment.TENANT, "200", "500"),
                _result(MeterAssignment.TENANT, "300", "700"),
            ],
            revenue_enabled=True,
        )
        assert summary.grid_supply_cost == Decimal("2000")
        assert summary.tenant_cost == Decimal("1200")
        assert summary.total_revenue == Decimal("1200")
        assert summary.avg_cost_per_kwh == Decimal("2.4")

    def test_revenue_left_zero_when_disabled(self) -> None:
        summary = summarize([_result(MeterAssignment.TENANT, "200", "500")])
        assert summary.tenant_cost == Decimal("0")

    def test_categories(self) -> None:
        summary = summarize(
            [_result(MeterAssignment.SOLAR_ENERGY, "1"), _result(MeterAssignment.CHECK, "1")]
        )
        assert summary.categories["solar"] == [1]
        assert summary.categories["check"] == [1]
        assert summary.categories["tenant"] == []

    @pytest.mark.parametrize(
        ("tenant", "supply", "expected"),
        [
            ("50", "100", "50"),
            ("1", "0", "0"),
            ("5000", "1", "1000"),
            ("-5000", "1", "-1000"),
        ],
    )
    def test_recovery_rate(self, tenant, supply, expected) -> None:
        assert calculate_recovery_rate(Decimal(tenant), Decimal(supply)) == Decimal(expected)


class TestRunReconciliation:
    """A pass over stored readings."""

    def test_flat_site(self, test_db, site) -> None:
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        solar = add_meter(test_db, site, "PV", MeterType.SOLAR_METER)
        t1 = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        t2 = add_meter(test_db, site, "T2", MeterType.TENANT_METER)
        _read(test_db, grid, "600", "400")
        _read(test_db, solar, "100")
        _read(test_db, t1, "300")
        _read(test_db, t2, "500")

        outcome = run_reconciliation(test_db, site.id, _january())

        summary = outcome.summary
        assert summary.grid_supply_total == Decimal("1000")
        assert summary.solar_total == Decimal("100")
        assert summary.total_supply == Decimal("1100")
        assert summary.tenant_total == Decimal("800")
        assert summary.categories["grid_supply"] == [grid.id]
        by_number = {m.meter_number: m for m in outcome.meters}
        assert by_number["GRID"].direct_readings_count == 2

    def test_hierarchical_totals(self, test_db, site) -> None:
        """Test a parent's total comes from its leaves with solar subtracted."""
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        solar = add_meter(test_db, site, "PV", MeterType.SOLAR_METER)
        t1 = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        t2 = add_meter(test_db, site, "T2", MeterType.TENANT_METER)
        for child in (solar, t1, t2):
            connect(test_db, grid, child)
        _read(test_db, grid, "1000")
        _read(test_db, solar, "100")
        _read(test_db, t1, "300")
        _read(test_db, t2, "500")

        outcome = run_reconciliation(test_db, site.id, _january())

        grid_result = next(m for m in outcome.meters if m.meter_id == grid.id)
        assert grid_result.has_children is True
        assert grid_result.direct_total_kwh == Decimal("1000")
        assert grid_result.hierarchical_total_kwh == Decimal("700")
        assert outcome.summary.grid_supply_total == Decimal("700")

    def test_grid_export_column_nets_against_solar(self, test_db, site) -> None:
        """Test selected import/export columns feed grid supply and solar offset."""
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        solar = add_meter(test_db, site, "PV", MeterType.SOLAR_METER)
        for hour, (imported, exported) in enumerate([(400, -50), (300, -30)]):
            test_db.add(
                MeterReading(
                    meter_id=grid.id,
                    reading_timestamp=datetime(2024, 1, 15, hour, 30),
                    kwh_value=Decimal(imported + exported),
                    reading_metadata={"imported_fields": {"Import": imported, "Export": exported}},
                )
            )
        test_db.commit()
        _read(test_db, solar, "200")

        outcome = run_reconciliation(
            test_db,
            site.id,
            _january(column_settings={"selected_columns": ["Import", "Export"]}),
        )

        grid_result = next(m for m in outcome.meters if m.meter_id == grid.id)
        assert grid_result.direct_kwh_positive == Decimal("700")
        assert grid_result.direct_kwh_negative == Decimal("-80")
        assert outcome.summary.grid_supply_total == Decimal("700")
        assert outcome.summary.other_total == Decimal("120")
        assert outcome.summary.total_supply == Decimal("820")

    def test_bulk_meter_stands_in_for_grid(self, test_db, site) -> None:
        bulk = add_meter(test_db, site, "BULK", MeterType.BULK_METER)
        tenant = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        _read(test_db, bulk, "900")
        _read(test_db, tenant, "850")

        outcome = run_reconciliation(test_db, site.id, _january())

        assert outcome.summary.grid_supply_total == Decimal("900")
        assert outcome.summary.bulk_total == Decimal("0")
        assert outcome.summary.discrepancy == Decimal("50")

    def test_explicit_assignment_overrides_type(self, test_db, site) -> None:
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        t1 = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        _read(test_db, grid, "100")
        _read(test_db, t1, "40")

        outcome = run_reconciliation(
            test_db, site.id, _january(meter_assignments={t1.id: MeterAssignment.CHECK})
        )

        assert outcome.summary.check_total == Decimal("40")
        assert outcome.summary.tenant_total == Decimal("0")

    def test_corrupt_readings_are_corrected(self, test_db, site) -> None:
        tenant = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        _read(test_db, tenant, "10", "99999", "30")

        outcome = run_reconciliation(test_db, site.id, _january())

        assert outcome.summary.tenant_total == Decimal("60")
        assert len(outcome.corrections) == 1
        assert outcome.corrections[0].meter_number == "T1"

    def test_revenue(self, test_db, site, block_tariff) -> None:
        """Test 150 kWh on the block tariff costs R250 for January."""
        add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        tenant = add_meter(test_db, site, "T1", MeterType.TENANT_METER, block_tariff)
        _read(test_db, tenant, "100", "50")

        outcome = run_reconciliation(test_db, site.id, _january(enable_revenue=True))

        tenant_result = next(m for m in outcome.meters if m.meter_id == tenant.id)
        assert tenant_result.tariff_name == "Business Block"
        assert tenant_result.direct_total_cost == Decimal("250")
        assert outcome.summary.tenant_cost == Decimal("250")
        assert outcome.summary.total_revenue == Decimal("250")

    def test_site_without_meters(self, test_db, site) -> None:
        with pytest.raises(HTTPException) as exc:
            run_reconciliation(test_db, site.id, _january())
        assert exc.value.status_code == 400


class TestSavedRuns:
    """Persisting and reading back runs."""

    def test_save_records_meter_results(self, test_db, site) -> None:
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        tenant = add_meter(test_db, site, "T1", MeterType.TENANT_METER)
        _read(test_db, grid, "100")
        _read(test_db, tenant, "80")

        run = save_reconciliation(test_db, site.id, _january(run_name="January"))

        assert run.run_name == "January"
        assert run.bulk_total == Decimal("100")
        assert run.tenant_total == Decimal("80")
        assert run.recovery_rate == Decimal("80")
        assert {r.meter_number for r in run.meter_results} == {"GRID", "T1"}

    def test_api_lifecycle(self, client, test_db, site) -> None:
        grid = add_meter(test_db, site, "GRID", MeterType.COUNCIL_METER)
        _read(test_db, grid, "100")

        preview = client.post(f"/api/sites/{site.id}/reconciliation/preview", json=JANUARY)
        assert preview.status_code == 200
        assert Decimal(preview.json()["summary"]["total_supply"]) == Decimal("100")

        created = client.post(
            f"/api/sites/{site.id}/reconciliation/runs", json={**JANUARY, "run_name": "Jan"}
        )
        assert created.status_code == 201
        run_id = created.json()["id"]
        assert len(created.json()["meter_results"]) == 1

        listed = client.get(f"/api/sites/{site.id}/reconciliation/runs").json()
        assert [r["id"] for r in listed] == [run_id]

        fetched = client.get(f"/api/reconciliation/runs/{run_id}")
        assert fetched.json()["run_name"] == "Jan"

        assert client.delete(f"/api/reconciliation/runs/{run_id}").status_code == 204
        assert client.get(f"/api/reconciliation/runs/{run_id}").status_code == 404

    def test_inverted_period_rejected(self, client, site) -> None:
        response = client.post(
            f"/api/sites/{site.id}/reconciliation/preview",
            json={"date_from": "2024-02-01T00:00:00", "date_to": "2024-01-01T00:00:00"},
        )
        assert response.status_code == 422
