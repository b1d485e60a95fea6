"""Tests for meter hierarchy helpers."""

from dataclasses import dataclass
from decimal import Decimal

from app.services.hierarchy import (
    aggregate_column_max_values,
    aggregate_column_totals,
    build_connections_map,
    build_parent_info_map,
    calculate_hierarchical_totals,
    calculate_indent_level,
    derive_connections_from_indents,
    get_all_descendants,
    get_hierarchy_depth,
    get_leaf_column_max_values,
    get_leaf_column_totals,
    get_leaf_meter_ids,
    get_leaf_meter_sum,
    get_parent_meter_ids,
    is_meter_visible,
    sort_parent_meters_by_depth,
)


@dataclass
class _Conn:
    parent_meter_id: int
    child_meter_id: int


@dataclass
class _Meter:
    id: int
    meter_number: str


# 1 (grid) -> 2 (bulk) -> 4, 5 (tenants)
#          -> 3 (solar)
CONNECTIONS = {1: [2, 3], 2: [4, 5]}
VALUES = {1: Decimal("999"), 2: Decimal("888"), 3: Decimal("30"), 4: Decimal("100"), 5: Decimal("50")}


class TestLeafMeterSum:
    """Recursive leaf aggregation."""

    def test_sums_leaves_only(self) -> None:
        """Test a parent's own reading is ignored in favour of its leaves."""
        assert get_leaf_meter_sum(2, VALUES, CONNECTIONS, set()) == Decimal("150")

    def test_solar_leaf_is_subtracted(self) -> None:
        """Test a solar meter under a parent reduces the parent's hierarchical total."""
        assert get_leaf_meter_sum(1, VALUES, CONNECTIONS, {3}) == Decimal("120")

    def test_leaf_returns_own_value(self) -> None:
        assert get_leaf_meter_sum(4, VALUES, CONNECTIONS, set()) == Decimal("100")

    def test_missing_child_counts_zero(self) -> None:
        assert get_leaf_meter_sum(1, {4: Decimal("10")}, CONNECTIONS, set()) == Decimal("10")

    def test_cycle_terminates(self) -> None:
        cyclic = {1: [2], 2: [1, 3]}
        assert get_leaf_meter_sum(1, {3: Decimal("7")}, cyclic, set()) == Decimal("7")

    def test_hierarchical_totals_for_parents(self) -> None:
        totals = calculate_hierarchical_totals([1, 2, 3, 4, 5], VALUES, CONNECTIONS, {3})
        assert totals == {1: Decimal("120"), 2: Decimal("150")}


class TestColumnAggregation:
    """Per-column totals and maxima over leaves."""

    COLUMNS = {
        3: {"P1 (kWh)": Decimal("30")},
        4: {"P1 (kWh)": Decimal("100"), "S (kVA)": Decimal("12")},
        5: {"P1 (kWh)": Decimal("50"), "S (kVA)": Decimal("20")},
    }

    def test_leaf_column_totals(self) -> None:
        totals = get_leaf_column_totals(1, self.COLUMNS, CONNECTIONS)
        assert totals == {"P1 (kWh)": Decimal("180"), "S (kVA)": Decimal("32")}

    def test_leaf_column_max_values(self) -> None:
        maxima = get_leaf_column_max_values(2, self.COLUMNS, CONNECTIONS)
        assert maxima == {"P1 (kWh)": Decimal("100"), "S (kVA)": Decimal("20")}

    def test_aggregate_helpers(self) -> None:
        parts = [{"a": Decimal("1")}, {"a": Decimal("4"), "b": Decimal("2")}]
        assert aggregate_column_totals(parts) == {"a": Decimal("5"), "b": Decimal("2")}
        assert aggregate_column_max_values(parts) == {"a": Decimal("4"), "b": Decimal("2")}


class TestTreeShape:
    """Depth, ordering and traversal helpers."""

    def test_build_connections_map(self) -> None:
        conns = [_Conn(1, 2), _Conn(1, 3), _Conn(2, 4)]
        assert build_connections_map(conns) == {1: [2, 3], 2: [4]}

    def test_depth(self) -> None:
        assert get_hierarchy_depth(1, CONNECTIONS) == 2
        assert get_hierarchy_depth(2, CONNECTIONS) == 1
        assert get_hierarchy_depth(4, CONNECTIONS) == 0

    def test_sort_parents_bottom_up(self) -> None:
        """Test shallower parents come first, ties broken by meter number descending."""
        meters = [_Meter(1, "GRID"), _Meter(2, "DB-A"), _Meter(6, "DB-B")]
        conns = {1: [2, 6], 2: [4], 6: [7]}
        ordered = sort_parent_meters_by_depth(meters, conns)
        assert [m.meter_number for m in ordered] == ["DB-B", "DB-A", "GRID"]

    def test_descendants(self) -> None:
        assert get_all_descendants(1, CONNECTIONS) == [2, 4, 5, 3]

    def test_leaf_and_parent_ids(self) -> None:
        assert get_leaf_meter_ids([1, 2, 3, 4, 5], CONNECTIONS) == [3, 4, 5]
        assert get_parent_meter_ids(CONNECTIONS) == [1, 2]

    def test_indent_level(self) -> None:
        assert calculate_indent_level(1, CONNECTIONS) == 0
        assert calculate_indent_level(3, CONNECTIONS) == 1
        assert calculate_indent_level(5, CONNECTIONS) == 2

    def test_parent_info_map(self) -> None:
        meters = [_Meter(1, "GRID"), _Meter(2, "BULK")]
        info = build_parent_info_map(CONNECTIONS, meters)
        assert info == {2: "GRID", 3: "GRID", 4: "BULK", 5: "BULK"}

    def test_visibility_requires_expanded_ancestors(self) -> None:
        assert is_meter_visible(4, CONNECTIONS, {1, 2})
        assert not is_meter_visible(4, CONNECTIONS, {1})
        assert is_meter_visible(1, CONNECTIONS, set())


class TestDeriveConnectionsFromIndents:
    """Rebuilding links from an indented listing."""

    def test_nested_listing(self) -> None:
        order = [1, 2, 4, 5, 3]
        levels = {1: 0, 2: 1, 4: 2, 5: 2, 3: 1}
        assert derive_connections_from_indents(order, levels) == [
            (1, 2),
            (2, 4),
            (2, 5),
            (1, 3),
        ]

    def test_flat_listing_has_no_links(self) -> None:
        assert derive_connections_from_indents([1, 2], {1: 0, 2: 0}) == []
