"""Meter distribution tree helpers.

The tree is represented as a connections map ``{parent_id: [child_id, ...]}``.
Only leaf meters contribute to a hierarchical total, so a parent that has
already been aggregated is never counted twice. Solar meters feed energy into
the network and contribute with an inverted sign.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Protocol, TypeVar

ZERO = Decimal("0")

ConnectionsMap = dict[int, list[int]]


class Connection(Protocol):
    parent_meter_id: int
    child_meter_id: int


class NumberedMeter(Protocol):
    id: int
    meter_number: str


M = TypeVar("M", bound=NumberedMeter)


def build_connections_map(connections: Iterable[Connection]) -> ConnectionsMap:
    """Group child ids under their parent id."""
    connections_map: ConnectionsMap = {}
    for conn in connections:
        connections_map.setdefault(conn.parent_meter_id, []).append(conn.child_meter_id)
    return connections_map


def get_leaf_meter_sum(
    meter_id: int,
    values: Mapping[int, Decimal],
    connections_map: ConnectionsMap,
    solar_meter_ids: set[int],
    visited: frozenset[int] = frozenset(),
) -> Decimal:
    """Sum the leaf values under ``meter_id`` (the meter itself if it is a leaf).

    Missing leaves count as zero. A meter already on the current path counts
    as zero, so a malformed cyclic map still terminates.
    """
    if meter_id in visited:
        return ZERO
    path = visited | {meter_id}

    children = connections_map.get(meter_id, [])
    if not children:
        value = values.get(meter_id, ZERO)
        return -value if meter_id in solar_meter_ids else value

    return sum(
        (
            get_leaf_meter_sum(child_id, values, connections_map, solar_meter_ids, path)
            for child_id in children
        ),
        ZERO,
    )


def get_leaf_column_totals(
    meter_id: int,
    column_totals: Mapping[int, Mapping[str, Decimal]],
    connections_map: ConnectionsMap,
    visited: frozenset[int] = frozenset(),
) -> dict[str, Decimal]:
    """Sum per-column totals over the leaves under ``meter_id``."""
    if meter_id in visited:
        return {}
    path = visited | {meter_id}

    children = connections_map.get(meter_id, [])
    if not children:
        return dict(column_totals.get(meter_id, {}))

    return aggregate_column_totals(
        get_leaf_column_totals(child_id, column_totals, connections_map, path)
        for child_id in children
    )


def get_leaf_column_max_values(
    meter_id: int,
    column_max_values: Mapping[int, Mapping[str, Decimal]],
    connections_map: ConnectionsMap,
    visited: frozenset[int] = frozenset(),
) -> dict[str, Decimal]:
    """Take the per-column maximum over the leaves under ``meter_id``."""
    if meter_id in visited:
        return {}
    path = visited | {meter_id}

    children = connections_map.get(meter_id, [])
    if not children:
        return dict(column_max_values.get(meter_id, {}))

    return aggregate_column_max_values(
        get_leaf_column_max_values(child_id, column_max_values, connections_map, path)
        for child_id in children
    )


def calculate_hierarchical_totals(
    meter_ids: Iterable[int],
    values: Mapping[int, Decimal],
    connections_map: ConnectionsMap,
    solar_meter_ids: set[int],
) -> dict[int, Decimal]:
    """Hierarchical total for every meter that has children."""
    totals: dict[int, Decimal] = {}
    for meter_id in meter_ids:
        if connections_map.get(meter_id):
            totals[meter_id] = get_leaf_meter_sum(
                meter_id, values, connections_map, solar_meter_ids
            )
    return totals


def aggregate_column_totals(
    child_totals: Iterable[Mapping[str, Decimal]],
) -> dict[str, Decimal]:
    """Add column totals key by key."""
    aggregated: dict[str, Decimal] = {}
    for totals in child_totals:
        for key, value in totals.items():
            aggregated[key] = aggregated.get(key, ZERO) + value
    return aggregated


def aggregate_column_max_values(
    child_max_values: Iterable[Mapping[str, Decimal]],
) -> dict[str, Decimal]:
    """Max of maxes, key by key."""
    aggregated: dict[str, Decimal] = {}
    for max_values in child_max_values:
        for key, value in max_values.items():
            aggregated[key] = max(aggregated.get(key, ZERO), value)
    return aggregated


def get_hierarchy_depth(
    meter_id: int,
    connections_map: ConnectionsMap,
    visited: frozenset[int] = frozenset(),
) -> int:
    """Levels below a meter; leaves are 0."""
    if meter_id in visited:
        return 0
    children = connections_map.get(meter_id, [])
    if not children:
        return 0
    path = visited | {meter_id}
    return 1 + max(get_hierarchy_depth(c, connections_map, path) for c in children)


def sort_parent_meters_by_depth(
    parent_meters: Sequence[M],
    connections_map: ConnectionsMap,
) -> list[M]:
    """Order parents closest-to-leaves first for bottom-up processing.

    Ties break on meter number, descending.
    """
    by_number = sorted(parent_meters, key=lambda m: m.meter_number, reverse=True)
    return sorted(by_number, key=lambda m: get_hierarchy_depth(m.id, connections_map))


def get_all_descendants(
    meter_id: int,
    connections_map: ConnectionsMap,
    visited: frozenset[int] = frozenset(),
) -> list[int]:
    """Every meter below ``meter_id``, depth-first."""
    if meter_id in visited:
        return []
    path = visited | {meter_id}
    descendants: list[int] = []
    for child_id in connections_map.get(meter_id, []):
        descendants.append(child_id)
        descendants.extend(get_all_descendants(child_id, connections_map, path))
    return descendants


def get_leaf_meter_ids(meter_ids: Iterable[int], connections_map: ConnectionsMap) -> list[int]:
    """Meters with no children."""
    return [m for m in meter_ids if not connections_map.get(m)]


def get_parent_meter_ids(connections_map: ConnectionsMap) -> list[int]:
    """Meters with at least one child."""
    return [m for m, children in connections_map.items() if children]


def find_parent(meter_id: int, connections_map: ConnectionsMap) -> int | None:
    """The meter feeding ``meter_id``, if any."""
    for parent_id, children in connections_map.items():
        if meter_id in children:
            return parent_id
    return None


def calculate_indent_level(meter_id: int, connections_map: ConnectionsMap) -> int:
    """Number of ancestors above a meter."""
    level = 0
    seen = {meter_id}
    parent = find_parent(meter_id, connections_map)
    while parent is not None and parent not in seen:
        level += 1
        seen.add(parent)
        parent = find_parent(parent, connections_map)
    return level


def derive_connections_from_indents(
    meter_ids: Sequence[int],
    indent_levels: Mapping[int, int],
) -> list[tuple[int, int]]:
    """Rebuild (parent, child) pairs from an indented, ordered list.

    A meter's parent is the nearest preceding meter one level shallower.
    """
    connections: list[tuple[int, int]] = []
    for index, meter_id in enumerate(meter_ids):
        level = indent_levels.get(meter_id, 0)
        if level <= 0:
            continue
        for prev_id in reversed(meter_ids[:index]):
            if indent_levels.get(prev_id, 0) == level - 1:
                connections.append((prev_id, meter_id))
                break
    return connections


def build_parent_info_map(
    connections_map: ConnectionsMap,
    meters: Iterable[NumberedMeter],
) -> dict[int, str]:
    """child id -> parent meter number."""
    numbers = {m.id: m.meter_number for m in meters}
    info: dict[int, str] = {}
    for parent_id, children in connections_map.items():
        if parent_id in numbers:
            for child_id in children:
                info[child_id] = numbers[parent_id]
    return info


def is_meter_visible(
    meter_id: int,
    connections_map: ConnectionsMap,
    expanded: set[int],
) -> bool:
    """A meter is visible when every ancestor is expanded."""
    parent = find_parent(meter_id, connections_map)
    seen = {meter_id}
    while parent is not None and parent not in seen:
        if parent not in expanded:
            return False
        seen.add(parent)
        parent = find_parent(parent, connections_map)
    return True
