"""Enum definitions shared by models and schemas."""

from enum import Enum


class MeterType(str, Enum):
    """Physical role of a meter in the site's distribution network."""

    COUNCIL_METER = "council_meter"
    BULK_METER = "bulk_meter"
    CHECK_METER = "check_meter"
    SOLAR_METER = "solar_meter"
    TENANT_METER = "tenant_meter"
    OTHER = "other"


class MeterAssignment(str, Enum):
    """Role a meter plays within one reconciliation pass."""

    GRID_SUPPLY = "grid_supply"
    SOLAR_ENERGY = "solar_energy"
    BULK = "bulk"
    CHECK = "check"
    TENANT = "tenant"
    DISTRIBUTION = "distribution"
    OTHER = "other"
    UNASSIGNED = "unassigned"


class ChargeType(str, Enum):
    """Flat charge kinds attached to a tariff structure."""

    BASIC_MONTHLY = "basic_monthly"
    BASIC_CHARGE = "basic_charge"
    ENERGY_BOTH_SEASONS = "energy_both_seasons"
    ENERGY_LOW_SEASON = "energy_low_season"
    ENERGY_HIGH_SEASON = "energy_high_season"
    DEMAND_LOW_SEASON = "demand_low_season"
    DEMAND_HIGH_SEASON = "demand_high_season"
    DEMAND_CHARGE = "demand_charge"


class TouSeason(str, Enum):
    """Season a time-of-use period applies to."""

    HIGH_DEMAND = "high_demand"
    LOW_DEMAND = "low_demand"
    ALL_YEAR = "all_year"


class DayType(str, Enum):
    """Day class a time-of-use period applies to."""

    WEEKDAY = "weekday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"
    WEEKEND = "weekend"
    ALL_DAYS = "all_days"


class Season(str, Enum):
    """Billing season used for charting and averages."""

    WINTER = "winter"
    SUMMER = "summer"


class VarianceStatus(str, Enum):
    """Classification of a calculated vs billed comparison."""

    MATCH = "match"
    PARTIAL = "partial"
    MISMATCH = "mismatch"
    UNKNOWN = "unknown"


class ExtractionStatus(str, Enum):
    """Processing state of an uploaded document."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
