"""Company payroll configuration and manual item overrides.

``PayrollConfig`` is resolved once per operation from three layers, later
layers winning:

1. built-in defaults
2. legacy ``company.settings`` keys
3. explicit ``company.payroll_config`` (nested sections or flat admin keys)
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from mypayroll.calculators.types import GroupingType
from mypayroll.errors import InputInvalid

logger = logging.getLogger(__name__)


class FeatureToggles(BaseModel):
    """Feature switches."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    auto_ot_from_clockin: bool = True
    auto_ph_pay: bool = True
    auto_claims_linking: bool = True
    unpaid_leave_deduction: bool = True
    salary_carry_forward: bool = True
    flexible_commissions: bool = True
    flexible_allowances: bool = True
    indoor_sales_logic: bool = False
    ytd_pcb_calculation: bool = True
    require_approval: bool = False
    ot_requires_approval: bool = False
    variance_threshold: Decimal = Field(default=Decimal("5"), ge=0)


class RateSettings(BaseModel):
    """Rates and multipliers."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    ot_multiplier: Decimal = Field(default=Decimal("1.0"), ge=0)
    ph_multiplier: Decimal = Field(default=Decimal("1.0"), ge=0)
    indoor_sales_basic: Decimal = Field(default=Decimal("4000"), ge=0)
    indoor_sales_commission_rate: Decimal = Field(default=Decimal("6"), ge=0)
    standard_work_hours: Decimal = Field(default=Decimal("8"), gt=0)
    standard_work_days: int | None = Field(default=22, gt=0)
    part_time_hourly_rate: Decimal = Field(default=Decimal("8.72"), ge=0)
    part_time_ph_multiplier: Decimal = Field(default=Decimal("2.0"), ge=0)
    outstation_per_day: Decimal = Field(default=Decimal("100"), ge=0)
    outstation_min_distance_km: Decimal = Field(default=Decimal("180"), ge=0)


class PeriodSettings(BaseModel):
    """How a payroll month maps to dates."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    type: Literal["calendar_month", "mid_month"] = "calendar_month"
    start_day: int = Field(default=1, ge=1, le=31)
    end_day: int = Field(default=0, ge=0, le=31)
    payment_day: int = Field(default=5, ge=1, le=31)
    payment_month_offset: int = Field(default=1, ge=0, le=12)


class StatutorySettings(BaseModel):
    """Which schemes apply and which earnings form the statutory base."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    epf_enabled: bool = True
    socso_enabled: bool = True
    eis_enabled: bool = True
    pcb_enabled: bool = True
    statutory_on_ot: bool = False
    statutory_on_ph_pay: bool = False
    statutory_on_allowance: bool = False
    statutory_on_incentive: bool = False
    statutory_on_commission: bool = True


class PayrollConfig(BaseModel):
    """Effective payroll configuration for one company."""

    model_config = ConfigDict(frozen=True)

    features: FeatureToggles = Field(default_factory=FeatureToggles)
    rates: RateSettings = Field(default_factory=RateSettings)
    period: PeriodSettings = Field(default_factory=PeriodSettings)
    statutory: StatutorySettings = Field(default_factory=StatutorySettings)
    grouping: GroupingType = GroupingType.DEPARTMENT

    @property
    def is_outlet_grouped(self) -> bool:
        return self.grouping == GroupingType.OUTLET


SECTIONS = ("features", "rates", "period", "statutory")

# Flat keys accepted in legacy settings and in the admin config form.
FLAT_KEYS: dict[str, tuple[str, str]] = {
    "indoor_sales_basic": ("rates", "indoor_sales_basic"),
    "indoor_sales_commission_rate": ("rates", "indoor_sales_commission_rate"),
    "work_hours_per_day": ("rates", "standard_work_hours"),
    "work_days_per_month": ("rates", "standard_work_days"),
    "part_time_hourly_rate": ("rates", "part_time_hourly_rate"),
    "part_time_ph_multiplier": ("rates", "part_time_ph_multiplier"),
    "outstation_per_day": ("rates", "outstation_per_day"),
    "outstation_min_distance_km": ("rates", "outstation_min_distance_km"),
    "statutory_on_ot": ("statutory", "statutory_on_ot"),
    "statutory_on_ph_pay": ("statutory", "statutory_on_ph_pay"),
    "statutory_on_allowance": ("statutory", "statutory_on_allowance"),
    "statutory_on_incentive": ("statutory", "statutory_on_incentive"),
    "statutory_on_commission": ("statutory", "statutory_on_commission"),
    "ot_requires_approval": ("features", "ot_requires_approval"),
    "require_approval": ("features", "require_approval"),
    "variance_threshold": ("features", "variance_threshold"),
}


def _apply_layer(merged: dict[str, dict[str, Any]], layer: dict[str, Any] | None) -> None:
    if not layer:
        return
    for key, value in layer.items():
        if key in SECTIONS and isinstance(value, dict):
            merged[key].update(value)
        elif key in FLAT_KEYS and value is not None:
            section, field_name = FLAT_KEYS[key]
            merged[section][field_name] = value
        elif key == "grouping" and value is not None:
            merged["grouping"] = value
        else:
            logger.debug("Ignoring unknown payroll config key %r", key)


def load_payroll_config(
    legacy_settings: dict[str, Any] | None,
    explicit_config: dict[str, Any] | None,
    grouping_type: str | None = None,
) -> PayrollConfig:
    """Merge defaults, legacy settings and explicit config into a PayrollConfig.

    Raises InputInvalid if any merged value has the wrong type or range.
    """
    merged: dict[str, Any] = {section: {} for section in SECTIONS}
    if grouping_type:
        merged["grouping"] = grouping_type
    _apply_layer(merged, legacy_settings)
    _apply_layer(merged, explicit_config)
    try:
        return PayrollConfig.model_validate(merged)
    except ValidationError as exc:
        raise InputInvalid(f"Invalid payroll configuration: {exc}") from exc


def config_for_company(company: Any) -> PayrollConfig:
    """PayrollConfig for a Company row."""
    return load_payroll_config(company.settings, company.payroll_config, company.grouping_type)


# ===== Manual overrides =====


class ItemOverrides(BaseModel):
    """Manual edits to a pay item.

    Only fields the caller actually supplied are applied, so an explicit 0
    replaces the computed value while an omitted field leaves it alone.
    """

    model_config = ConfigDict(extra="forbid")

    basic_salary: Decimal | None = Field(default=None, ge=0)
    wages: Decimal | None = Field(default=None, ge=0)
    fixed_allowance: Decimal | None = Field(default=None, ge=0)
    flexible_allowance: Decimal | None = Field(default=None, ge=0)
    ot_hours: Decimal | None = Field(default=None, ge=0)
    ot_amount: Decimal | None = Field(default=None, ge=0)
    ph_days_worked: Decimal | None = Field(default=None, ge=0)
    ph_pay: Decimal | None = Field(default=None, ge=0)
    commission_amount: Decimal | None = Field(default=None, ge=0)
    incentive_amount: Decimal | None = Field(default=None, ge=0)
    trade_commission_amount: Decimal | None = Field(default=None, ge=0)
    outstation_amount: Decimal | None = Field(default=None, ge=0)
    bonus: Decimal | None = Field(default=None, ge=0)
    claims_amount: Decimal | None = Field(default=None, ge=0)
    unpaid_leave_deduction: Decimal | None = Field(default=None, ge=0)
    short_hours_deduction: Decimal | None = Field(default=None, ge=0)
    absent_day_deduction: Decimal | None = Field(default=None, ge=0)
    days_not_worked: Decimal | None = Field(default=None, ge=0)
    advance_deduction: Decimal | None = Field(default=None, ge=0)
    other_deductions: Decimal | None = Field(default=None, ge=0)
    epf_employee: Decimal | None = Field(default=None, ge=0)
    socso_employee: Decimal | None = Field(default=None, ge=0)
    pcb: Decimal | None = Field(default=None, ge=0)
    deduction_remarks: str | None = None
    notes: str | None = None

    @classmethod
    def parse(cls, data: dict[str, Any] | ItemOverrides) -> ItemOverrides:
        """Validate caller input, mapping validation errors to InputInvalid."""
        if isinstance(data, ItemOverrides):
            return data
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InputInvalid(f"Invalid item overrides: {exc}") from exc

    def provided(self) -> dict[str, Any]:
        """Fields the caller supplied, including explicit zeros."""
        return {name: getattr(self, name) for name in sorted(self.model_fields_set)}

    def has(self, name: str) -> bool:
        return name in self.model_fields_set and getattr(self, name) is not None

    def value(self, name: str, computed: Decimal) -> Decimal:
        """Override value when supplied, else the computed one."""
        if self.has(name):
            return getattr(self, name)
        return computed
