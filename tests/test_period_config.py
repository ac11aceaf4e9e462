"""Tests for payroll periods and company configuration."""

from datetime import date
from decimal import Decimal

import pytest

from mypayroll.calculators.period import (
    compute_period,
    previous_month,
    validate_month_year,
    working_days,
)
from mypayroll.errors import InputInvalid
from mypayroll.payroll_config import (
    ItemOverrides,
    PayrollConfig,
    PeriodSettings,
    load_payroll_config,
)


class TestPeriod:
    """Period dates and labels."""

    def test_calendar_month(self):
        """1st to last day, paid on the 5th of the next month."""
        period = compute_period(PeriodSettings(), 1, 2026)

        assert period.start == date(2026, 1, 1)
        assert period.end == date(2026, 1, 31)
        assert period.label == "January 2026"
        assert period.payment_date == date(2026, 2, 5)

    def test_december_pays_next_year(self):
        """Payment date rolls into January."""
        period = compute_period(PeriodSettings(), 12, 2026)

        assert period.end == date(2026, 12, 31)
        assert period.payment_date == date(2027, 1, 5)

    def test_mid_month(self):
        """15th of the previous month to the 14th."""
        period = compute_period(PeriodSettings(type="mid_month"), 1, 2026)

        assert period.start == date(2025, 12, 15)
        assert period.end == date(2026, 1, 14)
        assert period.label == "December 15 - January 14, 2026"

    def test_february_end_is_clamped(self):
        """A payment day past month end is clamped."""
        period = compute_period(PeriodSettings(payment_day=31), 1, 2026)

        assert period.payment_date == date(2026, 2, 28)

    @pytest.mark.parametrize("month,year", [(0, 2026), (13, 2026), (1, 1999), (None, 2026)])
    def test_invalid_month_year(self, month, year):
        """Out-of-range values are rejected."""
        with pytest.raises(InputInvalid):
            validate_month_year(month, year)

    def test_previous_month(self):
        assert previous_month(1, 2026) == (12, 2025)
        assert previous_month(7, 2026) == (6, 2026)


class TestWorkingDays:
    """Configured or counted working days."""

    def test_configured_days(self):
        """Default config uses 22 days."""
        period = compute_period(PeriodSettings(), 2, 2026)

        assert working_days(PayrollConfig(), period) == 22

    def test_counted_weekdays(self):
        """Without a configured value the period's weekdays are counted."""
        config = load_payroll_config(None, {"rates": {"standard_work_days": None}})
        period = compute_period(PeriodSettings(), 2, 2026)

        assert working_days(config, period) == 20


class TestPayrollConfig:
    """Layered configuration."""

    def test_defaults(self):
        """Built-in defaults apply with no company settings."""
        config = load_payroll_config(None, None)

        assert config.features.auto_ot_from_clockin is True
        assert config.features.require_approval is False
        assert config.rates.indoor_sales_basic == Decimal("4000")
        assert config.period.type == "calendar_month"
        assert config.is_outlet_grouped is False

    def test_explicit_config_wins_over_legacy(self):
        """Later layers override earlier ones."""
        config = load_payroll_config(
            {"indoor_sales_basic": "3500", "work_days_per_month": 26},
            {"rates": {"indoor_sales_basic": "4500"}},
        )

        assert config.rates.indoor_sales_basic == Decimal("4500")
        assert config.rates.standard_work_days == 26

    def test_flat_admin_keys(self):
        """Flat keys map onto their sections."""
        config = load_payroll_config(None, {"require_approval": True, "statutory_on_ot": True})

        assert config.features.require_approval is True
        assert config.statutory.statutory_on_ot is True

    def test_grouping(self):
        """The company's grouping type is carried."""
        assert load_payroll_config(None, None, "outlet").is_outlet_grouped is True

    def test_unknown_keys_ignored(self):
        """Unrecognized keys do not fail the load."""
        config = load_payroll_config({"theme": "dark"}, None)

        assert config == PayrollConfig()

    def test_invalid_value_rejected(self):
        """Wrong types surface as InputInvalid."""
        with pytest.raises(InputInvalid):
            load_payroll_config(None, {"rates": {"standard_work_hours": "eight"}})

    def test_negative_rate_rejected(self):
        with pytest.raises(InputInvalid):
            load_payroll_config(None, {"indoor_sales_basic": -1})


class TestItemOverrides:
    """Manual edit payloads."""

    def test_explicit_zero_is_provided(self):
        """Zero is an override, omission is not."""
        overrides = ItemOverrides.parse({"epf_employee": 0})

        assert overrides.has("epf_employee") is True
        assert overrides.has("pcb") is False
        assert overrides.value("epf_employee", Decimal("330")) == Decimal("0")
        assert overrides.value("pcb", Decimal("12.50")) == Decimal("12.50")

    def test_provided_fields(self):
        """Only supplied fields are returned."""
        overrides = ItemOverrides.parse({"bonus": "200", "notes": "festive"})

        assert overrides.provided() == {"bonus": Decimal("200"), "notes": "festive"}

    def test_unknown_field_rejected(self):
        with pytest.raises(InputInvalid):
            ItemOverrides.parse({"net_pay": 1})

    def test_negative_amount_rejected(self):
        with pytest.raises(InputInvalid):
            ItemOverrides.parse({"bonus": -5})
