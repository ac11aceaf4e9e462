"""Malaysian statutory contributions: EPF, SOCSO, EIS and PCB.

Pure functions over Decimal inputs. Every function raises InputInvalid only
when a required attribute is missing or negative.

Tables:
- EPF: Third Schedule, RM20 wage brackets up to RM5,000 and RM100 brackets up
  to the RM20,000 ceiling; contribution on the bracket upper limit, fractions
  of a ringgit rounded up.
- SOCSO: first category (employment injury + invalidity), RM5,000 ceiling.
- EIS: 0.2% + 0.2% schedule, RM5,000 ceiling.
- PCB: LHDN computerized calculation method.
"""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from mypayroll.calculators.money import (
    ZERO,
    floor_to_cents,
    round_to_cents,
    round_up_to_five_sen,
    round_up_to_ringgit,
)
from mypayroll.calculators.types import (
    Contribution,
    EmployeeAttributes,
    EPFContribution,
    PCBResult,
    RemunerationBreakdown,
    StatutoryResult,
    YTDSnapshot,
)
from mypayroll.errors import InputInvalid

# ===== EPF =====

EPF_WAGE_CEILING = Decimal("20000")
EPF_MIN_WAGE = Decimal("10")
EPF_HIGHER_EMPLOYER_RATE_LIMIT = Decimal("5000")
EPF_SMALL_BRACKET = Decimal("20")
EPF_LARGE_BRACKET = Decimal("100")
EPF_EMPLOYEE_RATE = Decimal("0.11")
EPF_EMPLOYER_RATE_LOW_WAGE = Decimal("0.13")
EPF_EMPLOYER_RATE = Decimal("0.12")
EPF_EMPLOYER_RATE_SENIOR = Decimal("0.04")
EPF_FOREIGN_RATE = Decimal("0.02")
EPF_SENIOR_AGE = 60

# ===== SOCSO / EIS =====

SOCSO_WAGE_CEILING = Decimal("5000")
SOCSO_EMPLOYEE_EXEMPT_AGE = 60
EIS_WAGE_CEILING = Decimal("5000")
EIS_EXEMPT_AGE = 57

# (wage upper limit, employer, employee); a wage falls in the first row whose
# upper limit is >= the wage.
SOCSO_TABLE: tuple[tuple[Decimal, Decimal, Decimal], ...] = (
    (Decimal("30"), Decimal("0.40"), Decimal("0.10")),
    (Decimal("50"), Decimal("0.70"), Decimal("0.20")),
    (Decimal("70"), Decimal("1.10"), Decimal("0.30")),
    (Decimal("100"), Decimal("1.50"), Decimal("0.40")),
    (Decimal("140"), Decimal("2.10"), Decimal("0.60")),
    (Decimal("200"), Decimal("2.95"), Decimal("0.85")),
    (Decimal("300"), Decimal("4.35"), Decimal("1.25")),
    (Decimal("400"), Decimal("6.15"), Decimal("1.75")),
    (Decimal("500"), Decimal("7.85"), Decimal("2.25")),
    (Decimal("600"), Decimal("9.65"), Decimal("2.75")),
    (Decimal("700"), Decimal("11.35"), Decimal("3.25")),
    (Decimal("800"), Decimal("13.15"), Decimal("3.75")),
    (Decimal("900"), Decimal("14.85"), Decimal("4.25")),
    (Decimal("1000"), Decimal("16.65"), Decimal("4.75")),
    (Decimal("1100"), Decimal("18.35"), Decimal("5.25")),
    (Decimal("1200"), Decimal("20.15"), Decimal("5.75")),
    (Decimal("1300"), Decimal("21.85"), Decimal("6.25")),
    (Decimal("1400"), Decimal("23.65"), Decimal("6.75")),
    (Decimal("1500"), Decimal("25.35"), Decimal("7.25")),
    (Decimal("1600"), Decimal("27.15"), Decimal("7.75")),
    (Decimal("1700"), Decimal("28.85"), Decimal("8.25")),
    (Decimal("1800"), Decimal("30.65"), Decimal("8.75")),
    (Decimal("1900"), Decimal("32.35"), Decimal("9.25")),
    (Decimal("2000"), Decimal("34.15"), Decimal("9.75")),
    (Decimal("2100"), Decimal("35.85"), Decimal("10.25")),
    (Decimal("2200"), Decimal("37.65"), Decimal("10.75")),
    (Decimal("2300"), Decimal("39.35"), Decimal("11.25")),
    (Decimal("2400"), Decimal("41.15"), Decimal("11.75")),
    (Decimal("2500"), Decimal("42.85"), Decimal("12.25")),
    (Decimal("2600"), Decimal("44.65"), Decimal("12.75")),
    (Decimal("2700"), Decimal("46.35"), Decimal("13.25")),
    (Decimal("2800"), Decimal("48.15"), Decimal("13.75")),
    (Decimal("2900"), Decimal("49.85"), Decimal("14.25")),
    (Decimal("3000"), Decimal("51.65"), Decimal("14.75")),
    (Decimal("3100"), Decimal("53.35"), Decimal("15.25")),
    (Decimal("3200"), Decimal("55.15"), Decimal("15.75")),
    (Decimal("3300"), Decimal("56.85"), Decimal("16.25")),
    (Decimal("3400"), Decimal("58.65"), Decimal("16.75")),
    (Decimal("3500"), Decimal("60.35"), Decimal("17.25")),
    (Decimal("3600"), Decimal("62.15"), Decimal("17.75")),
    (Decimal("3700"), Decimal("63.85"), Decimal("18.25")),
    (Decimal("3800"), Decimal("65.65"), Decimal("18.75")),
    (Decimal("3900"), Decimal("67.35"), Decimal("19.25")),
    (Decimal("4000"), Decimal("69.15"), Decimal("19.75")),
    (Decimal("4100"), Decimal("70.85"), Decimal("20.25")),
    (Decimal("4200"), Decimal("72.65"), Decimal("20.75")),
    (Decimal("4300"), Decimal("74.35"), Decimal("21.25")),
    (Decimal("4400"), Decimal("76.15"), Decimal("21.75")),
    (Decimal("4500"), Decimal("77.85"), Decimal("22.25")),
    (Decimal("4600"), Decimal("79.65"), Decimal("22.75")),
    (Decimal("4700"), Decimal("81.35"), Decimal("23.25")),
    (Decimal("4800"), Decimal("83.15"), Decimal("23.75")),
    (Decimal("4900"), Decimal("84.85"), Decimal("24.25")),
    (Decimal("5000"), Decimal("86.65"), Decimal("24.75")),
)

# (wage upper limit, contribution per side)
EIS_TABLE: tuple[tuple[Decimal, Decimal], ...] = (
    (Decimal("30"), Decimal("0.05")),
    (Decimal("50"), Decimal("0.10")),
    (Decimal("70"), Decimal("0.15")),
    (Decimal("100"), Decimal("0.20")),
    (Decimal("140"), Decimal("0.25")),
    (Decimal("200"), Decimal("0.35")),
    (Decimal("300"), Decimal("0.50")),
    (Decimal("400"), Decimal("0.70")),
    (Decimal("500"), Decimal("0.90")),
    (Decimal("600"), Decimal("1.10")),
    (Decimal("700"), Decimal("1.30")),
    (Decimal("800"), Decimal("1.50")),
    (Decimal("900"), Decimal("1.70")),
    (Decimal("1000"), Decimal("1.90")),
    (Decimal("1100"), Decimal("2.10")),
    (Decimal("1200"), Decimal("2.30")),
    (Decimal("1300"), Decimal("2.50")),
    (Decimal("1400"), Decimal("2.70")),
    (Decimal("1500"), Decimal("2.90")),
    (Decimal("1600"), Decimal("3.10")),
    (Decimal("1700"), Decimal("3.30")),
    (Decimal("1800"), Decimal("3.50")),
    (Decimal("1900"), Decimal("3.70")),
    (Decimal("2000"), Decimal("3.90")),
    (Decimal("2100"), Decimal("4.10")),
    (Decimal("2200"), Decimal("4.30")),
    (Decimal("2300"), Decimal("4.50")),
    (Decimal("2400"), Decimal("4.70")),
    (Decimal("2500"), Decimal("4.90")),
    (Decimal("2600"), Decimal("5.10")),
    (Decimal("2700"), Decimal("5.30")),
    (Decimal("2800"), Decimal("5.50")),
    (Decimal("2900"), Decimal("5.70")),
    (Decimal("3000"), Decimal("5.90")),
    (Decimal("3100"), Decimal("6.10")),
    (Decimal("3200"), Decimal("6.30")),
    (Decimal("3300"), Decimal("6.50")),
    (Decimal("3400"), Decimal("6.70")),
    (Decimal("3500"), Decimal("6.90")),
    (Decimal("3600"), Decimal("7.10")),
    (Decimal("3700"), Decimal("7.30")),
    (Decimal("3800"), Decimal("7.50")),
    (Decimal("3900"), Decimal("7.70")),
    (Decimal("4000"), Decimal("7.90")),
    (Decimal("4100"), Decimal("8.10")),
    (Decimal("4200"), Decimal("8.30")),
    (Decimal("4300"), Decimal("8.50")),
    (Decimal("4400"), Decimal("8.70")),
    (Decimal("4500"), Decimal("8.90")),
    (Decimal("4600"), Decimal("9.10")),
    (Decimal("4700"), Decimal("9.30")),
    (Decimal("4800"), Decimal("9.50")),
    (Decimal("4900"), Decimal("9.70")),
    (Decimal("5000"), Decimal("9.90")),
)

_SOCSO_LIMITS = [row[0] for row in SOCSO_TABLE]
_EIS_LIMITS = [row[0] for row in EIS_TABLE]

# ===== PCB =====

PCB_INDIVIDUAL_RELIEF = Decimal("9000")
PCB_SPOUSE_RELIEF = Decimal("4000")
PCB_DISABLED_RELIEF = Decimal("6000")
PCB_DISABLED_SPOUSE_RELIEF = Decimal("5000")
PCB_CHILD_RELIEF = Decimal("2000")
PCB_EPF_RELIEF_CAP = Decimal("4000")
PCB_SOCSO_EIS_RELIEF_CAP = Decimal("350")
PCB_MINIMUM_DEDUCTION = Decimal("10")


@dataclass(frozen=True)
class TaxBracket:
    """Chargeable-income bracket: tax = (P - threshold) * rate + base."""

    threshold: Decimal
    rate: Decimal
    base_category_1_3: Decimal
    base_category_2: Decimal


# Bases already include the RM400 (categories 1 and 3) or RM800 (category 2)
# rebate that applies up to RM35,000 chargeable income.
PCB_BRACKETS: tuple[TaxBracket, ...] = (
    TaxBracket(Decimal("0"), Decimal("0"), Decimal("0"), Decimal("0")),
    TaxBracket(Decimal("5000"), Decimal("0.01"), Decimal("-400"), Decimal("-800")),
    TaxBracket(Decimal("20000"), Decimal("0.03"), Decimal("-250"), Decimal("-650")),
    TaxBracket(Decimal("35000"), Decimal("0.06"), Decimal("600"), Decimal("600")),
    TaxBracket(Decimal("50000"), Decimal("0.11"), Decimal("1500"), Decimal("1500")),
    TaxBracket(Decimal("70000"), Decimal("0.19"), Decimal("3700"), Decimal("3700")),
    TaxBracket(Decimal("100000"), Decimal("0.25"), Decimal("9400"), Decimal("9400")),
    TaxBracket(Decimal("400000"), Decimal("0.26"), Decimal("84400"), Decimal("84400")),
    TaxBracket(Decimal("600000"), Decimal("0.28"), Decimal("136400"), Decimal("136400")),
    TaxBracket(Decimal("2000000"), Decimal("0.30"), Decimal("528400"), Decimal("528400")),
)


def _require_wage(wage: Decimal, name: str = "wage") -> None:
    if wage is None:
        raise InputInvalid(f"{name} is required")
    if wage < ZERO:
        raise InputInvalid(f"{name} must not be negative (got {wage})")


def _require_age(attrs: EmployeeAttributes) -> int:
    if attrs is None or attrs.age is None:
        raise InputInvalid("employee age is required")
    if attrs.age < 0:
        raise InputInvalid(f"employee age must not be negative (got {attrs.age})")
    return attrs.age


def age_on(date_of_birth: date, as_of: date) -> int:
    """Completed years of age on ``as_of``."""
    age = as_of.year - date_of_birth.year
    if (as_of.month, as_of.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


# ===== EPF =====


def epf_wage_bracket(wage: Decimal) -> Decimal:
    """Upper limit of the Third Schedule bracket containing ``wage``."""
    wage = min(wage, EPF_WAGE_CEILING)
    if wage <= EPF_MIN_WAGE:
        return ZERO
    step = EPF_SMALL_BRACKET if wage <= EPF_HIGHER_EMPLOYER_RATE_LIMIT else EPF_LARGE_BRACKET
    return round_up_to_ringgit(wage / step) * step


def epf_rates(wage: Decimal, attrs: EmployeeAttributes) -> tuple[Decimal, Decimal]:
    """(employee rate, employer rate) for a wage and employee."""
    age = _require_age(attrs)
    if attrs.is_foreign:
        return EPF_FOREIGN_RATE, EPF_FOREIGN_RATE
    if age > EPF_SENIOR_AGE:
        return ZERO, EPF_EMPLOYER_RATE_SENIOR
    if wage <= EPF_HIGHER_EMPLOYER_RATE_LIMIT:
        return EPF_EMPLOYEE_RATE, EPF_EMPLOYER_RATE_LOW_WAGE
    return EPF_EMPLOYEE_RATE, EPF_EMPLOYER_RATE


def _epf_employee_share(wage: Decimal, attrs: EmployeeAttributes) -> Decimal:
    employee_rate, _ = epf_rates(wage, attrs)
    return round_up_to_ringgit(epf_wage_bracket(wage) * employee_rate)


def calculate_epf(
    wage: Decimal,
    attrs: EmployeeAttributes,
    normal_wage: Decimal | None = None,
) -> EPFContribution:
    """EPF contribution for a month's statutory wage.

    ``normal_wage`` is the part of ``wage`` that is normal remuneration. The
    employee share on that part alone is reported as ``employee_normal``; the
    rest of the employee share is ``employee_additional``.
    """
    _require_wage(wage)
    employee_rate, employer_rate = epf_rates(wage, attrs)
    bracket = epf_wage_bracket(wage)
    employee = round_up_to_ringgit(bracket * employee_rate)
    employer = round_up_to_ringgit(bracket * employer_rate)

    if normal_wage is None or normal_wage >= wage:
        employee_normal = employee
    else:
        _require_wage(normal_wage, "normal_wage")
        employee_normal = min(employee, _epf_employee_share(normal_wage, attrs))

    return EPFContribution(
        employee=employee,
        employer=employer,
        employee_normal=employee_normal,
        employee_additional=employee - employee_normal,
    )


# ===== SOCSO / EIS =====


def socso_bracket(wage: Decimal) -> tuple[Decimal, Decimal, Decimal]:
    """Row of the SOCSO table for ``wage`` (capped at the ceiling)."""
    wage = min(wage, SOCSO_WAGE_CEILING)
    return SOCSO_TABLE[bisect_left(_SOCSO_LIMITS, wage)]


def calculate_socso(wage: Decimal, attrs: EmployeeAttributes) -> Contribution:
    """SOCSO contribution. From age 60 only the employer share applies."""
    _require_wage(wage)
    age = _require_age(attrs)
    if wage == ZERO:
        return Contribution()
    _, employer, employee = socso_bracket(wage)
    if age >= SOCSO_EMPLOYEE_EXEMPT_AGE:
        employee = ZERO
    return Contribution(employee=employee, employer=employer)


def calculate_eis(wage: Decimal, attrs: EmployeeAttributes) -> Contribution:
    """EIS contribution; not payable from age 57."""
    _require_wage(wage)
    age = _require_age(attrs)
    if wage == ZERO or age >= EIS_EXEMPT_AGE:
        return Contribution()
    wage = min(wage, EIS_WAGE_CEILING)
    _, amount = EIS_TABLE[bisect_left(_EIS_LIMITS, wage)]
    return Contribution(employee=amount, employer=amount)


# ===== PCB =====


def pcb_category(attrs: EmployeeAttributes) -> int:
    """LHDN category: 1 single, 2 married with non-working spouse, 3 other."""
    if attrs.marital_status == "single":
        return 1
    if attrs.has_non_working_spouse:
        return 2
    return 3


def annual_tax(chargeable_income: Decimal, category: int) -> Decimal:
    """Annual tax on chargeable income P: (P - M) * R + B, never negative."""
    if chargeable_income <= ZERO:
        return ZERO
    bracket = PCB_BRACKETS[0]
    for candidate in PCB_BRACKETS:
        if chargeable_income > candidate.threshold:
            bracket = candidate
    base = bracket.base_category_2 if category == 2 else bracket.base_category_1_3
    return max(ZERO, (chargeable_income - bracket.threshold) * bracket.rate + base)


def total_reliefs(attrs: EmployeeAttributes) -> Decimal:
    """Annual personal reliefs D + S + DU + SU + QC."""
    reliefs = PCB_INDIVIDUAL_RELIEF
    if attrs.has_non_working_spouse:
        reliefs += PCB_SPOUSE_RELIEF
    if attrs.is_disabled:
        reliefs += PCB_DISABLED_RELIEF
    if attrs.marital_status == "married" and attrs.spouse_disabled:
        reliefs += PCB_DISABLED_SPOUSE_RELIEF
    reliefs += PCB_CHILD_RELIEF * max(0, attrs.children_count)
    return reliefs


def calculate_pcb(
    attrs: EmployeeAttributes,
    month: int,
    breakdown: RemunerationBreakdown,
    epf: EPFContribution,
    socso_eis_employee: Decimal = ZERO,
    ytd: YTDSnapshot | None = None,
) -> PCBResult:
    """Monthly tax deduction by the LHDN computerized method.

    1. Split the month into normal remuneration Y1 and additional Yt
    2. Cap EPF relief (K + K1 + K2*n [+ Kt]) at RM4,000 for the year
    3. Chargeable income P for normal pay, then again with Yt added
    4. Normal STD = (tax(P) - zakat - X) / (n + 1), truncated to the sen
    5. Additional STD = tax(P + Yt) - (X + zakat + normal STD * (n + 1))
    6. Total rounds up to 5 sen; totals under RM10 are not deducted
    """
    _require_age(attrs)
    if not 1 <= month <= 12:
        raise InputInvalid(f"month must be between 1 and 12 (got {month})")
    for name in ("basic", "allowance", "commission", "bonus", "ot", "pcb_gross"):
        _require_wage(getattr(breakdown, name), name)
    ytd = ytd or YTDSnapshot()

    n = 12 - month
    category = pcb_category(attrs)
    reliefs = total_reliefs(attrs) + min(socso_eis_employee, PCB_SOCSO_EIS_RELIEF_CAP)

    y1 = breakdown.normal
    yt = breakdown.additional
    k = min(ytd.epf, PCB_EPF_RELIEF_CAP)
    k1 = min(epf.employee_normal, PCB_EPF_RELIEF_CAP - k)
    kt = min(epf.employee_additional, max(ZERO, PCB_EPF_RELIEF_CAP - k - k1))
    accumulated = ytd.gross - k

    def projected_k2(extra: Decimal) -> Decimal:
        if n == 0:
            return ZERO
        return max(ZERO, min(k1, floor_to_cents((PCB_EPF_RELIEF_CAP - (k + k1 + extra)) / n)))

    k2 = projected_k2(ZERO)
    p_normal = accumulated + (y1 - k1) + (y1 - k2) * n - reliefs
    tax_normal = annual_tax(p_normal, category)
    normal_std = floor_to_cents(max(ZERO, (tax_normal - ytd.zakat - ytd.pcb) / (n + 1)))

    additional_std = ZERO
    p_additional = p_normal
    if yt > ZERO:
        k2_with_additional = projected_k2(kt)
        p_additional = (
            accumulated
            + (y1 - k1)
            + (y1 - k2_with_additional) * n
            + (yt - kt)
            - reliefs
        )
        tax_additional = annual_tax(p_additional, category)
        additional_std = floor_to_cents(
            max(ZERO, tax_additional - (ytd.pcb + ytd.zakat + normal_std * (n + 1)))
        )

    total = round_up_to_five_sen(normal_std + additional_std)
    if total < PCB_MINIMUM_DEDUCTION:
        total = normal_std = additional_std = ZERO

    return PCBResult(
        total=total,
        normal_std=normal_std,
        additional_std=additional_std,
        chargeable_income=round_to_cents(max(ZERO, p_normal)),
        chargeable_income_additional=round_to_cents(max(ZERO, p_additional)),
        remaining_months=n,
    )


def calculate_all_statutory(
    statutory_base: Decimal,
    attrs: EmployeeAttributes,
    month: int,
    breakdown: RemunerationBreakdown,
    ytd: YTDSnapshot | None = None,
    normal_wage: Decimal | None = None,
) -> StatutoryResult:
    """EPF, SOCSO and EIS on the statutory base; PCB on the breakdown."""
    epf = calculate_epf(statutory_base, attrs, normal_wage=normal_wage)
    socso = calculate_socso(statutory_base, attrs)
    eis = calculate_eis(statutory_base, attrs)
    pcb = calculate_pcb(
        attrs,
        month,
        breakdown,
        epf,
        socso_eis_employee=socso.employee + eis.employee,
        ytd=ytd,
    )
    return StatutoryResult(epf=epf, socso=socso, eis=eis, pcb=pcb)
