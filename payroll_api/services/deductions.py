from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict

from payroll_api.services.money import dec, round2, as_float, HUNDRED, ZERO
from payroll_api.services.rate_table import RateSet
from payroll_api.services.salary_resolver import MonthlyEarnings


@dataclass(frozen=True)
class Deductions:
    pf_employee: Decimal = ZERO
    pf_employer: Decimal = ZERO
    esi_employee: Decimal = ZERO
    esi_employer: Decimal = ZERO
    professional_tax: Decimal = ZERO
    tds: Decimal = ZERO

    @property
    def employee_total(self) -> Decimal:
        return self.pf_employee + self.esi_employee + self.professional_tax + self.tds

    def to_dict(self) -> Dict[str, Any]:
        return {k: as_float(v) for k, v in asdict(self).items()}


def esi_eligible(gross: Decimal, rate_set: RateSet) -> bool:
    # strict: gross at the ceiling is already out
    return gross < rate_set.esi_wage_ceiling


def compute(earnings: MonthlyEarnings, structure, rate_set: RateSet) -> Deductions:
    """Statutory deductions on the monthly entitlement.

    Order: PF on basic, then ESI (eligibility needs the resolved gross), then
    the PT slab and TDS on gross. ESI eligibility is evaluated afresh every
    period.
    """
    pf_emp = pf_er = ZERO
    if structure.includes_pf:
        eligible = min(earnings.basic, rate_set.pf_wage_ceiling)
        pf_emp = pf_er = round2(eligible * rate_set.pf_rate / HUNDRED)

    esi_emp = esi_er = ZERO
    if structure.includes_esi and esi_eligible(earnings.gross, rate_set):
        esi_emp = round2(earnings.gross * rate_set.esi_rate / HUNDRED)
        esi_er = round2(earnings.gross * rate_set.esi_employer_rate / HUNDRED)

    pt = round2(rate_set.professional_tax(earnings.gross))
    tds = round2(earnings.gross * dec(getattr(structure, "tds_pct", 0)) / HUNDRED)

    return Deductions(
        pf_employee=pf_emp,
        pf_employer=pf_er,
        esi_employee=esi_emp,
        esi_employer=esi_er,
        professional_tax=pt,
        tds=tds,
    )
