from __future__ import annotations
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from payroll_api.common.errors import ConfigurationError, InconsistentSalaryStructureError
from payroll_api.services.money import dec, round2, as_float, CENT, HUNDRED, ZERO
from payroll_api.services.rate_table import RateSet

MONTHS = Decimal("12")


@dataclass(frozen=True)
class MonthlyEarnings:
    basic: Decimal
    hra: Decimal
    conveyance: Decimal
    telephone: Decimal
    medical: Decimal
    special_allowance: Decimal
    other_allowances: Decimal
    gross: Decimal
    employer_contributions: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {k: as_float(v) for k, v in asdict(self).items()}


def _validate(structure) -> None:
    ctc = dec(structure.ctc)
    if ctc <= 0:
        raise InconsistentSalaryStructureError("ctc must be > 0", payload={"field": "ctc"})
    basic_pct = dec(structure.basic_pct)
    if basic_pct <= 0 or basic_pct > HUNDRED:
        raise InconsistentSalaryStructureError("basic_pct must be in (0, 100]", payload={"field": "basic_pct"})
    for name in ("hra_pct", "conveyance", "telephone", "medical", "other_allowances", "tds_pct"):
        if dec(getattr(structure, name, 0)) < 0:
            raise InconsistentSalaryStructureError(f"{name} must be >= 0", payload={"field": name})


def _pf_employer(basic: Decimal, structure, rate_set: RateSet) -> Decimal:
    if not structure.includes_pf:
        return ZERO
    return round2(min(basic, rate_set.pf_wage_ceiling) * rate_set.pf_rate / HUNDRED)


def _balance(ctc_monthly: Decimal, fixed: Decimal, other: Decimal, basic: Decimal,
             structure, rate_set: Optional[RateSet]) -> Tuple[Decimal, Decimal]:
    """(employer contributions carved out of CTC, special allowance).

    ESI is a share of gross, and gross depends on the balancing term, so the
    ESI case starts from the closed form gross = (ctc/12 - pf_er + other) / (1 + r)
    and then settles on a cent-exact split where the ESI carved out equals
    round2(gross * r), the amount the deduction calculator charges. Some
    totals have no such split (gross + round2(gross * r) steps over them);
    those keep the closed-form gross, charge ESI on it and land one cent
    off ctc/12. ESI only applies when that gross stays under the ESI ceiling.
    """
    if not structure.ctc_includes_employer_contributions:
        return ZERO, round2(ctc_monthly - fixed)
    if rate_set is None:
        raise ConfigurationError("a rate set is required when CTC includes employer contributions")

    pf_er = _pf_employer(basic, structure, rate_set)
    if structure.includes_esi:
        r = rate_set.esi_employer_rate / HUNDRED
        closed = round2((ctc_monthly - pf_er + other) / (Decimal("1") + r) * r)
        for esi_er in (closed, closed - CENT, closed + CENT):
            special = round2(ctc_monthly - fixed - pf_er - esi_er)
            if round2((fixed + special + other) * r) == esi_er:
                break
        else:
            special = round2(ctc_monthly - fixed - pf_er - closed)
            esi_er = round2((fixed + special + other) * r)
        if fixed + special + other < rate_set.esi_wage_ceiling:
            return pf_er + esi_er, special
    return pf_er, round2(ctc_monthly - fixed - pf_er)


def resolve(structure, rate_set: Optional[RateSet] = None) -> MonthlyEarnings:
    """Expand an annual CTC into monthly earning components.

    The special allowance balances the fixed components (plus any employer
    contributions carried inside CTC) against ctc/12. A negative balance is a
    data-entry error and is never clamped.
    """
    _validate(structure)

    ctc_monthly = dec(structure.ctc) / MONTHS
    basic = round2(dec(structure.ctc) * dec(structure.basic_pct) / HUNDRED / MONTHS)
    hra = round2(basic * dec(structure.hra_pct) / HUNDRED)
    conveyance = round2(structure.conveyance)
    telephone = round2(structure.telephone)
    medical = round2(structure.medical)
    other = round2(structure.other_allowances)

    fixed = basic + hra + conveyance + telephone + medical
    employer, special = _balance(ctc_monthly, fixed, other, basic, structure, rate_set)

    if special < 0:
        raise InconsistentSalaryStructureError(
            "Fixed components and employer contributions exceed ctc/12",
            payload={
                "ctc_monthly": as_float(round2(ctc_monthly)),
                "fixed_components": as_float(fixed),
                "employer_contributions": as_float(employer),
            },
        )

    return MonthlyEarnings(
        basic=basic,
        hra=hra,
        conveyance=conveyance,
        telephone=telephone,
        medical=medical,
        special_allowance=special,
        other_allowances=other,
        gross=fixed + special + other,
        employer_contributions=employer,
    )
