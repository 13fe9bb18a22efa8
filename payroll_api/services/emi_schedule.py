from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Tuple

from payroll_api.common.errors import InvalidLoanTermsError
from payroll_api.services.money import dec, round2, HUNDRED


@dataclass(frozen=True)
class ScheduledInstallment:
    seq: int
    month: int
    year: int
    amount: Decimal


@dataclass(frozen=True)
class EmiSchedule:
    installment_amount: Decimal
    total_payable: Decimal
    schedule: Tuple[ScheduledInstallment, ...]


def next_period(month: int, year: int) -> Tuple[int, int]:
    if month == 12:
        return 1, year + 1
    return month + 1, year


def generate(principal, annual_rate_percent, installment_count: int,
             start_month: int, start_year: int) -> EmiSchedule:
    """Flat (simple-interest) EMI schedule over the full tenure.

    The last installment absorbs the rounding remainder so the schedule sums
    to total_payable exactly.
    """
    principal = dec(principal)
    rate = dec(annual_rate_percent)
    try:
        count = int(installment_count)
    except (TypeError, ValueError):
        raise InvalidLoanTermsError("installment_count must be an integer")

    if count <= 0:
        raise InvalidLoanTermsError("installment_count must be > 0", payload={"installment_count": count})
    if principal <= 0:
        raise InvalidLoanTermsError("principal must be > 0", payload={"principal": str(principal)})
    if rate < 0:
        raise InvalidLoanTermsError("interest rate must be >= 0", payload={"interest_rate": str(rate)})
    if not (1 <= int(start_month) <= 12):
        raise InvalidLoanTermsError("start_month must be 1..12", payload={"start_month": start_month})

    total_payable = round2(principal + principal * rate / HUNDRED)
    installment_amount = round2(total_payable / count)

    schedule: List[ScheduledInstallment] = []
    month, year = int(start_month), int(start_year)
    for seq in range(1, count + 1):
        if seq == count:
            amount = total_payable - installment_amount * (count - 1)
            if amount <= 0:
                raise InvalidLoanTermsError("installment_count too large for the amount payable",
                                            payload={"installment_count": count})
        else:
            amount = installment_amount
        schedule.append(ScheduledInstallment(seq=seq, month=month, year=year, amount=amount))
        month, year = next_period(month, year)

    return EmiSchedule(
        installment_amount=installment_amount,
        total_payable=total_payable,
        schedule=tuple(schedule),
    )
