from __future__ import annotations
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List

from payroll_api.models.advances import AdvanceRecord
from payroll_api.models.loans import LoanRecord, LoanInstallment
from payroll_api.services.money import dec, as_float, ZERO


@dataclass
class RecoveryMatch:
    advance_deduction: Decimal = ZERO
    loan_deduction: Decimal = ZERO
    advances: List[Dict[str, Any]] = field(default_factory=list)       # [{"id", "amount"}]
    installments: List[Dict[str, Any]] = field(default_factory=list)   # [{"id", "loan_id", "amount"}]

    @property
    def touched_advance_ids(self) -> List[int]:
        return [a["id"] for a in self.advances]

    @property
    def touched_installment_ids(self) -> List[int]:
        return [i["id"] for i in self.installments]

    def to_json(self) -> Dict[str, Any]:
        """Shape stored on PayRunItem.recoveries (amounts as strings, exact)."""
        return {
            "advances": [{"id": a["id"], "amount": str(a["amount"])} for a in self.advances],
            "installments": [
                {"id": i["id"], "loan_id": i["loan_id"], "amount": str(i["amount"])}
                for i in self.installments
            ],
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "advance_deduction": as_float(self.advance_deduction),
            "loan_deduction": as_float(self.loan_deduction),
            "touched_advance_ids": self.touched_advance_ids,
            "touched_installment_ids": self.touched_installment_ids,
        }


def match(employee_id: int, month: int, year: int) -> RecoveryMatch:
    """Advances and loan installments due from this employee in (month, year).

    Read-only: settlement happens when the owning pay run is processed.
    """
    out = RecoveryMatch()

    advances = (
        AdvanceRecord.query
        .filter(AdvanceRecord.employee_id == employee_id)
        .filter(AdvanceRecord.status != "deducted")
        .filter(AdvanceRecord.recovery_month == month, AdvanceRecord.recovery_year == year)
        .order_by(AdvanceRecord.id.asc())
        .all()
    )
    for adv in advances:
        amt = dec(adv.remaining_amount)
        if amt <= 0:
            continue
        out.advances.append({"id": adv.id, "amount": amt})
        out.advance_deduction += amt

    installments = (
        LoanInstallment.query
        .join(LoanRecord, LoanRecord.id == LoanInstallment.loan_id)
        .filter(LoanRecord.employee_id == employee_id, LoanRecord.status == "active")
        .filter(LoanInstallment.month == month, LoanInstallment.year == year)
        .filter(LoanInstallment.status == "pending")
        .order_by(LoanInstallment.loan_id.asc(), LoanInstallment.seq.asc())
        .all()
    )
    for inst in installments:
        amt = dec(inst.amount)
        out.installments.append({"id": inst.id, "loan_id": inst.loan_id, "amount": amt})
        out.loan_deduction += amt

    return out
