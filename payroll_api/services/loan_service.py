from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from flask import abort

from payroll_api.common.errors import APIError, InvalidTransitionError
from payroll_api.extensions import db
from payroll_api.models.advances import AdvanceRecord
from payroll_api.models.employee import Employee
from payroll_api.models.loans import LoanRecord, LoanInstallment, LOAN_TYPES
from payroll_api.services import emi_schedule
from payroll_api.services.money import dec, round2

log = logging.getLogger(__name__)


def _employee_or_404(employee_id: int) -> Employee:
    emp = db.session.get(Employee, employee_id)
    if emp is None:
        abort(404, description="Employee not found")
    return emp


def create_loan(employee_id: int, principal, interest_rate, installment_count: int,
                start_month: int, start_year: int, loan_type: str = "personal",
                remarks: Optional[str] = None, user_id: Optional[int] = None) -> LoanRecord:
    """Approve a loan: the full EMI schedule is generated once, here."""
    _employee_or_404(employee_id)
    loan_type = (loan_type or "personal").lower()
    if loan_type not in LOAN_TYPES:
        raise APIError(f"loan_type must be one of {', '.join(LOAN_TYPES)}",
                       code="VALIDATION_ERROR", status_code=422)

    plan = emi_schedule.generate(principal, interest_rate, installment_count, start_month, start_year)

    loan = LoanRecord(
        employee_id=employee_id,
        loan_type=loan_type,
        principal=round2(principal),
        interest_rate=dec(interest_rate),
        installment_count=len(plan.schedule),
        installment_amount=plan.installment_amount,
        total_payable=plan.total_payable,
        start_month=int(start_month),
        start_year=int(start_year),
        paid_installments=0,
        remaining_balance=plan.total_payable,
        status="active",
        remarks=remarks,
        created_by=user_id,
    )
    for row in plan.schedule:
        loan.installments.append(LoanInstallment(
            seq=row.seq, month=row.month, year=row.year, amount=row.amount, status="pending",
        ))
    db.session.add(loan)
    db.session.commit()
    log.info("loan %s created for employee %s: %s x %s", loan.id, employee_id,
             loan.installment_count, loan.installment_amount)
    return loan


def cancel_loan(loan_id: int) -> LoanRecord:
    loan = db.session.get(LoanRecord, loan_id)
    if loan is None:
        abort(404, description="Loan not found")
    if loan.status != "active":
        raise InvalidTransitionError(f"Loan in status '{loan.status}' cannot be cancelled")
    loan.status = "cancelled"
    db.session.commit()
    return loan


def create_advance(employee_id: int, amount, paid_month: int, paid_year: int,
                   recovery_month: int, recovery_year: int, remarks: Optional[str] = None,
                   user_id: Optional[int] = None) -> AdvanceRecord:
    _employee_or_404(employee_id)
    amount = round2(amount)
    if amount <= Decimal("0"):
        raise APIError("amount must be > 0", code="VALIDATION_ERROR", status_code=422)
    for m in (paid_month, recovery_month):
        if not (1 <= int(m) <= 12):
            raise APIError("months must be 1..12", code="VALIDATION_ERROR", status_code=422)
    if (int(recovery_year), int(recovery_month)) < (int(paid_year), int(paid_month)):
        raise APIError("recovery period cannot precede the period the advance was paid",
                       code="VALIDATION_ERROR", status_code=422)

    adv = AdvanceRecord(
        employee_id=employee_id,
        amount=amount,
        paid_month=int(paid_month),
        paid_year=int(paid_year),
        recovery_month=int(recovery_month),
        recovery_year=int(recovery_year),
        remaining_amount=amount,
        status="pending",
        remarks=remarks,
        created_by=user_id,
    )
    db.session.add(adv)
    db.session.commit()
    return adv


def delete_advance(advance_id: int) -> None:
    adv = db.session.get(AdvanceRecord, advance_id)
    if adv is None:
        abort(404, description="Advance not found")
    if adv.status != "pending" or adv.last_pay_run_id is not None:
        raise InvalidTransitionError(f"Advance in status '{adv.status}' cannot be deleted")
    db.session.delete(adv)
    db.session.commit()
