from __future__ import annotations

from flask import Blueprint, request

from payroll_api.common.auth import requires_perms, current_user_id
from payroll_api.common.http import ok, fail, paged
from payroll_api.common.paging import page_limit, parse_decimal, parse_int, parse_month
from payroll_api.extensions import db
from payroll_api.models.advances import AdvanceRecord
from payroll_api.models.loans import LoanRecord
from payroll_api.services import loan_service
from payroll_api.services.money import as_float

bp = Blueprint("loans", __name__, url_prefix="/api/v1/loans")
advances_bp = Blueprint("advances", __name__, url_prefix="/api/v1/advances")


def _row_loan(x: LoanRecord, with_schedule: bool = False):
    out = {
        "id": x.id,
        "employee_id": x.employee_id,
        "loan_type": x.loan_type,
        "principal": as_float(x.principal),
        "interest_rate": as_float(x.interest_rate),
        "installment_count": x.installment_count,
        "installment_amount": as_float(x.installment_amount),
        "total_payable": as_float(x.total_payable),
        "start_month": x.start_month,
        "start_year": x.start_year,
        "paid_installments": x.paid_installments,
        "remaining_balance": as_float(x.remaining_balance),
        "status": x.status,
        "remarks": x.remarks,
    }
    if with_schedule:
        out["schedule"] = [
            {
                "id": i.id,
                "seq": i.seq,
                "month": i.month,
                "year": i.year,
                "amount": as_float(i.amount),
                "status": i.status,
                "paid_at": i.paid_at.isoformat() if i.paid_at else None,
                "pay_run_id": i.pay_run_id,
            }
            for i in x.installments
        ]
    return out


def _row_advance(a: AdvanceRecord):
    return {
        "id": a.id,
        "employee_id": a.employee_id,
        "amount": as_float(a.amount),
        "paid_month": a.paid_month,
        "paid_year": a.paid_year,
        "recovery_month": a.recovery_month,
        "recovery_year": a.recovery_year,
        "remaining_amount": as_float(a.remaining_amount),
        "status": a.status,
        "remarks": a.remarks,
        "last_pay_run_id": a.last_pay_run_id,
    }


# ---------- loans ----------
@bp.post("")
@requires_perms("payroll.loans.write")
def create_loan():
    """
    Body: {"employee_id": 7, "principal": 12000, "interest_rate": 10,
           "installment_count": 12, "start_month": 1, "start_year": 2025,
           "loan_type": "personal", "remarks": "..."}
    """
    j = request.get_json(silent=True) or {}
    emp_id = parse_int(j.get("employee_id"))
    principal = parse_decimal(j.get("principal"))
    rate = parse_decimal(j.get("interest_rate", 0))
    count = parse_int(j.get("installment_count"))
    start_month = parse_month(j.get("start_month"))
    start_year = parse_int(j.get("start_year"))

    errors = {}
    if emp_id is None: errors["employee_id"] = "required integer"
    if principal is None: errors["principal"] = "required number"
    if rate is None: errors["interest_rate"] = "must be a number"
    if count is None: errors["installment_count"] = "required integer"
    if start_month is None: errors["start_month"] = "1..12 or month name"
    if start_year is None: errors["start_year"] = "required integer"
    if errors:
        return fail("Validation failed", 422, errors=errors)

    loan = loan_service.create_loan(
        emp_id, principal, rate, count, start_month, start_year,
        loan_type=j.get("loan_type") or "personal",
        remarks=j.get("remarks"),
        user_id=current_user_id(),
    )
    return ok(_row_loan(loan, with_schedule=True), 201)


@bp.get("")
@requires_perms("payroll.loans.read")
def list_loans():
    q = LoanRecord.query
    if request.args.get("employee_id"):
        emp_id = parse_int(request.args["employee_id"])
        if emp_id is None:
            return fail("employee_id must be integer", 422)
        q = q.filter(LoanRecord.employee_id == emp_id)
    if request.args.get("status"):
        q = q.filter(LoanRecord.status == request.args["status"].lower())
    q = q.order_by(LoanRecord.id.desc())
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page-1)*size).limit(size).all()
    return paged([_row_loan(x) for x in rows], page, size, total)


@bp.get("/<int:loan_id>")
@requires_perms("payroll.loans.read")
def get_loan(loan_id: int):
    return ok(_row_loan(db.get_or_404(LoanRecord, loan_id), with_schedule=True))


@bp.post("/<int:loan_id>/cancel")
@requires_perms("payroll.loans.write")
def cancel_loan(loan_id: int):
    return ok(_row_loan(loan_service.cancel_loan(loan_id), with_schedule=True))


# ---------- advances ----------
@advances_bp.post("")
@requires_perms("payroll.loans.write")
def create_advance():
    """
    Body: {"employee_id": 7, "amount": 5000, "paid_month": 3, "paid_year": 2025,
           "recovery_month": 4, "recovery_year": 2025}
    Recovery period defaults to the month after the advance was paid.
    """
    j = request.get_json(silent=True) or {}
    emp_id = parse_int(j.get("employee_id"))
    amount = parse_decimal(j.get("amount"))
    paid_month = parse_month(j.get("paid_month"))
    paid_year = parse_int(j.get("paid_year"))

    errors = {}
    if emp_id is None: errors["employee_id"] = "required integer"
    if amount is None: errors["amount"] = "required number"
    if paid_month is None: errors["paid_month"] = "1..12 or month name"
    if paid_year is None: errors["paid_year"] = "required integer"
    if errors:
        return fail("Validation failed", 422, errors=errors)

    if j.get("recovery_month") is None and j.get("recovery_year") is None:
        rec_month, rec_year = (1, paid_year + 1) if paid_month == 12 else (paid_month + 1, paid_year)
    else:
        rec_month = parse_month(j.get("recovery_month"))
        rec_year = parse_int(j.get("recovery_year"))
        if rec_month is None or rec_year is None:
            return fail("recovery_month and recovery_year must be given together", 422)

    adv = loan_service.create_advance(
        emp_id, amount, paid_month, paid_year, rec_month, rec_year,
        remarks=j.get("remarks"), user_id=current_user_id(),
    )
    return ok(_row_advance(adv), 201)


@advances_bp.get("")
@requires_perms("payroll.loans.read")
def list_advances():
    q = AdvanceRecord.query
    if request.args.get("employee_id"):
        emp_id = parse_int(request.args["employee_id"])
        if emp_id is None:
            return fail("employee_id must be integer", 422)
        q = q.filter(AdvanceRecord.employee_id == emp_id)
    if request.args.get("status"):
        q = q.filter(AdvanceRecord.status == request.args["status"].lower())
    q = q.order_by(AdvanceRecord.id.desc())
    page, size = page_limit()
    total = q.count()
    rows = q.offset((page-1)*size).limit(size).all()
    return paged([_row_advance(a) for a in rows], page, size, total)


@advances_bp.delete("/<int:advance_id>")
@requires_perms("payroll.loans.write")
def delete_advance(advance_id: int):
    loan_service.delete_advance(advance_id)
    return ok({"id": advance_id, "deleted": True})
