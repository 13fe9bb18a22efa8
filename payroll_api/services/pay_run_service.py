"""Pay run generation and its state machine.

    draft -> approved -> processed
    draft | approved -> cancelled

Generation is one transaction over the active roster. Per-employee
configuration errors exclude that employee (recorded on the run) instead of
aborting the batch. Only `process` mutates loan/advance records.
"""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from flask import abort, current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from payroll_api.common.errors import (
    APIError, ConfigurationError, DuplicatePayRunError, InvalidTransitionError,
)
from payroll_api.extensions import db
from payroll_api.models.advances import AdvanceRecord
from payroll_api.models.loans import LoanInstallment
from payroll_api.models.payroll.pay_run import PayRun, PayRunItem
from payroll_api.services import attendance as attendance_provider
from payroll_api.services import deductions as deduction_calc
from payroll_api.services import rate_table, recovery, salary_resolver
from payroll_api.services.attendance import AttendanceOutcome, DEFAULT_WORKING_DAYS
from payroll_api.services.deductions import Deductions
from payroll_api.services.money import dec, round2, as_float, ZERO
from payroll_api.services.payroll_common import get_pay_run_for_period
from payroll_api.services.rate_table import RateSet
from payroll_api.services.recovery import RecoveryMatch
from payroll_api.services.roster import RosterEntry, active_roster
from payroll_api.services.salary_resolver import MonthlyEarnings

log = logging.getLogger(__name__)

# action -> (allowed from, target)
TRANSITIONS = {
    "approve": (("draft",), "approved"),
    "process": (("approved",), "processed"),
    "cancel": (("draft", "approved"), "cancelled"),
}


def period_key(month: int, year: int) -> str:
    return f"{int(year):04d}-{int(month):02d}"


def period_bounds(month: int, year: int):
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


def _validate_period(month, year):
    try:
        month, year = int(month), int(year)
    except (TypeError, ValueError):
        raise APIError("month and year must be integers", code="INVALID_PERIOD", status_code=422)
    if not (1 <= month <= 12) or not (1900 <= year <= 9999):
        raise APIError("month must be 1..12 and year a 4-digit year",
                       code="INVALID_PERIOD", status_code=422)
    return month, year


# ---------- pure per-employee computation ----------

@dataclass(frozen=True)
class PayLine:
    earnings: MonthlyEarnings
    deductions: Deductions
    attendance: AttendanceOutcome
    recoveries: RecoveryMatch
    prorated_gross: Decimal
    lop_amount: Decimal
    total_deductions: Decimal
    net_pay: Decimal


def compute_line(entry: RosterEntry, attendance: AttendanceOutcome,
                 rate_set: RateSet, recoveries: RecoveryMatch) -> PayLine:
    """Earnings, pro-ration, statutory deductions and recoveries for one employee.

    Statutory deductions use the unprorated entitlement; loss of pay is
    already netted out of prorated_gross so it is not subtracted again.
    """
    if entry.structure is None:
        raise ConfigurationError("No salary structure effective for the period",
                                 payload={"employee_id": entry.employee_id})

    earnings = salary_resolver.resolve(entry.structure, rate_set)
    deductions = deduction_calc.compute(earnings, entry.structure, rate_set)

    total_days = Decimal(attendance.total_working_days)
    prorated = round2(earnings.gross * Decimal(attendance.payable_days) / total_days)
    lop_amount = round2(earnings.gross * Decimal(attendance.loss_of_pay_days) / total_days)

    total_deductions = (deductions.employee_total
                        + recoveries.advance_deduction + recoveries.loan_deduction)
    return PayLine(
        earnings=earnings,
        deductions=deductions,
        attendance=attendance,
        recoveries=recoveries,
        prorated_gross=prorated,
        lop_amount=lop_amount,
        total_deductions=total_deductions,
        net_pay=prorated - total_deductions,
    )


def _item_from_line(entry: RosterEntry, line: PayLine) -> PayRunItem:
    e, d, a, r = line.earnings, line.deductions, line.attendance, line.recoveries
    return PayRunItem(
        employee_id=entry.employee_id,
        salary_structure_id=entry.structure.id,
        employee_code=entry.code,
        employee_name=entry.name,
        department=entry.department,
        designation=entry.designation,
        payment_mode=entry.structure.payment_mode,
        basic=e.basic,
        hra=e.hra,
        conveyance=e.conveyance,
        telephone=e.telephone,
        medical=e.medical,
        special_allowance=e.special_allowance,
        other_allowances=e.other_allowances,
        gross=e.gross,
        total_working_days=a.total_working_days,
        payable_days=a.payable_days,
        lop_days=a.loss_of_pay_days,
        attendance_defaulted=a.defaulted,
        lop_amount=line.lop_amount,
        prorated_gross=line.prorated_gross,
        pf_employee=d.pf_employee,
        pf_employer=d.pf_employer,
        esi_employee=d.esi_employee,
        esi_employer=d.esi_employer,
        professional_tax=d.professional_tax,
        tds=d.tds,
        advance_deduction=r.advance_deduction,
        loan_deduction=r.loan_deduction,
        total_deductions=line.total_deductions,
        net_pay=line.net_pay,
        recoveries=r.to_json(),
    )


def _exclusion(entry: RosterEntry, err: ConfigurationError) -> Dict[str, Any]:
    return {
        "employee_id": entry.employee_id,
        "employee_code": entry.code,
        "employee_name": entry.name,
        "code": err.code,
        "reason": err.message,
    }


# ---------- generation ----------

def _lock_period(key: str) -> None:
    """Serialize concurrent generation of one period on PostgreSQL.
    Other backends rely on the unique period_key alone."""
    if db.session.get_bind().dialect.name != "postgresql":
        return
    year, month = key.split("-")
    db.session.execute(text("SELECT pg_advisory_xact_lock(:ns, :k)"),
                       {"ns": 7301, "k": int(year) * 100 + int(month)})


def _default_working_days() -> int:
    try:
        return int(current_app.config.get("PAYROLL_DEFAULT_WORKING_DAYS", DEFAULT_WORKING_DAYS))
    except (RuntimeError, TypeError, ValueError):
        return DEFAULT_WORKING_DAYS


def generate_pay_run(month, year, user_id: Optional[int] = None) -> PayRun:
    month, year = _validate_period(month, year)
    key = period_key(month, year)
    start, end = period_bounds(month, year)
    working_days = _default_working_days()

    try:
        _lock_period(key)
        if PayRun.query.filter(PayRun.period_key == key).first() is not None:
            raise DuplicatePayRunError(f"A pay run for {key} already exists",
                                       payload={"month": month, "year": year})
        run = PayRun(month=month, year=year, period_key=key, status="draft",
                     created_by=user_id, generated_at=datetime.utcnow())
        db.session.add(run)
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise DuplicatePayRunError(f"A pay run for {key} already exists",
                                   payload={"month": month, "year": year})
    except Exception:
        db.session.rollback()
        raise

    try:
        rate_error: Optional[ConfigurationError] = None
        rate_set: Optional[RateSet] = None
        try:
            rate_set = rate_table.resolve(start)
        except ConfigurationError as e:
            rate_error = e

        exclusions: List[Dict[str, Any]] = []
        total_gross = total_deductions = total_net = ZERO
        count = 0

        for entry in active_roster(start, end):
            if rate_error is not None:
                log.warning("pay run %s: excluding employee %s (%s): %s",
                            key, entry.employee_id, rate_error.code, rate_error.message)
                exclusions.append(_exclusion(entry, rate_error))
                continue
            try:
                att = attendance_provider.outcome_for(entry.employee_id, month, year, working_days)
                rec = recovery.match(entry.employee_id, month, year)
                line = compute_line(entry, att, rate_set, rec)
            except ConfigurationError as e:
                log.warning("pay run %s: excluding employee %s (%s): %s",
                            key, entry.employee_id, e.code, e.message)
                exclusions.append(_exclusion(entry, e))
                continue

            run.items.append(_item_from_line(entry, line))
            total_gross += line.prorated_gross
            total_deductions += line.total_deductions
            total_net += line.net_pay
            count += 1

        run.rate_set_id = rate_set.source_id if rate_set else None
        run.employee_count = count
        run.total_gross = total_gross
        run.total_deductions = total_deductions
        run.total_net = total_net
        run.exclusions = exclusions

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("pay run %s generated: id=%s employees=%s excluded=%s gross=%s net=%s",
             key, run.id, count, len(exclusions), total_gross, total_net)
    return run


def get_pay_run(month, year) -> PayRun:
    month, year = _validate_period(month, year)
    run = get_pay_run_for_period(year, month)
    if run is None:
        abort(404, description=f"No pay run for {period_key(month, year)}")
    return run


# ---------- transitions ----------

def _locked_run(run_id: int) -> PayRun:
    run = db.session.execute(
        db.select(PayRun).filter_by(id=run_id).with_for_update()
    ).scalar_one_or_none()
    if run is None:
        abort(404, description="Pay run not found")
    return run


def _check_transition(run: PayRun, action: str) -> str:
    allowed, target = TRANSITIONS[action]
    if run.status not in allowed:
        raise InvalidTransitionError(
            f"Run in status '{run.status}' cannot {action} (allowed from: {', '.join(allowed)})",
            payload={"pay_run_id": run.id, "status": run.status},
        )
    return target


def approve_pay_run(run_id: int, user_id: Optional[int] = None) -> PayRun:
    try:
        run = _locked_run(run_id)
        run.status = _check_transition(run, "approve")
        run.approved_at = datetime.utcnow()
        run.approved_by = user_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    log.info("pay run %s approved", run.period_key)
    return run


def cancel_pay_run(run_id: int, user_id: Optional[int] = None) -> PayRun:
    try:
        run = _locked_run(run_id)
        run.status = _check_transition(run, "cancel")
        run.period_key = None  # frees the period for a fresh generation
        run.cancelled_at = datetime.utcnow()
        run.cancelled_by = user_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    log.info("pay run %s (%s-%02d) cancelled", run.id, run.year, run.month)
    return run


def _settle_advance(run: PayRun, ref: Dict[str, Any]) -> None:
    adv = db.session.get(AdvanceRecord, ref["id"], with_for_update=True)
    if adv is None:
        log.warning("pay run %s: advance %s no longer exists", run.id, ref["id"])
        return
    remaining = dec(adv.remaining_amount) - dec(ref["amount"])
    if remaining < 0:
        remaining = ZERO
    adv.remaining_amount = remaining
    adv.status = "deducted" if remaining == 0 else "partial"
    adv.last_pay_run_id = run.id


def _settle_installment(run: PayRun, ref: Dict[str, Any], now: datetime) -> None:
    inst = db.session.get(LoanInstallment, ref["id"], with_for_update=True)
    if inst is None or inst.status == "paid":
        log.warning("pay run %s: installment %s missing or already paid", run.id, ref["id"])
        return
    loan = inst.loan
    if loan.status != "active":
        log.warning("pay run %s: loan %s is %s; installment %s left unpaid",
                    run.id, loan.id, loan.status, inst.id)
        return
    inst.status = "paid"
    inst.paid_at = now
    inst.pay_run_id = run.id

    loan.paid_installments = (loan.paid_installments or 0) + 1
    remaining = dec(loan.remaining_balance) - dec(inst.amount)
    loan.remaining_balance = remaining if remaining > 0 else ZERO
    if loan.paid_installments >= loan.installment_count:
        loan.status = "completed"
        loan.remaining_balance = ZERO


def process_pay_run(run_id: int, user_id: Optional[int] = None) -> PayRun:
    """approved -> processed; settles every advance and installment the run recovered.
    Runs as one transaction under a row lock on the pay run."""
    try:
        run = _locked_run(run_id)
        target = _check_transition(run, "process")
        now = datetime.utcnow()
        for item in run.items:
            refs = item.recoveries or {}
            for ref in refs.get("advances") or []:
                _settle_advance(run, ref)
            for ref in refs.get("installments") or []:
                _settle_installment(run, ref, now)
        run.status = target
        run.processed_at = now
        run.processed_by = user_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    log.info("pay run %s processed: %s employees, net %s", run.period_key, run.employee_count, run.total_net)
    return run


def summary(run: PayRun) -> Dict[str, Any]:
    return {
        "employee_count": run.employee_count,
        "total_gross": as_float(run.total_gross),
        "total_deductions": as_float(run.total_deductions),
        "total_net": as_float(run.total_net),
        "excluded": len(run.exclusions or []),
    }
