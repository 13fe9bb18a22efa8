import os
from datetime import date
from decimal import Decimal

import pytest

from payroll_api import create_app
from payroll_api.common.errors import DuplicatePayRunError, InvalidTransitionError
from payroll_api.extensions import db
from payroll_api.models.advances import AdvanceRecord
from payroll_api.models.attendance import AttendanceRecord
from payroll_api.models.employee import Employee
from payroll_api.models.loans import LoanRecord
from payroll_api.models.payroll.pay_run import PayRun, PayRunItem
from payroll_api.models.payroll.rate_set import RateSetConfig
from payroll_api.models.salary import SalaryStructure
from payroll_api.services import loan_service
from payroll_api.services import pay_run_service as svc
from payroll_api.services.rate_table import DEFAULT_RATES
from payroll_api.services.salary_service import revise_structure


def _mk_app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    return app


def _rates():
    db.session.add(RateSetConfig(label="default", effective_from=date(2025, 1, 1), **DEFAULT_RATES))
    db.session.commit()


def _employee(code, first, last=None, **kw):
    e = Employee(code=code, first_name=first, last_name=last,
                 department=kw.pop("department", "Engineering"),
                 designation=kw.pop("designation", "Engineer"), **kw)
    db.session.add(e); db.session.commit()
    return e


def _structure(emp, ctc, effective_from=date(2025, 1, 1), **kw):
    values = {"ctc": Decimal(str(ctc)), "includes_pf": True, "includes_esi": True}
    values.update(kw)
    return revise_structure(emp.id, effective_from, values)


def _scenario():
    """Two payable employees plus two that must be excluded and one inactive."""
    _rates()
    asha = _employee("E001", "Asha", "Rao")
    _structure(asha, 1200000, conveyance=1600, medical=1250)
    db.session.add(AttendanceRecord(employee_id=asha.id, month=3, year=2025, total_working_days=26,
                                    present_days=24, paid_leave_days=2))
    loan = loan_service.create_loan(asha.id, 12000, 0, 12, 3, 2025)
    adv = loan_service.create_advance(asha.id, 5000, 2, 2025, 3, 2025)

    vik = _employee("E002", "Vikram", "Das")
    _structure(vik, 240000)
    db.session.add(AttendanceRecord(employee_id=vik.id, month=3, year=2025, total_working_days=26,
                                    present_days=20, absent_days=6))

    nostruct = _employee("E003", "Neha")
    broken = _employee("E004", "Kiran")
    db.session.add(SalaryStructure(employee_id=broken.id, effective_from=date(2025, 1, 1),
                                   ctc=Decimal("120000"), conveyance=Decimal("4000")))
    _employee("E005", "Old", status="inactive")
    db.session.commit()
    return {"asha": asha.id, "vik": vik.id, "nostruct": nostruct.id, "broken": broken.id,
            "loan": loan.id, "advance": adv.id}


def test_generate_computes_lines_totals_and_exclusions():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        ids = _scenario()
        run = svc.generate_pay_run(3, 2025, user_id=9)

        assert run.status == "draft"
        assert run.period_key == "2025-03"
        assert run.employee_count == 2
        items = {i.employee_id: i for i in run.items}
        assert set(items) == {ids["asha"], ids["vik"]}

        a = items[ids["asha"]]
        assert a.employee_name == "Asha Rao"
        assert a.gross == Decimal("100000.00")
        assert a.payable_days == 26 and a.lop_days == 0
        assert a.prorated_gross == Decimal("100000.00")
        assert a.pf_employee == a.pf_employer == Decimal("1800.00")
        assert a.esi_employee == Decimal("0")
        assert a.professional_tax == Decimal("200.00")
        assert a.advance_deduction == Decimal("5000.00")
        assert a.loan_deduction == Decimal("1000.00")
        assert a.net_pay == Decimal("92000.00")

        v = items[ids["vik"]]
        assert v.gross == Decimal("20000.00")
        assert v.prorated_gross == Decimal("15384.62")
        assert v.lop_amount == Decimal("4615.38")
        # statutory deductions stay on the full entitlement
        assert v.pf_employee == Decimal("1200.00")
        assert v.esi_employee == Decimal("150.00")
        assert v.esi_employer == Decimal("650.00")
        assert v.net_pay == Decimal("14034.62")

        assert run.total_gross == Decimal("115384.62")
        assert run.total_deductions == Decimal("9350.00")
        assert run.total_net == Decimal("106034.62")

        excluded = {x["employee_id"]: x for x in run.exclusions}
        assert set(excluded) == {ids["nostruct"], ids["broken"]}
        assert excluded[ids["nostruct"]]["code"] == "CONFIGURATION_ERROR"
        assert excluded[ids["broken"]]["code"] == "INCONSISTENT_SALARY_STRUCTURE"

        # generation never touches the recovery sources
        assert db.session.get(AdvanceRecord, ids["advance"]).status == "pending"
        assert db.session.get(LoanRecord, ids["loan"]).paid_installments == 0


def test_generate_twice_is_rejected():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _scenario()
        svc.generate_pay_run(3, 2025)
        with pytest.raises(DuplicatePayRunError):
            svc.generate_pay_run(3, 2025)
        assert PayRun.query.count() == 1


def test_cancel_frees_the_period_for_regeneration():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _scenario()
        first = svc.generate_pay_run(3, 2025)
        svc.cancel_pay_run(first.id)
        assert first.status == "cancelled"
        assert first.period_key is None

        second = svc.generate_pay_run(3, 2025)
        assert second.id != first.id
        assert svc.get_pay_run(3, 2025).id == second.id


def test_state_machine_and_processing_settles_recoveries():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        ids = _scenario()
        run = svc.generate_pay_run(3, 2025)

        with pytest.raises(InvalidTransitionError):
            svc.process_pay_run(run.id)  # draft cannot be processed

        svc.approve_pay_run(run.id, user_id=4)
        with pytest.raises(InvalidTransitionError):
            svc.approve_pay_run(run.id)

        svc.process_pay_run(run.id, user_id=4)
        assert run.status == "processed"
        assert run.processed_by == 4

        adv = db.session.get(AdvanceRecord, ids["advance"])
        assert adv.status == "deducted"
        assert adv.remaining_amount == Decimal("0")
        assert adv.last_pay_run_id == run.id

        loan = db.session.get(LoanRecord, ids["loan"])
        assert loan.paid_installments == 1
        assert loan.remaining_balance == Decimal("11000.00")
        assert loan.installments[0].status == "paid"
        assert loan.installments[0].pay_run_id == run.id
        assert loan.installments[1].status == "pending"

        # processing twice would double-deduct
        with pytest.raises(InvalidTransitionError):
            svc.process_pay_run(run.id)
        with pytest.raises(InvalidTransitionError):
            svc.cancel_pay_run(run.id)
        assert db.session.get(LoanRecord, ids["loan"]).paid_installments == 1

        # next month only sees the next installment
        april = svc.generate_pay_run(4, 2025)
        a = next(i for i in april.items if i.employee_id == ids["asha"])
        assert a.advance_deduction == Decimal("0")
        assert a.loan_deduction == Decimal("1000.00")


def test_loan_completes_when_last_installment_processed():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        e = _employee("L1", "Sam")
        _structure(e, 600000)
        loan = loan_service.create_loan(e.id, 1000, 0, 2, 5, 2025)
        for month in (5, 6):
            run = svc.generate_pay_run(month, 2025)
            svc.approve_pay_run(run.id)
            svc.process_pay_run(run.id)
        loan = db.session.get(LoanRecord, loan.id)
        assert loan.status == "completed"
        assert loan.paid_installments == 2
        assert loan.remaining_balance == Decimal("0")


def test_esi_drops_out_the_month_a_raise_crosses_the_ceiling():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        e = _employee("S1", "Tara")
        _structure(e, 240000)
        jan = svc.generate_pay_run(1, 2025)
        assert jan.items[0].esi_employee == Decimal("150.00")

        revise_structure(e.id, date(2025, 2, 1), {"ctc": Decimal("300000"),
                                                  "includes_pf": True, "includes_esi": True})
        feb = svc.generate_pay_run(2, 2025)
        item = feb.items[0]
        assert item.gross == Decimal("25000.00")
        assert item.esi_employee == item.esi_employer == Decimal("0")
        assert item.pf_employee == Decimal("1500.00")
        assert item.net_pay == Decimal("23500.00")


def test_snapshot_survives_employee_edits():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        e = _employee("N1", "Isha", "Menon", department="Sales")
        _structure(e, 600000)
        run = svc.generate_pay_run(3, 2025)
        e.first_name = "Ishaan"; e.department = "Finance"
        db.session.commit()

        item = db.session.get(PayRunItem, run.items[0].id)
        assert item.employee_name == "Isha Menon"
        assert item.department == "Sales"


def test_inconsistent_attendance_excludes_only_that_employee():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        ok_emp = _employee("T1", "Good")
        bad_emp = _employee("T2", "Bad")
        _structure(ok_emp, 600000)
        _structure(bad_emp, 600000)
        db.session.add(AttendanceRecord(employee_id=bad_emp.id, month=3, year=2025, total_working_days=20,
                                        present_days=20, absent_days=3))
        db.session.commit()

        run = svc.generate_pay_run(3, 2025)
        assert [i.employee_id for i in run.items] == [ok_emp.id]
        assert run.exclusions[0]["employee_id"] == bad_emp.id
        assert run.exclusions[0]["code"] == "INCONSISTENT_ATTENDANCE"


def test_missing_rate_set_excludes_everyone_but_still_records_the_run():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        e = _employee("X1", "Nobody")
        db.session.add(SalaryStructure(employee_id=e.id, effective_from=date(2025, 1, 1),
                                       ctc=Decimal("600000")))
        db.session.commit()

        run = svc.generate_pay_run(3, 2025)
        assert run.employee_count == 0
        assert run.rate_set_id is None
        assert run.exclusions[0]["code"] == "CONFIGURATION_ERROR"
        assert run.total_net == Decimal("0")


def test_failure_mid_roster_leaves_nothing_behind(monkeypatch):
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _scenario()
        real = svc.compute_line
        calls = {"n": 0}

        def flaky(*args, **kw):
            calls["n"] += 1
            if calls["n"] == 2:
                raise RuntimeError("connection reset")
            return real(*args, **kw)

        monkeypatch.setattr(svc, "compute_line", flaky)
        with pytest.raises(RuntimeError):
            svc.generate_pay_run(3, 2025)
        assert PayRun.query.count() == 0
        assert PayRunItem.query.count() == 0

        run = svc.generate_pay_run(3, 2025)
        assert run.employee_count == 2
        assert PayRunItem.query.count() == 2
        assert len(run.exclusions) == 2


def test_processing_skips_installments_of_a_cancelled_loan():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        ids = _scenario()
        run = svc.generate_pay_run(3, 2025)
        svc.approve_pay_run(run.id)
        loan_service.cancel_loan(ids["loan"])

        svc.process_pay_run(run.id)
        assert run.status == "processed"
        loan = db.session.get(LoanRecord, ids["loan"])
        assert loan.status == "cancelled"
        assert loan.paid_installments == 0
        assert loan.remaining_balance == Decimal("12000.00")
        assert loan.installments[0].status == "pending"
        # the advance in the same run still settles
        assert db.session.get(AdvanceRecord, ids["advance"]).status == "deducted"


def test_missing_rate_set_warns_for_each_excluded_employee(caplog):
    app = _mk_app()
    with app.app_context():
        db.create_all()
        for code in ("W1", "W2"):
            e = _employee(code, "Warned")
            db.session.add(SalaryStructure(employee_id=e.id, effective_from=date(2025, 1, 1),
                                           ctc=Decimal("600000")))
        db.session.commit()

        with caplog.at_level("WARNING", logger="payroll_api.services.pay_run_service"):
            run = svc.generate_pay_run(3, 2025)
        assert len(run.exclusions) == 2
        warned = [r for r in caplog.records if "excluding employee" in r.getMessage()]
        assert len(warned) == 2


def test_roster_respects_joining_and_leaving_dates():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        joined_later = _employee("D1", "Later", doj=date(2025, 4, 2))
        left_before = _employee("D2", "Gone", dol=date(2025, 2, 28))
        left_mid = _employee("D3", "Mid", dol=date(2025, 3, 15))
        for emp in (joined_later, left_before, left_mid):
            _structure(emp, 600000)

        run = svc.generate_pay_run(3, 2025)
        assert [i.employee_id for i in run.items] == [left_mid.id]


def test_get_pay_run_and_invalid_period():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        from werkzeug.exceptions import NotFound
        with pytest.raises(NotFound):
            svc.get_pay_run(3, 2025)
        from payroll_api.common.errors import APIError
        with pytest.raises(APIError) as ei:
            svc.generate_pay_run(13, 2025)
        assert ei.value.code == "INVALID_PERIOD"


def test_generate_pay_run_cli():
    app = _mk_app()
    with app.app_context():
        db.create_all()
        _rates()
        _structure(_employee("C1", "Cli"), 600000)
    runner = app.test_cli_runner()
    res = runner.invoke(args=["generate-pay-run", "--month", "March", "--year", "2025"])
    assert res.exit_code == 0, res.output
    assert "2025-03" in res.output
    assert "employees=1" in res.output
    res = runner.invoke(args=["generate-pay-run", "--month", "3", "--year", "2025"])
    assert res.exit_code != 0
    assert "DUPLICATE_PAY_RUN" in res.output
