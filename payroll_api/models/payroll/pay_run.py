from datetime import datetime
from payroll_api.extensions import db

PAY_RUN_STATUSES = ("draft", "approved", "processed", "cancelled")


class PayRun(db.Model):
    __tablename__ = "pay_runs"

    id = db.Column(db.Integer, primary_key=True)
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    # "YYYY-MM" while the run is live, NULL once cancelled: one live run per period
    period_key = db.Column(db.String(7), unique=True)
    status = db.Column(db.Enum(*PAY_RUN_STATUSES, name="payrun_status_enum"),
                       nullable=False, default="draft")

    rate_set_id = db.Column(db.Integer, db.ForeignKey("rate_sets.id"))

    employee_count = db.Column(db.Integer, nullable=False, default=0)
    total_gross = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_deductions = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    total_net = db.Column(db.Numeric(16, 2), nullable=False, default=0)
    exclusions = db.Column(db.JSON)  # [{employee_id, employee_code, employee_name, code, reason}]

    created_by = db.Column(db.Integer)
    generated_at = db.Column(db.DateTime, default=datetime.utcnow)
    approved_at = db.Column(db.DateTime)
    approved_by = db.Column(db.Integer)
    processed_at = db.Column(db.DateTime)
    processed_by = db.Column(db.Integer)
    cancelled_at = db.Column(db.DateTime)
    cancelled_by = db.Column(db.Integer)

    items = db.relationship(
        "PayRunItem",
        back_populates="pay_run",
        order_by="PayRunItem.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_pay_runs_period", "year", "month"),
    )


class PayRunItem(db.Model):
    """Per-employee snapshot. Identity fields are copied by value at generation time."""
    __tablename__ = "pay_run_items"

    id = db.Column(db.Integer, primary_key=True)
    pay_run_id = db.Column(db.Integer, db.ForeignKey("pay_runs.id", ondelete="CASCADE"),
                           nullable=False, index=True)
    employee_id = db.Column(db.Integer, nullable=False, index=True)
    salary_structure_id = db.Column(db.Integer)

    employee_code = db.Column(db.String(32))
    employee_name = db.Column(db.String(200), nullable=False)
    department = db.Column(db.String(120))
    designation = db.Column(db.String(120))
    payment_mode = db.Column(db.String(16))

    # earnings (monthly entitlement)
    basic = db.Column(db.Numeric(14, 2), default=0)
    hra = db.Column(db.Numeric(14, 2), default=0)
    conveyance = db.Column(db.Numeric(14, 2), default=0)
    telephone = db.Column(db.Numeric(14, 2), default=0)
    medical = db.Column(db.Numeric(14, 2), default=0)
    special_allowance = db.Column(db.Numeric(14, 2), default=0)
    other_allowances = db.Column(db.Numeric(14, 2), default=0)
    gross = db.Column(db.Numeric(14, 2), default=0)

    # attendance / pro-ration
    total_working_days = db.Column(db.Integer, default=0)
    payable_days = db.Column(db.Integer, default=0)
    lop_days = db.Column(db.Integer, default=0)
    attendance_defaulted = db.Column(db.Boolean, default=False)
    lop_amount = db.Column(db.Numeric(14, 2), default=0)
    prorated_gross = db.Column(db.Numeric(14, 2), default=0)

    # deductions
    pf_employee = db.Column(db.Numeric(14, 2), default=0)
    pf_employer = db.Column(db.Numeric(14, 2), default=0)
    esi_employee = db.Column(db.Numeric(14, 2), default=0)
    esi_employer = db.Column(db.Numeric(14, 2), default=0)
    professional_tax = db.Column(db.Numeric(14, 2), default=0)
    tds = db.Column(db.Numeric(14, 2), default=0)
    advance_deduction = db.Column(db.Numeric(14, 2), default=0)
    loan_deduction = db.Column(db.Numeric(14, 2), default=0)
    total_deductions = db.Column(db.Numeric(14, 2), default=0)
    net_pay = db.Column(db.Numeric(14, 2), default=0)

    # {"advances": [{"id", "amount"}], "installments": [{"id", "loan_id", "amount"}]}
    recoveries = db.Column(db.JSON)

    pay_run = db.relationship("PayRun", back_populates="items")

    __table_args__ = (
        db.UniqueConstraint("pay_run_id", "employee_id", name="uq_pay_run_item_emp"),
    )
