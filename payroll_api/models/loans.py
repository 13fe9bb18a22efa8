from datetime import datetime
from payroll_api.extensions import db

LOAN_TYPES = ("personal", "vehicle", "home", "education", "emergency", "other")


class LoanRecord(db.Model):
    __tablename__ = "loan_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    loan_type = db.Column(db.Enum(*LOAN_TYPES, name="loan_type_enum"), nullable=False, default="personal")

    principal = db.Column(db.Numeric(14, 2), nullable=False)
    interest_rate = db.Column(db.Numeric(5, 2), nullable=False, default=0)  # annual %, simple
    installment_count = db.Column(db.Integer, nullable=False)
    installment_amount = db.Column(db.Numeric(14, 2), nullable=False)
    total_payable = db.Column(db.Numeric(14, 2), nullable=False)

    start_month = db.Column(db.Integer, nullable=False)
    start_year = db.Column(db.Integer, nullable=False)

    paid_installments = db.Column(db.Integer, nullable=False, default=0)
    remaining_balance = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.Enum("active", "completed", "cancelled", name="loan_status_enum"),
                       nullable=False, default="active")

    remarks = db.Column(db.Text)
    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")
    installments = db.relationship(
        "LoanInstallment",
        back_populates="loan",
        order_by="LoanInstallment.seq",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("ix_loan_emp_status", "employee_id", "status"),
    )


class LoanInstallment(db.Model):
    __tablename__ = "loan_installments"

    id = db.Column(db.Integer, primary_key=True)
    loan_id = db.Column(db.Integer, db.ForeignKey("loan_records.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    seq = db.Column(db.Integer, nullable=False)  # 1-based
    month = db.Column(db.Integer, nullable=False)
    year = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.Enum("pending", "paid", name="installment_status_enum"),
                       nullable=False, default="pending")

    paid_at = db.Column(db.DateTime)
    pay_run_id = db.Column(db.Integer, db.ForeignKey("pay_runs.id"))  # run that settled it

    loan = db.relationship("LoanRecord", back_populates="installments")

    __table_args__ = (
        db.UniqueConstraint("loan_id", "seq", name="uq_installment_loan_seq"),
        db.Index("ix_installment_period", "year", "month", "status"),
    )
