from datetime import datetime
from payroll_api.extensions import db

class AdvanceRecord(db.Model):
    """Salary advance paid in one period, recovered in full from a later pay run."""
    __tablename__ = "advance_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(14, 2), nullable=False)
    paid_month = db.Column(db.Integer, nullable=False)
    paid_year = db.Column(db.Integer, nullable=False)
    recovery_month = db.Column(db.Integer, nullable=False)
    recovery_year = db.Column(db.Integer, nullable=False)

    remaining_amount = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.Enum("pending", "partial", "deducted", name="advance_status_enum"),
                       nullable=False, default="pending")

    remarks = db.Column(db.Text)
    last_pay_run_id = db.Column(db.Integer, db.ForeignKey("pay_runs.id"))
    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.Index("ix_advance_recovery", "employee_id", "recovery_year", "recovery_month"),
    )
