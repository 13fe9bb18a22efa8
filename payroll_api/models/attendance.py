from datetime import datetime
from payroll_api.extensions import db

class AttendanceRecord(db.Model):
    """Monthly attendance outcome, one per (employee, month, year).
    Written by the attendance-entry workflow; read-only to payroll."""
    __tablename__ = "attendance_records"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)
    month = db.Column(db.Integer, nullable=False)  # 1..12
    year = db.Column(db.Integer, nullable=False)

    total_working_days = db.Column(db.Integer, nullable=False)
    present_days = db.Column(db.Integer, nullable=False, default=0)
    absent_days = db.Column(db.Integer, nullable=False, default=0)
    paid_leave_days = db.Column(db.Integer, nullable=False, default=0)
    unpaid_leave_days = db.Column(db.Integer, nullable=False, default=0)

    remarks = db.Column(db.String(255))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "month", "year", name="uq_attendance_emp_period"),
    )

    @property
    def payable_days(self) -> int:
        return (self.present_days or 0) + (self.paid_leave_days or 0)

    @property
    def loss_of_pay_days(self) -> int:
        return (self.absent_days or 0) + (self.unpaid_leave_days or 0)
