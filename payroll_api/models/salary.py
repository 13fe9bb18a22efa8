from datetime import datetime, date
from decimal import Decimal
from payroll_api.extensions import db

class SalaryStructure(db.Model):
    """Effective-dated salary structure. A revision adds a row; rows are never edited
    once a pay run has consumed them."""
    __tablename__ = "salary_structures"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id"), nullable=False, index=True)

    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)

    ctc = db.Column(db.Numeric(14, 2), nullable=False)              # annual
    basic_pct = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("50"))  # of CTC
    hra_pct = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal("40"))    # of basic

    # fixed monthly allowances
    conveyance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    telephone = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    medical = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    other_allowances = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    includes_pf = db.Column(db.Boolean, nullable=False, default=True)
    includes_esi = db.Column(db.Boolean, nullable=False, default=False)
    ctc_includes_employer_contributions = db.Column(db.Boolean, nullable=False, default=False)
    tds_pct = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    payment_mode = db.Column(db.Enum("bank", "cash", "cheque", name="payment_mode_enum"),
                             nullable=False, default="bank")

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.UniqueConstraint("employee_id", "effective_from", name="uq_salary_emp_from"),
    )
