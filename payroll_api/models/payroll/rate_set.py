from datetime import datetime, date
from payroll_api.extensions import db


class RateSetConfig(db.Model):
    """Versioned statutory constants.

    pt_slabs shape (ascending lower bound, max null = open ended):
      [{"min": 0, "max": 25000, "amount": 0}, {"min": 25000.01, "max": null, "amount": 200}]
    """
    __tablename__ = "rate_sets"

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(80))

    effective_from = db.Column(db.Date, nullable=False, default=date.today)
    effective_to = db.Column(db.Date)

    pf_rate = db.Column(db.Numeric(6, 3), nullable=False)            # percent
    pf_wage_ceiling = db.Column(db.Numeric(14, 2), nullable=False)
    esi_rate = db.Column(db.Numeric(6, 3), nullable=False)           # employee percent
    esi_employer_rate = db.Column(db.Numeric(6, 3), nullable=False)
    esi_wage_ceiling = db.Column(db.Numeric(14, 2), nullable=False)
    pt_slabs = db.Column(db.JSON, nullable=False, default=list)

    created_by = db.Column(db.Integer)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_rate_sets_window", "effective_from", "effective_to"),
    )
