from sqlalchemy import case
from payroll_api.models.payroll.pay_run import PayRun

def get_pay_run_for_period(year: int, month: int) -> PayRun | None:
    """
    Returns the PayRun for this month/year.
    Priority by status: processed > approved > draft > cancelled.
    Then by id desc (latest cancelled wins when nothing live exists).
    """
    status_order = case(
        (PayRun.status == "processed", 3),
        (PayRun.status == "approved", 2),
        (PayRun.status == "draft", 1),
        else_=0,
    )

    return (
        PayRun.query
        .filter(PayRun.year == year, PayRun.month == month)
        .order_by(status_order.desc(), PayRun.id.desc())
        .first()
    )


def latest_consumed_period():
    """(year, month) of the latest non-cancelled run, or None."""
    run = (
        PayRun.query
        .filter(PayRun.status != "cancelled")
        .order_by(PayRun.year.desc(), PayRun.month.desc())
        .first()
    )
    return (run.year, run.month) if run else None
