from decimal import Decimal

import pytest

from payroll_api.common.errors import InvalidLoanTermsError
from payroll_api.services.emi_schedule import generate, next_period


def test_fifty_thousand_at_ten_percent_over_twelve():
    plan = generate(50000, 10, 12, 1, 2025)
    assert plan.total_payable == Decimal("55000.00")
    assert plan.installment_amount == Decimal("4583.33")
    assert len(plan.schedule) == 12
    assert sum(i.amount for i in plan.schedule) == Decimal("55000.00")
    # last one absorbs the rounding remainder
    assert plan.schedule[-1].amount == Decimal("4583.37")
    assert all(i.amount == Decimal("4583.33") for i in plan.schedule[:-1])


def test_schedule_wraps_december_into_next_year():
    plan = generate(3000, 0, 4, 11, 2025)
    periods = [(i.month, i.year) for i in plan.schedule]
    assert periods == [(11, 2025), (12, 2025), (1, 2026), (2, 2026)]
    assert [i.seq for i in plan.schedule] == [1, 2, 3, 4]


def test_exact_division_has_no_adjustment():
    plan = generate(12000, 0, 12, 4, 2025)
    assert plan.installment_amount == Decimal("1000.00")
    assert {i.amount for i in plan.schedule} == {Decimal("1000.00")}


@pytest.mark.parametrize("principal,count", [(0, 12), (-100, 12), (1000, 0), (1000, -3)])
def test_invalid_terms_rejected(principal, count):
    with pytest.raises(InvalidLoanTermsError):
        generate(principal, 10, count, 1, 2025)


def test_negative_rate_and_bad_month_rejected():
    with pytest.raises(InvalidLoanTermsError):
        generate(1000, -1, 10, 1, 2025)
    with pytest.raises(InvalidLoanTermsError):
        generate(1000, 5, 10, 13, 2025)


def test_more_installments_than_the_amount_can_cover():
    # 0.05 over 10 installments rounds to 0.01 each, leaving nothing for the last
    with pytest.raises(InvalidLoanTermsError):
        generate(Decimal("0.05"), 0, 10, 1, 2025)


def test_next_period():
    assert next_period(12, 2025) == (1, 2026)
    assert next_period(5, 2025) == (6, 2025)
