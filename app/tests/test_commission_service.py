import pytest
from decimal import Decimal
from uuid import uuid4

from app.core.exceptions import NoEarningsComputed, ValidationError
from app.models.job import Job, LineItem
from app.services.commission_service import compute_worker_earnings, compute_breakdown


def make_job(*lines):
    return Job(
        id=uuid4(),
        assigned_worker_id=uuid4(),
        line_items=tuple(
            LineItem(service_id=i, price=price, commission_percentage=pct,
                     company_commission_percentage=company_pct)
            for i, (price, pct, company_pct) in enumerate(lines)
        ),
    )


def test_commission_skips_lines_without_percentage():
    job = make_job(
        (Decimal("1000"), Decimal("20"), None),
        (Decimal("500"), Decimal("0"), None),
    )
    assert compute_worker_earnings(job) == Decimal("200.00")


def test_commission_ignores_lines_missing_price_or_percentage():
    job = make_job(
        (Decimal("300"), Decimal("10"), None),
        (None, Decimal("50"), None),
        (Decimal("800"), None, None),
    )
    assert compute_worker_earnings(job) == Decimal("30.00")


def test_commission_rounds_once_half_up():
    # 3 x 0.335 = 1.005 -> 1.01; rounding each line first would give 1.02
    job = make_job(*[(Decimal("3.35"), Decimal("10"), None)] * 3)
    assert compute_worker_earnings(job) == Decimal("1.01")


def test_commission_is_independent_of_line_order():
    lines = [
        (Decimal("19.99"), Decimal("33.33"), None),
        (Decimal("45.50"), Decimal("12.5"), None),
        (Decimal("7.25"), Decimal("40"), None),
    ]
    forward = compute_worker_earnings(make_job(*lines))
    backward = compute_worker_earnings(make_job(*reversed(lines)))
    assert forward == backward == Decimal("15.25")


def test_job_without_line_items_earns_nothing():
    assert compute_worker_earnings(make_job()) == Decimal("0.00")


def test_job_with_services_but_no_commission_fails():
    job = make_job((Decimal("1000"), None, None), (Decimal("500"), Decimal("0"), None))
    with pytest.raises(NoEarningsComputed):
        compute_worker_earnings(job)


def test_percentage_out_of_range_is_rejected():
    job = make_job((Decimal("100"), Decimal("120"), None))
    with pytest.raises(ValidationError):
        compute_worker_earnings(job)


def test_negative_price_is_rejected():
    job = make_job((Decimal("-5"), Decimal("10"), None))
    with pytest.raises(ValidationError):
        compute_worker_earnings(job)


def test_breakdown_includes_company_share():
    job = make_job(
        (Decimal("1000"), Decimal("20"), Decimal("30")),
        (Decimal("500"), Decimal("10"), None),
    )
    breakdown = compute_breakdown(job)
    assert breakdown.worker_total == Decimal("250.00")
    assert breakdown.company_total == Decimal("300.00")
    assert [line.worker_share for line in breakdown.lines] == [Decimal("200"), Decimal("50")]
