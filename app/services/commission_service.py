"""
Washer commission for a completed check-in.

Each line item pays price * washer_commission_percentage / 100. Line items
without a price or without a percentage are add-ons and pay nothing. The job
total is summed exactly and rounded once, half up, to cents, so the order of
the line items never changes the result.
"""
from decimal import Decimal
from typing import List, NamedTuple, Optional
import logging

from app.core.exceptions import NoEarningsComputed, ValidationError
from app.models.job import Job, LineItem
from app.utils.money import to_money, percentage_of, ZERO

logger = logging.getLogger(__name__)

HUNDRED = Decimal(100)


class LineCommission(NamedTuple):
    service_id: Optional[int]
    price: Optional[Decimal]
    percentage: Optional[Decimal]
    worker_share: Decimal
    company_share: Decimal


class CommissionBreakdown(NamedTuple):
    job_id: object
    lines: List[LineCommission]
    worker_total: Decimal
    company_total: Decimal


def _check_ranges(item: LineItem):
    if item.price is not None and item.price < 0:
        raise ValidationError(
            f"Service {item.service_id} has a negative price ({item.price})")
    for pct in (item.commission_percentage, item.company_commission_percentage):
        if pct is not None and not (ZERO <= pct <= HUNDRED):
            raise ValidationError(
                f"Service {item.service_id} has a commission percentage outside 0-100 ({pct})")


def _share(price: Optional[Decimal], percentage: Optional[Decimal]) -> Decimal:
    # Missing or zero values are treated as non-commissionable
    if not price or not percentage:
        return ZERO
    return percentage_of(price, percentage)


def line_commission(item: LineItem) -> LineCommission:
    _check_ranges(item)
    return LineCommission(
        service_id=item.service_id,
        price=item.price,
        percentage=item.commission_percentage,
        worker_share=_share(item.price, item.commission_percentage),
        company_share=_share(item.price, item.company_commission_percentage),
    )


def compute_breakdown(job: Job) -> CommissionBreakdown:
    """Worker and company shares per line item; totals rounded to cents."""
    lines = [line_commission(item) for item in job.line_items]
    worker_total = to_money(sum((line.worker_share for line in lines), ZERO))
    company_total = to_money(sum((line.company_share for line in lines), ZERO))
    return CommissionBreakdown(job.id, lines, worker_total, company_total)


def compute_worker_earnings(job: Job) -> Decimal:
    """
    Total commission owed to the assigned washer for `job`.

    Raises:
        NoEarningsComputed: the job has services but none of them pays a
            commission, which almost always means the catalog is missing its
            commission configuration.
    """
    breakdown = compute_breakdown(job)
    if job.line_items and breakdown.worker_total == ZERO:
        logger.warning(
            "No earnings calculated for job %s (%d services)", job.id, len(job.line_items))
        raise NoEarningsComputed(
            f"No earnings calculated for check-in {job.id}: no service has a commission configured",
            job_id=job.id,
        )
    return breakdown.worker_total
