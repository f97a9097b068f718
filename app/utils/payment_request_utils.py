from decimal import Decimal
from typing import NamedTuple

from app.core.config import settings
from app.core.exceptions import AdvanceNotAllowed, InsufficientNetEarnings
from app.utils.money import to_money


class PayoutCeiling(NamedTuple):
    total_earnings: Decimal
    total_deductions: Decimal
    ceiling: Decimal


def calculate_payout_ceiling(total_earnings: Decimal, total_deductions: Decimal) -> PayoutCeiling:
    """
    Highest amount a worker may request: earnings net of custody deductions.

    May be negative when deductions exceed earnings.
    """
    total_earnings = to_money(total_earnings)
    total_deductions = to_money(total_deductions)
    return PayoutCeiling(total_earnings, total_deductions, total_earnings - total_deductions)


def assert_within_ceiling(requested_amount: Decimal, ceiling: PayoutCeiling):
    if requested_amount > ceiling.ceiling:
        raise InsufficientNetEarnings(
            f"Requested amount ({requested_amount}) exceeds available earnings "
            f"net of deductions ({ceiling.ceiling})",
            requested_amount=requested_amount,
            ceiling=ceiling.ceiling,
        )


def assert_can_request_advance(requested_amount: Decimal, total_earnings: Decimal,
                               max_amount: Decimal = None, earnings_threshold: Decimal = None):
    """
    Advances are for workers with little or nothing earned yet, and are capped.
    """
    max_amount = to_money(settings.ADVANCE_MAX_AMOUNT if max_amount is None else max_amount)
    earnings_threshold = to_money(
        settings.ADVANCE_EARNINGS_THRESHOLD if earnings_threshold is None else earnings_threshold)

    if total_earnings > earnings_threshold:
        raise AdvanceNotAllowed(
            f"Advance payments can only be requested while earnings are {earnings_threshold} or less")
    if requested_amount > max_amount:
        raise AdvanceNotAllowed(
            f"Advance payment cannot exceed {max_amount}")