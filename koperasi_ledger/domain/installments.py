"""Installment schedule generation for loan repayment"""

from datetime import date
from decimal import ROUND_CEILING, Decimal
from typing import List

from koperasi_ledger.domain.models import Installment
from koperasi_ledger.domain.money import Money
from koperasi_ledger.utils.date_utils import add_months

WHOLE_UNIT = Decimal("1")


def generate_installment_schedule(
    principal: Money,
    tenor_months: int,
    start_date: date | None = None,
) -> List[Installment]:
    """
    Split a loan principal into monthly installments.

    Requirements:
    - One installment per month of tenor
    - Base amount rounded up to a whole currency unit
    - Last installment absorbs the remainder so the schedule sums to principal

    Args:
        principal: Disbursed amount to repay
        tenor_months: Number of monthly payments
        start_date: Disbursement date (default: today); first due one month later

    Returns:
        List of Installment objects with due dates and amounts

    Example:
        2,000,000 over 6 months → 5 × 333,334 + 333,330
    """
    if tenor_months <= 0 or not principal.is_positive():
        return []

    if start_date is None:
        start_date = date.today()

    base = (principal.amount / tenor_months).quantize(WHOLE_UNIT, rounding=ROUND_CEILING)
    base_amount = Money.of(base)

    installments = []
    scheduled = Money.zero()
    for i in range(tenor_months):
        remaining = principal - scheduled
        if i == tenor_months - 1 or remaining < base_amount:
            amount = remaining
        else:
            amount = base_amount

        if not amount.is_positive():
            break

        installments.append(
            Installment(number=i + 1, due_date=add_months(start_date, i + 1), amount=amount)
        )
        scheduled = scheduled + amount

    return installments
