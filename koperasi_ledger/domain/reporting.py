"""Report math - ratios, growth and risk bands over ledger aggregates"""

from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Optional, Union

from koperasi_ledger.domain.money import Money

RATIO_PLACES = Decimal("0.0001")

Number = Union[Money, Decimal, int]


def _as_decimal(value: Number) -> Decimal:
    if isinstance(value, Money):
        return value.amount
    return Decimal(value)


def safe_divide(numerator: Number, denominator: Number) -> Optional[Decimal]:
    """
    Ratio rounded to 4 places, or None when the denominator is not positive.

    None means "undefined": a zero denominator never produces 0 or an error.
    """
    den = _as_decimal(denominator)
    if den <= 0:
        return None
    return (_as_decimal(numerator) / den).quantize(RATIO_PLACES, rounding=ROUND_HALF_EVEN)


def growth(current: Number, previous: Number) -> Optional[Decimal]:
    """Relative change vs the previous period; None when there is no previous data"""
    prev = _as_decimal(previous)
    if prev <= 0:
        return None
    return safe_divide(_as_decimal(current) - prev, prev)


def average_amount(total: Money, count: int) -> Optional[Money]:
    """Mean amount rounded half-even to cents; None when count is 0"""
    if count <= 0:
        return None
    return Money.of((total.amount / count).quantize(Decimal("0.01"), rounding=ROUND_HALF_EVEN))


def ratio_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def deficit_streak(net_flows_newest_first: Iterable[Money]) -> int:
    """Number of consecutive deficit months ending at the newest one"""
    streak = 0
    for net in net_flows_newest_first:
        if not net.is_negative():
            break
        streak += 1
    return streak


# Risk bands (None ratio -> "N/A")


def liquidity_risk(ratio: Optional[Decimal]) -> str:
    if ratio is None:
        return "N/A"
    if ratio > 2:
        return "SAFE"
    if ratio >= 1:
        return "WATCH"
    return "RISK"


def credit_expansion_risk(ratio: Optional[Decimal]) -> str:
    if ratio is None:
        return "N/A"
    if ratio < Decimal("0.75"):
        return "UNDERUTILIZED"
    if ratio <= Decimal("0.85"):
        return "OPTIMAL"
    if ratio <= Decimal("0.95"):
        return "WATCH"
    return "RISK"


def cashflow_risk(net_cashflow: Money) -> str:
    if net_cashflow.is_positive():
        return "POSITIVE"
    if net_cashflow.is_zero():
        return "NEUTRAL"
    return "NEGATIVE"


def cash_resilience_risk(coverage: Optional[Decimal]) -> str:
    if coverage is None:
        return "N/A"
    if coverage < 1:
        return "RISK"
    if coverage < Decimal("1.5"):
        return "ADEQUATE"
    return "STRONG"


def member_activity_risk(activity_ratio: Optional[Decimal]) -> str:
    if activity_ratio is None:
        return "N/A"
    if activity_ratio < Decimal("0.5"):
        return "LOW"
    if activity_ratio < Decimal("0.75"):
        return "DECLINING"
    return "STABLE"
