"""
Financial helpers shared by the component formulas and the quote aggregator.

Mirrors the spreadsheet functions the quote model was built on: PMT for
equipment financing, CPI escalation per contract year, and the stacked
volume/bundle/annual/term discount ladder.
"""
import math
from typing import Optional

from ..config.settings import DiscountPolicy
from .models import DiscountSummary


def monthly_payment(principal: float, annual_rate: float, term_months: int) -> float:
    """
    Level monthly payment for a loan (spreadsheet PMT without the sign flip).

    monthly = P * r / (1 - (1 + r) ** -n) with r = annual_rate / 12.
    A zero rate falls back to straight-line P / n.
    """
    if term_months <= 0:
        raise ValueError("term_months must be positive")
    rate = annual_rate / 12
    if rate == 0:
        return principal / term_months
    return (principal * rate) / (1 - (1 + rate) ** (-term_months))


def escalation_schedule(year_base: float, cpi_rate: float, years: int) -> list[float]:
    """Per-year amounts, year K = year_base * (1 + cpi_rate) ** (K - 1)."""
    return [year_base * (1 + cpi_rate) ** (k - 1) for k in range(1, years + 1)]


def escalated_total(year_base: float, cpi_rate: float, years: int) -> float:
    """Multi-year total as the sum of the escalated per-year amounts."""
    return math.fsum(escalation_schedule(year_base, cpi_rate, years))


def round_currency(value: float, digits: int = 0) -> float:
    """Round half away from zero, like the spreadsheet ROUND function."""
    factor = 10 ** digits
    return math.copysign(math.floor(abs(value) * factor + 0.5) / factor, value)


def volume_discount_rate(monthly_total: float, policy: Optional[DiscountPolicy] = None) -> float:
    """Discount rate for the aggregate monthly spend."""
    policy = policy or DiscountPolicy()
    for threshold, rate in sorted(policy.volume_tiers, reverse=True):
        if monthly_total >= threshold:
            return rate
    return 0.0


def bundle_bonus_rate(component_count: int, policy: Optional[DiscountPolicy] = None) -> float:
    """Additional rate for bundling several components into one quote."""
    policy = policy or DiscountPolicy()
    for threshold, rate in sorted(policy.bundle_tiers, reverse=True):
        if component_count >= threshold:
            return rate
    return 0.0


def stack_discounts(
    monthly_total: float,
    component_count: int,
    policy: Optional[DiscountPolicy] = None,
    additional_rate: float = 0.0,
) -> DiscountSummary:
    """
    Stack the discount ladder.

    monthly = min(volume + bundle + additional, max_monthly)
    annual  = min(monthly + annual_incentive, max_annual)
    term    = min(annual + term_incentive, max_term)

    Each cap is applied right after its own additive step.
    """
    policy = policy or DiscountPolicy()

    volume = volume_discount_rate(monthly_total, policy)
    bundle = bundle_bonus_rate(component_count, policy)

    raw_monthly = volume + bundle + additional_rate
    monthly = min(raw_monthly, policy.max_monthly_discount)
    annual = min(monthly + policy.annual_incentive, policy.max_annual_discount)
    term = min(annual + policy.term_incentive, policy.max_term_discount)

    return DiscountSummary(
        volume_rate=volume,
        bundle_rate=bundle,
        additional_rate=additional_rate,
        monthly_discount=monthly,
        annual_discount=annual,
        term_discount=term,
        monthly_capped=raw_monthly > policy.max_monthly_discount,
        reasons={
            "volume_discount": volume > 0,
            "bundle_discount": bundle > 0,
            "additional_discount": additional_rate > 0,
            "annual_payment": True,
            "term_commitment": True,
        },
    )
