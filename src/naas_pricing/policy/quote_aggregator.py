"""
Quote Aggregator - combines the latest component results into quote totals.

Pure functions: identical results and settings always produce bit-identical
totals. Components are summed in id order with math.fsum.
"""
import logging
import math
from typing import Iterable, Mapping, Optional

from ..config.settings import get_settings, Settings
from ..engine.errors import AggregationError
from ..engine.financial import escalation_schedule, stack_discounts
from ..engine.models import BillingModel, CalculationResult, ComponentType, Quote, Totals, YearAmount

logger = logging.getLogger(__name__)


def aggregate_quote(
    results: Mapping[ComponentType, CalculationResult],
    billing_models: Optional[Mapping[ComponentType, BillingModel]] = None,
    settings: Optional[Settings] = None,
    additional_discount: Optional[float] = None,
) -> Quote:
    """
    Aggregate component results into a discounted Quote.

    Recurring monthly spend drives the volume discount; the number of
    components drives the bundle bonus. One-time costs are never discounted.

    Raises:
        AggregationError: if there are no results or a result has non-finite totals
    """
    settings = settings or get_settings()
    if additional_discount is None:
        additional_discount = settings.additional_discount

    if not results:
        raise AggregationError("No component results to aggregate")

    ordered = sorted(results.items(), key=lambda item: ComponentType(item[0]).value)

    for component_type, result in ordered:
        if not result.totals.is_finite():
            raise AggregationError(f"Non-finite totals for {ComponentType(component_type).value}")

    def is_recurring(component_type, result) -> bool:
        if billing_models and component_type in billing_models:
            return billing_models[component_type] is BillingModel.RECURRING
        return result.metadata.get("billing_model", BillingModel.RECURRING.value) == BillingModel.RECURRING.value

    recurring = [(c, r) for c, r in ordered if is_recurring(c, r)]
    one_time = [(c, r) for c, r in ordered if not is_recurring(c, r)]

    subtotal_monthly = math.fsum(r.totals.monthly for _, r in recurring)
    subtotal_one_time = math.fsum(r.totals.one_time for _, r in ordered)
    annual_base = subtotal_monthly * settings.months_per_year

    discounts = stack_discounts(
        subtotal_monthly,
        len(ordered),
        policy=settings.discount_policy,
        additional_rate=additional_discount,
    )

    schedule = escalation_schedule(annual_base, settings.cpi_rate, settings.contract_years)

    monthly = subtotal_monthly * (1 - discounts.monthly_discount)
    totals = Totals(
        one_time=subtotal_one_time,
        monthly=monthly,
        annual=monthly * settings.months_per_year * (1 - discounts.annual_delta),
        three_year=math.fsum(schedule) * (1 - discounts.term_discount),
    )
    if not totals.is_finite():
        raise AggregationError(f"Non-finite quote totals {totals.as_dict()}")

    quote = Quote(
        components=dict(ordered),
        subtotals=Totals(
            one_time=subtotal_one_time,
            monthly=subtotal_monthly,
            annual=annual_base,
            three_year=math.fsum(schedule),
        ),
        discounts=discounts,
        totals=totals,
        escalation=[YearAmount(year=i + 1, amount=amount) for i, amount in enumerate(schedule)],
        component_count=len(ordered),
        one_time_components=[ComponentType(c).value for c, _ in one_time],
        recurring_components=[ComponentType(c).value for c, _ in recurring],
        stale_components=[ComponentType(c).value for c, r in ordered if r.stale],
    )

    if discounts.monthly_capped:
        quote.add_warning(
            f"Monthly discount capped at {settings.discount_policy.max_monthly_discount:.0%}"
        )
    for component_type, result in ordered:
        if result.stale:
            quote.add_warning(f"{ComponentType(component_type).value} is showing its last good result: {result.error}")
        defaulted = result.metadata.get("using_default_context")
        if defaulted:
            quote.add_warning(
                f"{ComponentType(component_type).value} used default values in place of {', '.join(defaulted)}"
            )

    return quote


def build_quote(
    results: Mapping[ComponentType, CalculationResult],
    billing_models: Optional[Mapping[ComponentType, BillingModel]] = None,
    settings: Optional[Settings] = None,
    additional_discount: Optional[float] = None,
    pass_id: Optional[int] = None,
    warnings: Iterable[str] = (),
) -> Quote:
    """Aggregate results, returning an all-zero Quote when nothing is enabled."""
    if results:
        quote = aggregate_quote(results, billing_models, settings, additional_discount)
    else:
        quote = Quote()
        quote.add_warning("No components enabled")
        logger.debug("Built empty quote")

    quote.pass_id = pass_id
    for warning in warnings:
        quote.add_warning(warning)
    return quote
