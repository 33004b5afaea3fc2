"""
Aggregation Engine

Joins sale lines to customer agreements and computes per-customer
performance plus a portfolio summary.

The agreement registry is authoritative for which customers exist: sale
lines whose customer code has no agreement are excluded from every total.
Duplicate customer codes in the registry follow a last-wins policy; the
customer keeps the position of its first appearance.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional, Tuple

import structlog

from .models import (
    Agreement,
    CachedResult,
    Performance,
    ProductBreakdown,
    SaleLine,
    Summary,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class AggregateOutput:
    """Performances and summary of one aggregation run"""
    performances: Tuple[Performance, ...]
    summary: Summary


def progress(achieved: float, target: float) -> float:
    """Achievement as a percentage of target; 0 when there is no target"""
    if target > 0:
        return achieved / target * 100
    return 0.0


class _Accumulator:
    """Mutable per-customer state used while folding sale lines"""

    __slots__ = ("agreement", "products")

    def __init__(self, agreement: Agreement):
        self.agreement = agreement
        self.products: Dict[str, float] = {}

    def add(self, line: SaleLine) -> None:
        self.products[line.product_name] = self.products.get(line.product_name, 0.0) + line.volume

    def materialize(self) -> Performance:
        # sorted() is stable, so equal volumes keep first-seen order
        products = tuple(
            ProductBreakdown(product_name=name, total_volume=volume)
            for name, volume in sorted(self.products.items(), key=lambda item: item[1], reverse=True)
        )
        achieved = sum(p.total_volume for p in products)
        return Performance(
            **self.agreement.model_dump(),
            achieved_volume=achieved,
            progress_percentage=progress(achieved, self.agreement.target_volume),
            products=products,
        )


def aggregate(
    agreements: Iterable[Agreement],
    sales: Iterable[SaleLine],
) -> AggregateOutput:
    """
    Compute per-customer performance and the portfolio summary.

    Args:
        agreements: Customer agreements, in registry order
        sales: Sale lines from all extracts, in union order

    Returns:
        AggregateOutput with one performance per distinct customer code
    """
    accumulators: Dict[str, _Accumulator] = {}
    for agreement in agreements:
        existing = accumulators.get(agreement.customer_code)
        if existing is not None:
            existing.agreement = agreement
        else:
            accumulators[agreement.customer_code] = _Accumulator(agreement)

    matched = 0
    unmatched = 0
    for line in sales:
        accumulator = accumulators.get(line.customer_code)
        if accumulator is None:
            unmatched += 1
            continue
        accumulator.add(line)
        matched += 1

    performances = tuple(acc.materialize() for acc in accumulators.values())

    total_target = sum(p.target_volume for p in performances)
    total_achieved = sum(p.achieved_volume for p in performances)
    summary = Summary(
        total_target=total_target,
        total_achieved=total_achieved,
        overall_progress=progress(total_achieved, total_target),
        customer_count=len(performances),
    )

    logger.debug(
        "Aggregation complete",
        customers=len(performances),
        matched_lines=matched,
        unmatched_lines=unmatched,
    )

    return AggregateOutput(performances=performances, summary=summary)


def compute_result(
    agreements: Iterable[Agreement],
    sales: Iterable[SaleLine],
    computed_at: Optional[datetime] = None,
) -> CachedResult:
    """Aggregate and wrap the output as a timestamped ``CachedResult``"""
    output = aggregate(agreements, sales)
    return CachedResult(
        performances=output.performances,
        summary=output.summary,
        computed_at=computed_at or datetime.now(timezone.utc),
    )
