"""
Rounding reconciliation for a recipient's invoice lines.

Lines computed from revenue ratios may miss the recipient's exact share by
a few cents. The difference is booked onto the first line, whose tax and
gross are then re-derived from the corrected net.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import List, Sequence

from windpark_backend.app.core.exceptions import ReconciliationError
from windpark_backend.app.domain.settlement.tax import split_tax, to_decimal
from windpark_backend.app.models.settlement_enums import TaxType

logger = logging.getLogger(__name__)

RECONCILIATION_THRESHOLD = Decimal("0.001")
MAX_ROUNDING_CORRECTION = Decimal("0.05")


@dataclass(frozen=True)
class AllocatedLine:
    """A provisional or final invoice line."""
    description: str
    quantity: Decimal
    unit_price: Decimal
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    revenue_component: str
    unit: str = "kWh"


@dataclass(frozen=True)
class ReconciliationResult:
    lines: List[AllocatedLine]
    net_total: Decimal
    tax_total: Decimal
    gross_total: Decimal
    correction: Decimal


def _totals(lines: Sequence[AllocatedLine]):
    net = sum((line.net_amount for line in lines), Decimal("0"))
    tax = sum((line.tax_amount for line in lines), Decimal("0"))
    gross = sum((line.gross_amount for line in lines), Decimal("0"))
    return net, tax, gross


def reconcile_lines(target, lines: Sequence[AllocatedLine]) -> ReconciliationResult:
    """
    Make the net amounts of `lines` sum exactly to `target`.

    Args:
        target: The recipient's exact revenue share
        lines: Provisional lines, first line receives any correction

    Returns:
        ReconciliationResult with a new list of lines and refreshed totals

    Raises:
        ReconciliationError: The gap exceeds MAX_ROUNDING_CORRECTION and
            cannot be rounding error
    """
    target = to_decimal(target)
    adjusted = list(lines)
    net_total, _, _ = _totals(adjusted)
    diff = target - net_total

    if abs(diff) <= RECONCILIATION_THRESHOLD or not adjusted:
        net_total, tax_total, gross_total = _totals(adjusted)
        return ReconciliationResult(adjusted, net_total, tax_total, gross_total, Decimal("0"))

    if abs(diff) > MAX_ROUNDING_CORRECTION:
        logger.error(
            "Refusing to correct '%s': lines sum to %s, target %s (difference %s)",
            adjusted[0].description, net_total, target, diff,
        )
        raise ReconciliationError(target=target, net_total=net_total, difference=diff)

    first = adjusted[0]
    corrected_net = first.net_amount + diff
    split = split_tax(corrected_net, first.tax_rate)
    adjusted[0] = replace(
        first,
        net_amount=corrected_net,
        tax_amount=split.tax_amount,
        gross_amount=split.gross_amount,
    )

    logger.info(
        "Rounding correction of %s applied to '%s': net %s -> %s, tax %s -> %s, gross %s -> %s",
        diff, first.description,
        first.net_amount, corrected_net,
        first.tax_amount, split.tax_amount,
        first.gross_amount, split.gross_amount,
    )

    net_total, tax_total, gross_total = _totals(adjusted)
    return ReconciliationResult(adjusted, net_total, tax_total, gross_total, diff)
