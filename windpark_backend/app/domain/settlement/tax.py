"""
VAT splitting for invoice lines.

All amounts are Decimal. A single rounding mode is used everywhere:
half-up to two decimal places.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Union

from windpark_backend.app.models.settlement_enums import TaxType

CENT = Decimal("0.01")

TAX_RATES = {
    TaxType.EXEMPT: Decimal("0"),
    TaxType.REDUCED: Decimal("7"),
    TaxType.STANDARD: Decimal("19"),
}

TaxClassification = Union[TaxType, Decimal]


@dataclass(frozen=True)
class TaxSplit:
    rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal


def to_decimal(value) -> Decimal:
    """Convert DB/JSON numbers to Decimal without binary float artefacts."""
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round2(amount: Decimal) -> Decimal:
    return to_decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


def rate_for(classification: TaxClassification) -> Decimal:
    """Percentage rate of a tax type, or the explicit rate itself."""
    if isinstance(classification, TaxType):
        return TAX_RATES[classification]
    return to_decimal(classification)


def tax_type_for_rate(rate: Decimal) -> TaxType:
    """Classify a configured rate: 0 is exempt, 7 reduced, anything else standard."""
    rate = to_decimal(rate)
    if rate == TAX_RATES[TaxType.EXEMPT]:
        return TaxType.EXEMPT
    if rate == TAX_RATES[TaxType.REDUCED]:
        return TaxType.REDUCED
    return TaxType.STANDARD


def split_tax(net_amount, classification: TaxClassification) -> TaxSplit:
    """
    Split a net amount into rate, tax and gross.

    tax = round2(net * rate / 100), gross = net + tax. Zero and negative
    net amounts are accepted and produce the arithmetic result.

    Args:
        net_amount: Net amount in currency units
        classification: TaxType or explicit percentage rate

    Returns:
        TaxSplit(rate, tax_amount, gross_amount)
    """
    net = to_decimal(net_amount)
    rate = rate_for(classification)
    tax_amount = round2(net * rate / Decimal("100"))
    return TaxSplit(rate=rate, tax_amount=tax_amount, gross_amount=net + tax_amount)
