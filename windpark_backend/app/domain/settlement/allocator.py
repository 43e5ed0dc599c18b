"""
Revenue allocation into tax-correct invoice lines.

For every settlement item (one recipient) the stored revenue share is
split into an EEG line and a DV/market-premium line when the settlement
carries that regulatory split, or kept as a single tax-exempt line when it
does not. The lines of one recipient are then reconciled against the
recipient's exact share.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from windpark_backend.app.core.config import settings
from windpark_backend.app.domain.settlement.reconciler import AllocatedLine, reconcile_lines
from windpark_backend.app.domain.settlement.tax import (
    round2, split_tax, tax_type_for_rate, to_decimal,
)
from windpark_backend.app.models.settlement_enums import TaxType

MIN_COMPONENT_SHARE = Decimal("0.01")
QUANTITY_PRECISION = Decimal("0.001")
UNIT_PRICE_PRECISION = Decimal("0.000001")

EEG = "EEG"
DV = "DV"
TOTAL = "TOTAL"

REVENUE_LABELS = {
    EEG: "Stromerlös EEG",
    DV: "Stromerlös Marktprämie",
    TOTAL: "Stromerlös",
}


@dataclass(frozen=True)
class RevenueTaxProfile:
    """VAT rates of the two revenue components for one tenant."""
    eeg_rate: Decimal = settings.eeg_default_tax_rate
    dv_rate: Decimal = settings.dv_default_tax_rate

    def rate_for(self, component: str) -> Decimal:
        if component == EEG:
            return self.eeg_rate
        if component == DV:
            return self.dv_rate
        return Decimal("0")


@dataclass(frozen=True)
class RecipientAllocation:
    """Reconciled lines of one settlement item."""
    item_id: Optional[int]
    recipient_fund_id: Optional[int]
    target_net: Decimal
    lines: List[AllocatedLine]
    net_total: Decimal
    tax_total: Decimal
    gross_total: Decimal
    correction: Decimal


def _unit_price(amount: Decimal, quantity: Decimal) -> Decimal:
    if quantity == 0:
        return Decimal("0").quantize(UNIT_PRICE_PRECISION)
    return (amount / quantity).quantize(UNIT_PRICE_PRECISION, rounding=ROUND_HALF_UP)


class RevenueAllocator:
    """
    Builds the invoice lines of every recipient of one settlement.

    The allocator is pure: it reads the settlement and item attributes and
    returns value objects, it never touches the database.
    """

    def __init__(self, settlement, park_name: str, tax_profile: Optional[RevenueTaxProfile] = None):
        self.settlement = settlement
        self.park_name = park_name
        self.tax_profile = tax_profile or RevenueTaxProfile()

        self.total_revenue = to_decimal(settlement.net_operator_revenue_eur)
        self.total_production = to_decimal(settlement.total_production_kwh)
        self.eeg_revenue = self._optional(settlement.eeg_revenue_eur)
        self.dv_revenue = self._optional(settlement.dv_revenue_eur)
        self.eeg_production = self._optional(settlement.eeg_production_kwh)
        self.dv_production = self._optional(settlement.dv_production_kwh)

    @staticmethod
    def _optional(value) -> Optional[Decimal]:
        return None if value is None else to_decimal(value)

    @property
    def has_split(self) -> bool:
        return self.eeg_revenue is not None or self.dv_revenue is not None

    @property
    def period_label(self) -> str:
        month = self.settlement.month
        if month:
            return f"{month:02d}/{self.settlement.year}"
        return f"{self.settlement.year}"

    def describe(self, component: str, turbine_designation: Optional[str] = None) -> str:
        description = f"{REVENUE_LABELS[component]} {self.period_label} – {self.park_name}"
        if turbine_designation:
            description += f" – WKA {turbine_designation}"
        return description

    def _build_line(self, component: str, amount: Decimal, quantity: Decimal, tax_type: TaxType,
                    rate: Decimal, turbine_designation: Optional[str]) -> AllocatedLine:
        net = round2(amount)
        split = split_tax(net, rate)
        return AllocatedLine(
            description=self.describe(component, turbine_designation),
            quantity=quantity.quantize(QUANTITY_PRECISION, rounding=ROUND_HALF_UP),
            unit_price=_unit_price(amount, quantity),
            net_amount=net,
            tax_type=tax_type,
            tax_rate=split.rate,
            tax_amount=split.tax_amount,
            gross_amount=split.gross_amount,
            revenue_component=component,
        )

    def _component_production(self, production_share: Decimal, component_kwh: Optional[Decimal],
                              component_revenue: Decimal) -> Decimal:
        if component_kwh and self.total_production > 0:
            return production_share * component_kwh / self.total_production
        return production_share * component_revenue / self.total_revenue

    def _split_lines(self, revenue_share: Decimal, production_share: Decimal,
                     turbine_designation: Optional[str]) -> List[AllocatedLine]:
        components = (
            (EEG, self.eeg_revenue, self.eeg_production),
            (DV, self.dv_revenue, self.dv_production),
        )
        lines = []
        candidates = []

        for component, component_revenue, component_kwh in components:
            if not component_revenue or component_revenue <= 0:
                continue
            share = revenue_share * component_revenue / self.total_revenue
            kwh = self._component_production(production_share, component_kwh, component_revenue)
            rate = self.tax_profile.rate_for(component)
            candidates.append((share, component, kwh, rate))

            if share > MIN_COMPONENT_SHARE:
                lines.append(self._build_line(
                    component, share, kwh, tax_type_for_rate(rate), rate, turbine_designation
                ))

        if not lines and candidates:
            # Nothing above one cent: keep the dominant component so the share is still booked
            share, component, kwh, rate = max(candidates, key=lambda c: c[0])
            lines.append(self._build_line(
                component, share, kwh, tax_type_for_rate(rate), rate, turbine_designation
            ))

        return lines

    def allocate(self, item, turbine_designation: Optional[str] = None) -> RecipientAllocation:
        """
        Allocate one settlement item.

        Args:
            item: Object with revenue_share_eur, production_share_kwh and
                optionally id and recipient_fund_id
            turbine_designation: Turbine named in the line descriptions

        Returns:
            RecipientAllocation whose line nets sum exactly to the item's share
        """
        revenue_share = to_decimal(item.revenue_share_eur)
        production_share = to_decimal(item.production_share_kwh)
        lines: List[AllocatedLine] = []
        if self.has_split and self.total_revenue > 0:
            lines = self._split_lines(revenue_share, production_share, turbine_designation)

        if not lines:
            lines = [self._build_line(
                TOTAL, revenue_share, production_share, TaxType.EXEMPT,
                Decimal("0"), turbine_designation
            )]

        result = reconcile_lines(revenue_share, lines)
        return RecipientAllocation(
            item_id=getattr(item, "id", None),
            recipient_fund_id=getattr(item, "recipient_fund_id", None),
            target_net=revenue_share,
            lines=result.lines,
            net_total=result.net_total,
            tax_total=result.tax_total,
            gross_total=result.gross_total,
            correction=result.correction,
        )

