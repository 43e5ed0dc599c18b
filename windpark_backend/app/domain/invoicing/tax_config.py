"""
Revenue tax configuration lookup.

Resolves the VAT treatment of the EEG and market-premium revenue
components from the tenant's EnergyRevenueType rows.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from windpark_backend.app.core.config import settings
from windpark_backend.app.domain.settlement.allocator import RevenueTaxProfile
from windpark_backend.app.domain.settlement.tax import to_decimal
from windpark_backend.app.models.energy_revenue_type import EnergyRevenueType

EEG_CODE = "EEG"
MARKET_PREMIUM_CODE = "MARKTPRAEMIE"


@dataclass(frozen=True)
class TaxConfig:
    has_tax: bool
    rate: Optional[Decimal]


async def lookup_tax_config(db: AsyncSession, tenant_id: int, code: str) -> Optional[TaxConfig]:
    """Active tax configuration of one revenue code, or None if unconfigured."""
    query = select(EnergyRevenueType).where(
        EnergyRevenueType.tenant_id == tenant_id,
        EnergyRevenueType.code == code,
        EnergyRevenueType.is_active == True,
    )
    result = await db.execute(query)
    revenue_type = result.scalar_one_or_none()

    if not revenue_type:
        return None

    rate = None if revenue_type.tax_rate is None else to_decimal(revenue_type.tax_rate)
    return TaxConfig(has_tax=revenue_type.has_tax, rate=rate)


def effective_rate(config: Optional[TaxConfig], default: Decimal) -> Decimal:
    if config is None:
        return default
    if not config.has_tax:
        return Decimal("0")
    if config.rate is None:
        return default
    return config.rate


async def resolve_revenue_tax_profile(db: AsyncSession, tenant_id: int) -> RevenueTaxProfile:
    """
    Build the tax profile used by the RevenueAllocator.

    EEG falls back to the standard rate and the market premium to 0 %
    when the tenant has not configured them.
    """
    eeg = await lookup_tax_config(db, tenant_id, EEG_CODE)
    dv = await lookup_tax_config(db, tenant_id, MARKET_PREMIUM_CODE)

    return RevenueTaxProfile(
        eeg_rate=effective_rate(eeg, settings.eeg_default_tax_rate),
        dv_rate=effective_rate(dv, settings.dv_default_tax_rate),
    )
