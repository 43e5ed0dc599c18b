"""
Tests for document numbering and revenue tax configuration.
"""

from decimal import Decimal

import pytest

from windpark_backend.app.domain.invoicing.numbering import (
    InvoiceNumberService, format_document_number,
)
from windpark_backend.app.domain.invoicing.tax_config import (
    TaxConfig, effective_rate, lookup_tax_config, resolve_revenue_tax_profile,
)
from windpark_backend.app.models.energy_revenue_type import EnergyRevenueType
from windpark_backend.app.models.settlement_enums import InvoiceType
from windpark_backend.tests.conftest import OTHER_TENANT_ID, TENANT_ID


def test_document_number_format():
    assert format_document_number(InvoiceType.CREDIT_NOTE, 2026, 42) == "GS-2026-00042"
    assert format_document_number(InvoiceType.INVOICE, 2025, 1) == "RE-2025-00001"


@pytest.mark.asyncio
async def test_numbers_are_sequential_per_tenant_type_and_year(db_session):
    async def next_number(tenant_id=TENANT_ID, invoice_type=InvoiceType.CREDIT_NOTE, year=2026):
        return await InvoiceNumberService.next_document_number(
            db_session, tenant_id=tenant_id, invoice_type=invoice_type, year=year
        )

    assert await next_number() == "GS-2026-00001"
    assert await next_number() == "GS-2026-00002"
    assert await next_number(invoice_type=InvoiceType.INVOICE) == "RE-2026-00001"
    assert await next_number(year=2027) == "GS-2027-00001"
    assert await next_number(tenant_id=OTHER_TENANT_ID) == "GS-2026-00001"
    assert await next_number() == "GS-2026-00003"


@pytest.mark.asyncio
async def test_rolled_back_numbers_are_reissued(db_session):
    await InvoiceNumberService.next_document_number(db_session, TENANT_ID, InvoiceType.CREDIT_NOTE, 2026)
    await db_session.commit()

    await InvoiceNumberService.next_document_number(db_session, TENANT_ID, InvoiceType.CREDIT_NOTE, 2026)
    await db_session.rollback()

    number = await InvoiceNumberService.next_document_number(db_session, TENANT_ID, InvoiceType.CREDIT_NOTE, 2026)
    assert number == "GS-2026-00002"


@pytest.mark.parametrize("config,expected", [
    (None, Decimal("19")),
    (TaxConfig(has_tax=False, rate=Decimal("19")), Decimal("0")),
    (TaxConfig(has_tax=True, rate=None), Decimal("19")),
    (TaxConfig(has_tax=True, rate=Decimal("7")), Decimal("7")),
])
def test_effective_rate(config, expected):
    assert effective_rate(config, Decimal("19")) == expected


@pytest.mark.asyncio
async def test_lookup_ignores_inactive_and_foreign_rows(db_session):
    db_session.add_all([
        EnergyRevenueType(tenant_id=TENANT_ID, code="EEG", name="EEG", has_tax=True,
                          tax_rate=Decimal("7"), is_active=False),
        EnergyRevenueType(tenant_id=OTHER_TENANT_ID, code="EEG", name="EEG", has_tax=False),
    ])
    await db_session.commit()

    assert await lookup_tax_config(db_session, TENANT_ID, "EEG") is None

    foreign = await lookup_tax_config(db_session, OTHER_TENANT_ID, "EEG")
    assert foreign == TaxConfig(has_tax=False, rate=None)


@pytest.mark.asyncio
async def test_revenue_tax_profile_defaults(db_session):
    profile = await resolve_revenue_tax_profile(db_session, TENANT_ID)

    assert profile.eeg_rate == Decimal("19")
    assert profile.dv_rate == Decimal("0")


@pytest.mark.asyncio
async def test_revenue_tax_profile_from_configuration(db_session):
    db_session.add_all([
        EnergyRevenueType(tenant_id=TENANT_ID, code="EEG", name="EEG-Vergütung",
                          has_tax=True, tax_rate=Decimal("7.00")),
        EnergyRevenueType(tenant_id=TENANT_ID, code="MARKTPRAEMIE", name="Marktprämie",
                          has_tax=True, tax_rate=Decimal("19.00")),
    ])
    await db_session.commit()

    profile = await resolve_revenue_tax_profile(db_session, TENANT_ID)

    assert profile.eeg_rate == Decimal("7.00")
    assert profile.dv_rate == Decimal("19.00")
