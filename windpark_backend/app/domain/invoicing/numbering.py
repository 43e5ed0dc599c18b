"""
Invoice Number Service.

Hands out sequential document numbers per tenant, document type and year,
formatted as <PREFIX>-<YEAR>-<NNNNN> (e.g. GS-2026-00042).
"""

from datetime import datetime
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from windpark_backend.app.core.config import settings
from windpark_backend.app.models.invoice import InvoiceNumberSequence
from windpark_backend.app.models.settlement_enums import InvoiceType


NUMBER_WIDTH = 5


def prefix_for(invoice_type: InvoiceType) -> str:
    if invoice_type == InvoiceType.CREDIT_NOTE:
        return settings.credit_note_number_prefix
    return settings.invoice_number_prefix


def format_document_number(invoice_type: InvoiceType, year: int, number: int) -> str:
    return f"{prefix_for(invoice_type)}-{year}-{number:0{NUMBER_WIDTH}d}"


class InvoiceNumberService:

    @staticmethod
    async def next_document_number(
        db: AsyncSession,
        tenant_id: int,
        invoice_type: InvoiceType,
        year: Optional[int] = None,
    ) -> str:
        """
        Reserve the next number of a tenant's sequence.

        The sequence row is locked and incremented inside the caller's
        transaction, so a rolled back invoicing run gives its numbers back.

        Args:
            db: Database session (transaction managed by caller)
            tenant_id: Tenant the document belongs to
            invoice_type: CREDIT_NOTE or INVOICE
            year: Sequence year, defaults to the current year

        Returns:
            Formatted document number
        """
        year = year or datetime.utcnow().year

        query = select(InvoiceNumberSequence).where(
            InvoiceNumberSequence.tenant_id == tenant_id,
            InvoiceNumberSequence.invoice_type == invoice_type,
            InvoiceNumberSequence.year == year,
        ).with_for_update()

        result = await db.execute(query)
        sequence = result.scalar_one_or_none()

        if not sequence:
            sequence = InvoiceNumberSequence(
                tenant_id=tenant_id,
                invoice_type=invoice_type,
                year=year,
                last_number=0,
            )
            db.add(sequence)

        sequence.last_number += 1
        await db.flush()

        return format_document_number(invoice_type, year, sequence.last_number)
