"""
Invoice Emitter (Domain Logic).

Turns a CALCULATED energy settlement into one credit note per recipient.
Must be transactional and idempotent.

Flow:
1. Load the settlement within the caller's tenant
2. Validate preconditions (status, idempotency guard, recipients)
3. Allocate lines per item and prepare an InvoicingUnitOfWork
4. Apply the unit of work inside one transaction: numbers, invoices,
   item links, settlement status and production records
"""

import calendar
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from windpark_backend.app.core.config import settings
from windpark_backend.app.core.exceptions import (
    ConflictError, ResourceNotFoundError, ValidationFailedError,
)
from windpark_backend.app.core.guards import AuthContext
from windpark_backend.app.db.session import atomic
from windpark_backend.app.domain.invoicing.numbering import InvoiceNumberService
from windpark_backend.app.domain.invoicing.tax_config import resolve_revenue_tax_profile
from windpark_backend.app.domain.settlement.allocator import RecipientAllocation, RevenueAllocator
from windpark_backend.app.domain.settlement.state_machine import (
    ensure_invoiceable, ensure_not_invoiced, mark_invoiced,
)
from windpark_backend.app.domain.settlement.tax import round2
from windpark_backend.app.models.energy_settlement import EnergySettlement, EnergySettlementItem
from windpark_backend.app.models.invoice import Invoice, InvoiceItem
from windpark_backend.app.models.park import Fund, Park, Turbine
from windpark_backend.app.models.settlement_enums import (
    EnergySettlementStatus, InvoiceStatus, InvoiceType, ProductionStatus,
)
from windpark_backend.app.models.turbine_production import TurbineProduction
from windpark_backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

RECIPIENT_TYPE_FUND = "fund"
ITEM_REFERENCE_TYPE = "energy_settlement_item"

# Matched against the driver message: PostgreSQL names the constraint,
# SQLite names the table and column.
SEQUENCE_CONSTRAINT_MARKERS = ("uq_invoice_number_sequence", "invoice_number_sequences.")
ITEM_LINK_CONSTRAINT_MARKERS = ("settlement_item_id", "invoice_id")


@dataclass
class PendingInvoice:
    """An invoice built in memory, waiting for its number."""
    item: EnergySettlementItem
    allocation: RecipientAllocation
    invoice: Invoice


@dataclass
class InvoicingUnitOfWork:
    """
    Every write of one invoicing run.

    Built completely before the transaction starts, then applied in one go.
    """
    settlement: EnergySettlement
    actor: AuthContext
    pending: List[PendingInvoice] = field(default_factory=list)

    async def apply(self, db: AsyncSession) -> Tuple[List[Invoice], int]:
        """
        Write invoices, links, settlement status and production records.

        Must run inside a transaction; nothing here commits.

        Returns:
            (created invoices, number of production records set to INVOICED)
        """
        invoices = []
        for entry in self.pending:
            entry.invoice.invoice_number = await InvoiceNumberService.next_document_number(
                db,
                tenant_id=self.settlement.tenant_id,
                invoice_type=InvoiceType.CREDIT_NOTE,
                year=entry.invoice.invoice_date.year,
            )
            db.add(entry.invoice)
            await db.flush()

            entry.item.invoice_id = entry.invoice.id
            invoices.append(entry.invoice)

        mark_invoiced(self.settlement)
        synced = await self._sync_production(db)

        await log_event(
            db,
            tenant_id=self.settlement.tenant_id,
            action=AuditAction.CREDIT_NOTES_CREATED,
            actor_id=self.actor.actor_id,
            actor_username=self.actor.username,
            entity_type="energy_settlement",
            entity_id=self.settlement.id,
            metadata={
                "invoice_ids": [invoice.id for invoice in invoices],
                "production_records_invoiced": synced,
            },
        )
        await db.flush()
        return invoices, synced

    async def _sync_production(self, db: AsyncSession) -> int:
        settlement = self.settlement
        query = select(TurbineProduction).where(
            TurbineProduction.tenant_id == settlement.tenant_id,
            TurbineProduction.year == settlement.year,
            TurbineProduction.status.in_([ProductionStatus.DRAFT, ProductionStatus.CONFIRMED]),
            TurbineProduction.turbine_id.in_(
                select(Turbine.id).where(Turbine.park_id == settlement.park_id)
            ),
        )
        if settlement.month:
            query = query.where(TurbineProduction.month == settlement.month)

        result = await db.execute(query)
        records = result.scalars().all()
        for record in records:
            record.status = ProductionStatus.INVOICED
        return len(records)


@dataclass
class MasterData:
    park: Park
    funds: Dict[int, Fund]
    turbine_designations: Dict[int, str]


@dataclass
class InvoiceEmissionResult:
    invoices: List[Invoice]
    summary: Dict[str, Any]


def violates(exc: IntegrityError, markers: Tuple[str, ...]) -> bool:
    """Whether the violated constraint is one of `markers`."""
    text = str(exc.orig)
    return any(marker in text for marker in markers)


def service_period(settlement) -> Tuple[date, date]:
    """Calendar month of a monthly settlement, calendar year of an annual one."""
    if settlement.month:
        last_day = calendar.monthrange(settlement.year, settlement.month)[1]
        return date(settlement.year, settlement.month, 1), date(settlement.year, settlement.month, last_day)
    return date(settlement.year, 1, 1), date(settlement.year, 12, 31)


def build_invoice(
    settlement: EnergySettlement,
    park: Park,
    fund: Fund,
    item: EnergySettlementItem,
    allocation: RecipientAllocation,
    actor: AuthContext,
    invoice_date: Optional[date] = None,
) -> Invoice:
    """Build an unnumbered credit note for one settlement item."""
    invoice_date = invoice_date or datetime.utcnow().date()
    start, end = service_period(settlement)

    invoice = Invoice(
        tenant_id=settlement.tenant_id,
        invoice_type=InvoiceType.CREDIT_NOTE,
        invoice_date=invoice_date,
        due_date=invoice_date + timedelta(days=settings.invoice_payment_term_days),
        status=InvoiceStatus.DRAFT,
        recipient_type=RECIPIENT_TYPE_FUND,
        recipient_name=fund.name,
        recipient_address=fund.address,
        service_start_date=start,
        service_end_date=end,
        payment_reference=f"Strom-{park.short_name or park.name}-{settlement.period_label}",
        net_amount=allocation.net_total,
        tax_amount=allocation.tax_total,
        gross_amount=allocation.gross_total,
        currency=settings.currency,
        notes=f"Stromerlös-Gutschrift {settlement.period_label} – {park.name}",
        fund_id=item.recipient_fund_id,
        park_id=settlement.park_id,
        energy_settlement_id=settlement.id,
        settlement_item_id=item.id,
        created_by_id=actor.actor_id,
    )

    invoice.items = [
        InvoiceItem(
            position=position,
            description=line.description,
            quantity=line.quantity,
            unit=line.unit,
            unit_price=line.unit_price,
            net_amount=line.net_amount,
            tax_type=line.tax_type,
            tax_rate=line.tax_rate,
            tax_amount=line.tax_amount,
            gross_amount=line.gross_amount,
            reference_type=ITEM_REFERENCE_TYPE,
            reference_id=item.id,
        )
        for position, line in enumerate(allocation.lines, start=1)
    ]
    return invoice


class InvoiceEmitter:

    @staticmethod
    async def load_settlement(db: AsyncSession, tenant_id: int, settlement_id: int) -> EnergySettlement:
        """Fetch a settlement of the tenant; foreign settlements look missing."""
        result = await db.execute(
            select(EnergySettlement).where(
                EnergySettlement.id == settlement_id,
                EnergySettlement.tenant_id == tenant_id,
            ).execution_options(populate_existing=True)
        )
        settlement = result.scalar_one_or_none()
        if not settlement:
            raise ResourceNotFoundError("Energy settlement", settlement_id)
        return settlement

    @staticmethod
    def validate_preconditions(settlement: EnergySettlement) -> None:
        """
        Check everything that can be checked before writing.

        Order: status, existing invoices, recipients. A repeated run on an
        already invoiced settlement is reported as a conflict.
        """
        if settlement.status == EnergySettlementStatus.INVOICED:
            ensure_not_invoiced(settlement.items)
        ensure_invoiceable(settlement)
        ensure_not_invoiced(settlement.items)

        missing = [item.id for item in settlement.items if item.recipient_fund_id is None]
        if missing:
            raise ValidationFailedError(
                message="Every settlement item needs a recipient fund before invoicing",
                errors=[
                    {"loc": ["items", item_id, "recipient_fund_id"], "msg": "Recipient fund missing"}
                    for item_id in missing
                ],
            )

    @staticmethod
    async def load_master_data(db: AsyncSession, settlement: EnergySettlement) -> MasterData:
        """Park, recipient funds and turbine designations referenced by the items."""
        park = await db.get(Park, settlement.park_id)

        fund_ids = {item.recipient_fund_id for item in settlement.items}
        result = await db.execute(
            select(Fund).where(Fund.id.in_(fund_ids), Fund.tenant_id == settlement.tenant_id)
        )
        funds = {fund.id: fund for fund in result.scalars().all()}
        unknown = fund_ids - set(funds)
        if unknown:
            raise ResourceNotFoundError("Fund", min(unknown))

        turbine_ids = {item.turbine_id for item in settlement.items if item.turbine_id is not None}
        turbines = {}
        if turbine_ids:
            result = await db.execute(select(Turbine.id, Turbine.designation).where(Turbine.id.in_(turbine_ids)))
            turbines = {turbine_id: designation for turbine_id, designation in result.all()}

        return MasterData(park=park, funds=funds, turbine_designations=turbines)

    @staticmethod
    def prepare(
        settlement: EnergySettlement,
        master: MasterData,
        allocator: RevenueAllocator,
        actor: AuthContext,
        invoice_date: Optional[date] = None,
    ) -> InvoicingUnitOfWork:
        unit = InvoicingUnitOfWork(settlement=settlement, actor=actor)
        for item in settlement.items:
            allocation = allocator.allocate(item, master.turbine_designations.get(item.turbine_id))
            invoice = build_invoice(
                settlement, master.park, master.funds[item.recipient_fund_id],
                item, allocation, actor, invoice_date,
            )
            unit.pending.append(PendingInvoice(item=item, allocation=allocation, invoice=invoice))
        return unit

    @staticmethod
    async def emit_invoices(
        db: AsyncSession,
        auth: AuthContext,
        settlement_id: int,
        invoice_date: Optional[date] = None,
    ) -> InvoiceEmissionResult:
        """
        Create one credit note per settlement item.

        Args:
            db: Database session; the method owns the transaction
            auth: Caller's tenant and actor
            settlement_id: Settlement to invoice
            invoice_date: Issue date, defaults to today

        Returns:
            InvoiceEmissionResult with the created invoices and a summary

        Raises:
            ResourceNotFoundError: Unknown or foreign settlement
            InvalidStateError: Settlement is not CALCULATED
            ConflictError: Invoices already exist for the settlement, or the
                number sequence was created concurrently (retryable)
            ValidationFailedError: An item has no recipient fund
            ReconciliationError: Lines of an item miss its share beyond rounding
        """
        # 1. Load
        settlement = await InvoiceEmitter.load_settlement(db, auth.tenant_id, settlement_id)

        # 2. Preconditions, before any mutation
        InvoiceEmitter.validate_preconditions(settlement)

        # 3. Allocate and build the unit of work
        master = await InvoiceEmitter.load_master_data(db, settlement)
        tax_profile = await resolve_revenue_tax_profile(db, auth.tenant_id)
        allocator = RevenueAllocator(settlement, master.park.name, tax_profile)
        unit = InvoiceEmitter.prepare(settlement, master, allocator, auth, invoice_date)

        period_label = settlement.period_label
        park_name = master.park.name

        # 4. Apply atomically
        try:
            async with atomic(db):
                invoices, synced = await unit.apply(db)
        except IntegrityError as exc:
            if violates(exc, SEQUENCE_CONSTRAINT_MARKERS):
                # Another run created this year's number sequence first
                logger.warning("Number sequence race while invoicing settlement %s", settlement_id)
                raise ConflictError(
                    message="Invoice numbering was busy, please retry",
                    details={"settlement_id": settlement_id, "retryable": True},
                )
            if violates(exc, ITEM_LINK_CONSTRAINT_MARKERS):
                # A concurrent run linked an invoice to one of the items first
                raise ConflictError(
                    message="Credit notes have already been created for this settlement",
                    details={"settlement_id": settlement_id},
                )
            raise

        total_gross = round2(sum((invoice.gross_amount for invoice in invoices), Decimal("0")))
        corrections = sum(1 for entry in unit.pending if entry.allocation.correction)

        logger.info(
            "Created %d credit notes for settlement %s (%s, %s), total gross %s",
            len(invoices), settlement_id, park_name, period_label, total_gross,
        )

        return InvoiceEmissionResult(
            invoices=invoices,
            summary={
                "settlement_id": settlement_id,
                "invoice_count": len(invoices),
                "total_gross": total_gross,
                "period": period_label,
                "park_name": park_name,
                "rounding_corrections": corrections,
                "production_records_invoiced": synced,
            },
        )
