"""
Energy Settlement Service.

CRUD and lifecycle operations for energy settlements. Every function takes
the caller's AuthContext (or tenant id) explicitly and never returns a
record of another tenant.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from windpark_backend.app.core.exceptions import (
    ConflictError, InvalidStateError, ResourceNotFoundError, ValidationFailedError,
)
from windpark_backend.app.core.guards import ADMIN_ROLES, AuthContext, require_role
from windpark_backend.app.db.session import atomic
from windpark_backend.app.domain.settlement.invoice_emitter import InvoiceEmissionResult, InvoiceEmitter
from windpark_backend.app.domain.settlement.state_machine import (
    ensure_deletable, ensure_editable, invalidate_calculation, mark_calculated, requires_recalculation,
)
from windpark_backend.app.domain.settlement.tax import to_decimal
from windpark_backend.app.models.energy_settlement import EnergySettlement, EnergySettlementItem
from windpark_backend.app.models.park import Fund, Park, Turbine
from windpark_backend.app.models.settlement_enums import DistributionMode, EnergySettlementStatus
from windpark_backend.app.models.settlement_period import SettlementPeriod
from windpark_backend.app.schemas.energy_settlement import (
    CalculationResultInput, EnergySettlementCreate, EnergySettlementUpdate,
)
from windpark_backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

PRODUCTION_TOLERANCE = Decimal("0.01")
ENTITY_TYPE = "energy_settlement"


async def get_park(db: AsyncSession, tenant_id: int, park_id: int) -> Park:
    result = await db.execute(select(Park).where(Park.id == park_id, Park.tenant_id == tenant_id))
    park = result.scalar_one_or_none()
    if not park:
        raise ResourceNotFoundError("Park", park_id)
    return park


def _validate_revenue_split(eeg_revenue, dv_revenue, net_revenue) -> None:
    """EEG and DV revenue are given together or not at all, and add up to the net revenue."""
    if (eeg_revenue is None) != (dv_revenue is None):
        missing = "dv_revenue_eur" if dv_revenue is None else "eeg_revenue_eur"
        raise ValidationFailedError(
            message="EEG and DV revenue must be provided together",
            errors=[{"loc": ["body", missing], "msg": "Required when the revenue split is used"}],
        )

    if eeg_revenue is None:
        return

    split_total = to_decimal(eeg_revenue) + to_decimal(dv_revenue)
    expected = to_decimal(net_revenue)
    if split_total != expected:
        raise ValidationFailedError(
            message="EEG and DV revenue must add up to the net operator revenue",
            errors=[{
                "loc": ["body", "eeg_revenue_eur"],
                "msg": f"EEG and DV revenue sum to {split_total}, expected {expected}",
            }],
        )


async def _find_duplicate(db: AsyncSession, tenant_id: int, park_id: int, year: int,
                          month: Optional[int]) -> Optional[EnergySettlement]:
    query = select(EnergySettlement).where(
        EnergySettlement.tenant_id == tenant_id,
        EnergySettlement.park_id == park_id,
        EnergySettlement.year == year,
    )
    if month is None:
        query = query.where(EnergySettlement.month.is_(None))
    else:
        query = query.where(EnergySettlement.month == month)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def create_settlement(db: AsyncSession, auth: AuthContext, data: EnergySettlementCreate) -> EnergySettlement:
    """
    Create a DRAFT settlement for a park and period.

    Distribution mode falls back to the park default, then SMOOTHED. For
    TOLERATED settlements a missing tolerance is taken from the park.

    Raises:
        ResourceNotFoundError: Park unknown within the tenant
        ValidationFailedError: EEG/DV split incomplete or not adding up to the net revenue
        ConflictError: A settlement for this park and period exists
    """
    # 1. Park must belong to the caller's tenant
    park = await get_park(db, auth.tenant_id, data.park_id)

    # 2. Input rules the schema cannot express
    _validate_revenue_split(data.eeg_revenue_eur, data.dv_revenue_eur, data.net_operator_revenue_eur)

    # 3. One settlement per park and period
    if await _find_duplicate(db, auth.tenant_id, park.id, data.year, data.month):
        period = f"{data.month:02d}/{data.year}" if data.month else f"{data.year}"
        raise ConflictError(
            message=f"An energy settlement for park {park.name} and period {period} already exists",
            details={"park_id": park.id, "year": data.year, "month": data.month},
        )

    distribution_mode = data.distribution_mode or park.default_distribution_mode or DistributionMode.SMOOTHED
    tolerance = data.tolerance_percentage
    if distribution_mode == DistributionMode.TOLERATED and tolerance is None:
        tolerance = park.default_tolerance_percent

    settlement = EnergySettlement(
        tenant_id=auth.tenant_id,
        park_id=park.id,
        year=data.year,
        month=data.month,
        status=EnergySettlementStatus.DRAFT,
        net_operator_revenue_eur=data.net_operator_revenue_eur,
        net_operator_reference=data.net_operator_reference,
        total_production_kwh=data.total_production_kwh,
        eeg_production_kwh=data.eeg_production_kwh,
        eeg_revenue_eur=data.eeg_revenue_eur,
        dv_production_kwh=data.dv_production_kwh,
        dv_revenue_eur=data.dv_revenue_eur,
        distribution_mode=distribution_mode,
        smoothing_factor=data.smoothing_factor,
        tolerance_percentage=tolerance,
        notes=data.notes,
    )

    try:
        async with atomic(db):
            db.add(settlement)
            await db.flush()
            await log_event(
                db,
                tenant_id=auth.tenant_id,
                action=AuditAction.ENERGY_SETTLEMENT_CREATED,
                actor_id=auth.actor_id,
                actor_username=auth.username,
                entity_type=ENTITY_TYPE,
                entity_id=settlement.id,
                metadata={"park_id": park.id, "period": settlement.period_label},
            )
    except IntegrityError:
        raise ConflictError(
            message="An energy settlement for this park and period already exists",
            details={"park_id": park.id, "year": data.year, "month": data.month},
        )

    await db.refresh(settlement)
    return settlement


async def get_settlement(db: AsyncSession, tenant_id: int, settlement_id: int) -> EnergySettlement:
    """Settlement of the tenant; foreign or unknown ids raise ResourceNotFoundError."""
    return await InvoiceEmitter.load_settlement(db, tenant_id, settlement_id)


async def list_settlements(
    db: AsyncSession,
    tenant_id: int,
    park_id: Optional[int] = None,
    year: Optional[int] = None,
    month: Optional[int] = None,
    status: Optional[EnergySettlementStatus] = None,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[EnergySettlement], int, Dict[str, Decimal]]:
    """
    List settlements with totals over the whole filtered set.

    Returns:
        (settlements of the page, total count, aggregates)
    """
    filters = [EnergySettlement.tenant_id == tenant_id]
    if park_id:
        filters.append(EnergySettlement.park_id == park_id)
    if year:
        filters.append(EnergySettlement.year == year)
    if month:
        filters.append(EnergySettlement.month == month)
    if status:
        filters.append(EnergySettlement.status == status)

    totals_query = select(
        func.count(EnergySettlement.id),
        func.coalesce(func.sum(EnergySettlement.net_operator_revenue_eur), 0),
        func.coalesce(func.sum(EnergySettlement.total_production_kwh), 0),
    ).where(*filters)
    count, revenue, production = (await db.execute(totals_query)).one()

    offset = (page - 1) * page_size
    query = select(EnergySettlement).where(*filters).order_by(
        EnergySettlement.year.desc(), EnergySettlement.month.desc(), EnergySettlement.id.desc()
    ).offset(offset).limit(page_size)
    result = await db.execute(query)

    aggregates = {
        "total_revenue_eur": to_decimal(revenue).quantize(Decimal("0.01")),
        "total_production_kwh": to_decimal(production).quantize(Decimal("0.001")),
    }
    return result.scalars().all(), count, aggregates


async def update_settlement(
    db: AsyncSession, auth: AuthContext, settlement_id: int, data: EnergySettlementUpdate
) -> EnergySettlement:
    """
    Apply changes to a DRAFT settlement.

    Changing revenue, production or distribution parameters invalidates
    the stored calculation.
    """
    settlement = await get_settlement(db, auth.tenant_id, settlement_id)
    ensure_editable(settlement)

    changes = data.model_dump(exclude_unset=True)
    _validate_revenue_split(
        changes.get("eeg_revenue_eur", settlement.eeg_revenue_eur),
        changes.get("dv_revenue_eur", settlement.dv_revenue_eur),
        changes.get("net_operator_revenue_eur", settlement.net_operator_revenue_eur),
    )

    if requires_recalculation(changes):
        invalidate_calculation(settlement)

    for field, value in changes.items():
        setattr(settlement, field, value)

    async with atomic(db):
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=AuditAction.ENERGY_SETTLEMENT_UPDATED,
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=settlement.id,
            metadata={"updated_fields": sorted(changes.keys())},
        )

    await db.refresh(settlement)
    return settlement


async def reset_to_draft(db: AsyncSession, auth: AuthContext, settlement_id: int) -> EnergySettlement:
    """Send a CALCULATED settlement back to DRAFT so it can be edited again."""
    settlement = await get_settlement(db, auth.tenant_id, settlement_id)

    if settlement.status != EnergySettlementStatus.CALCULATED:
        raise InvalidStateError(
            message=f"Only CALCULATED settlements can be reset (current: {settlement.status.value})",
            current=settlement.status.value,
            attempted=EnergySettlementStatus.DRAFT.value,
            allowed=[EnergySettlementStatus.CALCULATED.value],
        )

    invalidate_calculation(settlement)

    async with atomic(db):
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=AuditAction.ENERGY_SETTLEMENT_RESET,
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=settlement.id,
        )

    await db.refresh(settlement)
    return settlement


async def _check_recipients(db: AsyncSession, settlement: EnergySettlement, data: CalculationResultInput) -> None:
    """Funds and turbines referenced by the result must belong to the tenant (and park)."""
    fund_ids = {item.recipient_fund_id for item in data.items if item.recipient_fund_id is not None}
    if fund_ids:
        result = await db.execute(
            select(Fund.id).where(Fund.id.in_(fund_ids), Fund.tenant_id == settlement.tenant_id)
        )
        unknown = fund_ids - set(result.scalars().all())
        if unknown:
            raise ResourceNotFoundError("Fund", min(unknown))

    turbine_ids = {item.turbine_id for item in data.items if item.turbine_id is not None}
    if turbine_ids:
        result = await db.execute(
            select(Turbine.id).where(Turbine.id.in_(turbine_ids), Turbine.park_id == settlement.park_id)
        )
        unknown = turbine_ids - set(result.scalars().all())
        if unknown:
            raise ResourceNotFoundError("Turbine", min(unknown))


def _check_sums(settlement: EnergySettlement, data: CalculationResultInput) -> None:
    """Revenue shares must add up to the settlement revenue exactly, production within a tolerance."""
    revenue_sum = sum((item.revenue_share_eur for item in data.items), Decimal("0"))
    production_sum = sum((item.production_share_kwh for item in data.items), Decimal("0"))

    errors = []
    expected_revenue = to_decimal(settlement.net_operator_revenue_eur)
    if revenue_sum != expected_revenue:
        errors.append({
            "loc": ["body", "items", "revenue_share_eur"],
            "msg": f"Revenue shares sum to {revenue_sum}, expected {expected_revenue}",
        })

    expected_production = to_decimal(settlement.total_production_kwh)
    if abs(production_sum - expected_production) > PRODUCTION_TOLERANCE:
        errors.append({
            "loc": ["body", "items", "production_share_kwh"],
            "msg": f"Production shares sum to {production_sum}, expected {expected_production}",
        })

    if errors:
        raise ValidationFailedError(message="Calculation result does not match settlement totals", errors=errors)


async def record_calculation(
    db: AsyncSession, auth: AuthContext, settlement_id: int, data: CalculationResultInput
) -> EnergySettlement:
    """
    Store the per-recipient shares of the distribution calculation.

    The shares themselves are computed elsewhere; this replaces the items
    of a DRAFT settlement and moves it to CALCULATED.

    Raises:
        InvalidStateError: Settlement is not DRAFT
        ResourceNotFoundError: A fund or turbine is unknown within the tenant
        ValidationFailedError: Revenue split inconsistent, or shares do not sum to the settlement totals
    """
    settlement = await get_settlement(db, auth.tenant_id, settlement_id)
    ensure_editable(settlement)

    _validate_revenue_split(
        settlement.eeg_revenue_eur, settlement.dv_revenue_eur, settlement.net_operator_revenue_eur
    )
    await _check_recipients(db, settlement, data)
    _check_sums(settlement, data)

    settlement.items = [
        EnergySettlementItem(
            recipient_fund_id=item.recipient_fund_id,
            turbine_id=item.turbine_id,
            production_share_kwh=item.production_share_kwh,
            revenue_share_eur=item.revenue_share_eur,
        )
        for item in data.items
    ]
    mark_calculated(settlement, data.calculation_details)

    async with atomic(db):
        await db.flush()
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=AuditAction.ENERGY_SETTLEMENT_CALCULATED,
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=settlement.id,
            metadata={"item_count": len(data.items)},
        )

    await db.refresh(settlement)
    logger.info("Settlement %s calculated with %d items", settlement.id, len(data.items))
    return settlement


async def delete_settlement(db: AsyncSession, auth: AuthContext, settlement_id: int) -> None:
    """
    Delete a settlement without linked invoices (administrators only).

    Raises:
        InsufficientPermissionsError: Caller is not an administrator
        ResourceNotFoundError: Unknown or foreign settlement
        InvalidStateError: An item is already linked to an invoice
    """
    require_role(auth, list(ADMIN_ROLES), "delete energy settlements")

    settlement = await get_settlement(db, auth.tenant_id, settlement_id)
    ensure_deletable(settlement)

    period_label = settlement.period_label
    async with atomic(db):
        await db.execute(
            update(SettlementPeriod)
            .where(SettlementPeriod.linked_energy_settlement_id == settlement.id)
            .values(linked_energy_settlement_id=None)
        )
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=AuditAction.ENERGY_SETTLEMENT_DELETED,
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=settlement.id,
            metadata={"park_id": settlement.park_id, "period": period_label},
        )
        await db.delete(settlement)

    logger.info("Settlement %s (%s) deleted by user %s", settlement_id, period_label, auth.actor_id)


async def emit_invoices(db: AsyncSession, auth: AuthContext, settlement_id: int) -> InvoiceEmissionResult:
    """Create the credit notes of a CALCULATED settlement."""
    return await InvoiceEmitter.emit_invoices(db, auth, settlement_id)
