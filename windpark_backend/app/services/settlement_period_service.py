"""
Settlement Period Service.

Administrative periods of a park year: single and bulk creation, the
review workflow and the yearly overview.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from windpark_backend.app.core.exceptions import ConflictError, ResourceNotFoundError
from windpark_backend.app.core.guards import AuthContext
from windpark_backend.app.db.session import atomic
from windpark_backend.app.domain.settlement.state_machine import (
    GERMAN_MONTH_NAMES, BulkPeriodPlan, apply_period_transition, ensure_period_deletable, plan_bulk_periods,
)
from windpark_backend.app.models.energy_settlement import EnergySettlement
from windpark_backend.app.models.settlement_enums import (
    PeriodFrequency, SettlementPeriodStatus, SettlementPeriodType,
)
from windpark_backend.app.models.settlement_period import SettlementPeriod
from windpark_backend.app.schemas.settlement_period import (
    SettlementPeriodCreate, SettlementPeriodUpdate,
)
from windpark_backend.app.services.audit import AuditAction, log_event
from windpark_backend.app.services.energy_settlement_service import get_park

logger = logging.getLogger(__name__)

ENTITY_TYPE = "settlement_period"


async def _check_linked_settlement(db: AsyncSession, tenant_id: int, settlement_id: Optional[int]) -> None:
    if settlement_id is None:
        return
    result = await db.execute(
        select(EnergySettlement.id).where(
            EnergySettlement.id == settlement_id,
            EnergySettlement.tenant_id == tenant_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise ResourceNotFoundError("Energy settlement", settlement_id)


async def _existing_periods(db: AsyncSession, tenant_id: int, park_id: int, year: int) -> List[SettlementPeriod]:
    result = await db.execute(
        select(SettlementPeriod).where(
            SettlementPeriod.tenant_id == tenant_id,
            SettlementPeriod.park_id == park_id,
            SettlementPeriod.year == year,
        ).order_by(SettlementPeriod.month)
    )
    return result.scalars().all()


async def get_period(db: AsyncSession, tenant_id: int, period_id: int) -> SettlementPeriod:
    result = await db.execute(
        select(SettlementPeriod).where(
            SettlementPeriod.id == period_id,
            SettlementPeriod.tenant_id == tenant_id,
        )
    )
    period = result.scalar_one_or_none()
    if not period:
        raise ResourceNotFoundError("Settlement period", period_id)
    return period


async def list_periods(
    db: AsyncSession,
    tenant_id: int,
    park_id: Optional[int] = None,
    year: Optional[int] = None,
    status: Optional[SettlementPeriodStatus] = None,
    period_type: Optional[SettlementPeriodType] = None,
    page: int = 1,
    page_size: int = 50,
) -> Tuple[List[SettlementPeriod], int]:
    filters = [SettlementPeriod.tenant_id == tenant_id]
    if park_id:
        filters.append(SettlementPeriod.park_id == park_id)
    if year:
        filters.append(SettlementPeriod.year == year)
    if status:
        filters.append(SettlementPeriod.status == status)
    if period_type:
        filters.append(SettlementPeriod.period_type == period_type)

    total = (await db.execute(select(func.count(SettlementPeriod.id)).where(*filters))).scalar()

    offset = (page - 1) * page_size
    query = select(SettlementPeriod).where(*filters).order_by(
        SettlementPeriod.year.desc(), SettlementPeriod.month.asc(), SettlementPeriod.id.asc()
    ).offset(offset).limit(page_size)
    result = await db.execute(query)
    return result.scalars().all(), total


async def create_period(db: AsyncSession, auth: AuthContext, data: SettlementPeriodCreate) -> SettlementPeriod:
    """
    Create one OPEN period.

    Raises:
        ResourceNotFoundError: Park or linked settlement unknown within the tenant
        ConflictError: The ADVANCE month or the FINAL period already exists
    """
    park = await get_park(db, auth.tenant_id, data.park_id)
    await _check_linked_settlement(db, auth.tenant_id, data.linked_energy_settlement_id)

    for existing in await _existing_periods(db, auth.tenant_id, park.id, data.year):
        if existing.period_type == data.period_type and existing.month == data.month:
            raise ConflictError(
                message=f"Settlement period already exists (ID: {existing.id})",
                details={"period_id": existing.id, "year": data.year, "month": data.month},
            )

    period = SettlementPeriod(
        tenant_id=auth.tenant_id,
        park_id=park.id,
        year=data.year,
        month=data.month,
        period_type=data.period_type,
        status=SettlementPeriodStatus.OPEN,
        advance_invoice_date=data.advance_invoice_date,
        settlement_date=data.settlement_date,
        linked_energy_settlement_id=data.linked_energy_settlement_id,
        notes=data.notes,
        created_by_id=auth.actor_id,
    )

    try:
        async with atomic(db):
            db.add(period)
            await db.flush()
            await log_event(
                db,
                tenant_id=auth.tenant_id,
                action=AuditAction.SETTLEMENT_PERIOD_CREATED,
                actor_id=auth.actor_id,
                actor_username=auth.username,
                entity_type=ENTITY_TYPE,
                entity_id=period.id,
                metadata={"park_id": park.id, "year": data.year, "month": data.month},
            )
    except IntegrityError:
        raise ConflictError(
            message="Settlement period already exists",
            details={"year": data.year, "month": data.month},
        )

    await db.refresh(period)
    return period


async def update_period(
    db: AsyncSession, auth: AuthContext, period_id: int, data: SettlementPeriodUpdate
) -> SettlementPeriod:
    """
    Update fields and, if requested, move the period through the workflow.

    Setting the current status again is not a transition and is accepted.
    """
    period = await get_period(db, auth.tenant_id, period_id)

    changes = data.model_dump(exclude_unset=True)
    new_status = changes.pop("status", None)
    review_notes = changes.pop("review_notes", None)

    if "linked_energy_settlement_id" in changes:
        await _check_linked_settlement(db, auth.tenant_id, changes["linked_energy_settlement_id"])

    previous_status = period.status
    if new_status is not None and new_status != period.status:
        apply_period_transition(period, new_status, actor_id=auth.actor_id, review_notes=review_notes)
    elif review_notes is not None:
        period.review_notes = review_notes

    for field, value in changes.items():
        setattr(period, field, value)

    status_changed = period.status != previous_status
    async with atomic(db):
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=(
                AuditAction.SETTLEMENT_PERIOD_STATUS_CHANGED if status_changed
                else AuditAction.SETTLEMENT_PERIOD_UPDATED
            ),
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=period.id,
            metadata={
                "from": previous_status.value,
                "to": period.status.value,
                "updated_fields": sorted(changes.keys()),
            },
        )

    await db.refresh(period)
    return period


async def delete_period(db: AsyncSession, auth: AuthContext, period_id: int) -> None:
    """Delete an OPEN period."""
    period = await get_period(db, auth.tenant_id, period_id)
    ensure_period_deletable(period)

    async with atomic(db):
        await log_event(
            db,
            tenant_id=auth.tenant_id,
            action=AuditAction.SETTLEMENT_PERIOD_DELETED,
            actor_id=auth.actor_id,
            actor_username=auth.username,
            entity_type=ENTITY_TYPE,
            entity_id=period.id,
            metadata={"park_id": period.park_id, "year": period.year, "month": period.month},
        )
        await db.delete(period)


async def bulk_create_periods(
    db: AsyncSession,
    auth: AuthContext,
    park_id: int,
    year: int,
    frequency: PeriodFrequency = PeriodFrequency.MONTHLY,
    create_final_period: bool = True,
    notes: Optional[str] = None,
) -> Tuple[List[SettlementPeriod], BulkPeriodPlan]:
    """
    Create every missing ADVANCE period of a year, plus the FINAL period.

    Args:
        db: Database session
        auth: Caller's tenant and actor
        park_id: Park the periods belong to
        year: Settlement year
        frequency: MONTHLY (12 periods) or QUARTERLY (4 periods)
        create_final_period: Also create the annual FINAL period if absent
        notes: Note copied onto every new period with its month name

    Returns:
        (created periods, the plan that was executed)

    Raises:
        ResourceNotFoundError: Park unknown within the tenant
        ConflictError: Nothing left to create
    """
    # 1. Park ownership
    park = await get_park(db, auth.tenant_id, park_id)

    # 2. What exists already
    existing = await _existing_periods(db, auth.tenant_id, park.id, year)
    existing_months = [
        p.month for p in existing if p.period_type == SettlementPeriodType.ADVANCE and p.month is not None
    ]
    final_exists = any(p.period_type == SettlementPeriodType.FINAL for p in existing)

    # 3. Plan (raises ConflictError when nothing is missing)
    plan = plan_bulk_periods(
        year=year,
        frequency=frequency,
        existing_months=existing_months,
        final_exists=final_exists,
        create_final_period=create_final_period,
        notes=notes,
    )

    # 4. Create all planned periods together
    created = [
        SettlementPeriod(
            tenant_id=auth.tenant_id,
            park_id=park.id,
            year=year,
            month=planned.month,
            period_type=planned.period_type,
            status=SettlementPeriodStatus.OPEN,
            notes=planned.notes,
            created_by_id=auth.actor_id,
        )
        for planned in plan.periods
    ]

    try:
        async with atomic(db):
            db.add_all(created)
            await db.flush()
            await log_event(
                db,
                tenant_id=auth.tenant_id,
                action=AuditAction.SETTLEMENT_PERIODS_BULK_CREATED,
                actor_id=auth.actor_id,
                actor_username=auth.username,
                entity_type=ENTITY_TYPE,
                metadata={
                    "park_id": park.id,
                    "year": year,
                    "frequency": frequency.value,
                    "period_ids": [p.id for p in created],
                    "skipped_months": plan.skipped_months,
                },
            )
    except IntegrityError:
        raise ConflictError(
            message=f"Settlement periods for {year} were created concurrently",
            details={"park_id": park.id, "year": year},
        )

    for period in created:
        await db.refresh(period)

    logger.info(
        "Created %d settlement periods for park %s, year %s (skipped months: %s)",
        len(created), park.id, year, plan.skipped_months,
    )
    return created, plan


async def get_year_overview(db: AsyncSession, tenant_id: int, park_id: int, year: int) -> dict:
    """Which ADVANCE months and whether the FINAL period of a park year exist."""
    park = await get_park(db, tenant_id, park_id)
    existing = await _existing_periods(db, tenant_id, park.id, year)

    advance = {
        p.month: p for p in existing if p.period_type == SettlementPeriodType.ADVANCE
    }
    final = next((p for p in existing if p.period_type == SettlementPeriodType.FINAL), None)

    monthly = []
    for month in range(1, 13):
        period = advance.get(month)
        monthly.append({
            "month": month,
            "month_name": GERMAN_MONTH_NAMES[month],
            "exists": period is not None,
            "period_id": period.id if period else None,
            "status": period.status if period else None,
        })

    existing_count = sum(1 for m in monthly if m["exists"])
    return {
        "park_id": park.id,
        "year": year,
        "monthly_periods": monthly,
        "final_period": {
            "exists": final is not None,
            "period_id": final.id if final else None,
            "status": final.status if final else None,
        },
        "monthly_existing": existing_count,
        "monthly_missing": 12 - existing_count,
    }
