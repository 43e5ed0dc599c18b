"""
Energy Settlement API Endpoints.

Thin HTTP layer over the energy settlement service: CRUD, recording the
calculation result, resetting to DRAFT and creating credit notes.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from windpark_backend.app.db.session import get_db
from windpark_backend.app.core.guards import AuthContext, require_permission
from windpark_backend.app.models.settlement_enums import EnergySettlementStatus
from windpark_backend.app.schemas.energy_settlement import (
    CalculationResultInput,
    EnergySettlementAggregates,
    EnergySettlementCreate,
    EnergySettlementListResponse,
    EnergySettlementResponse,
    EnergySettlementUpdate,
)
from windpark_backend.app.schemas.invoice import (
    InvoiceEmissionResponse, InvoiceEmissionSummary, InvoiceResponse,
)
from windpark_backend.app.services import energy_settlement_service

router = APIRouter(prefix="/energy/settlements", tags=["Energy Settlements"])


@router.post("", response_model=EnergySettlementResponse, status_code=status.HTTP_201_CREATED)
async def create_settlement(
    data: EnergySettlementCreate,
    auth: AuthContext = Depends(require_permission("energy:create")),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new energy settlement in status DRAFT.
    """
    settlement = await energy_settlement_service.create_settlement(db, auth, data)
    return EnergySettlementResponse.model_validate(settlement)


@router.get("", response_model=EnergySettlementListResponse)
async def list_settlements(
    park_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    status_filter: Optional[EnergySettlementStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    auth: AuthContext = Depends(require_permission("energy:read")),
    db: AsyncSession = Depends(get_db)
):
    """
    List the tenant's energy settlements with revenue and production totals.
    """
    settlements, total, aggregates = await energy_settlement_service.list_settlements(
        db,
        auth.tenant_id,
        park_id=park_id,
        year=year,
        month=month,
        status=status_filter,
        page=page,
        page_size=page_size,
    )

    return EnergySettlementListResponse(
        settlements=[EnergySettlementResponse.model_validate(s) for s in settlements],
        total=total,
        page=page,
        page_size=page_size,
        aggregates=EnergySettlementAggregates(**aggregates)
    )


@router.get("/{settlement_id}", response_model=EnergySettlementResponse)
async def get_settlement(
    settlement_id: int,
    auth: AuthContext = Depends(require_permission("energy:read")),
    db: AsyncSession = Depends(get_db)
):
    settlement = await energy_settlement_service.get_settlement(db, auth.tenant_id, settlement_id)
    return EnergySettlementResponse.model_validate(settlement)


@router.patch("/{settlement_id}", response_model=EnergySettlementResponse)
async def update_settlement(
    settlement_id: int,
    data: EnergySettlementUpdate,
    auth: AuthContext = Depends(require_permission("energy:update")),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a DRAFT settlement.

    Revenue, production or distribution changes clear the calculation.
    """
    settlement = await energy_settlement_service.update_settlement(db, auth, settlement_id, data)
    return EnergySettlementResponse.model_validate(settlement)


@router.delete("/{settlement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_settlement(
    settlement_id: int,
    auth: AuthContext = Depends(require_permission("energy:delete")),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a settlement (administrators only, no linked invoices).
    """
    await energy_settlement_service.delete_settlement(db, auth, settlement_id)


@router.post("/{settlement_id}/calculation", response_model=EnergySettlementResponse)
async def record_calculation(
    settlement_id: int,
    data: CalculationResultInput,
    auth: AuthContext = Depends(require_permission("energy:update")),
    db: AsyncSession = Depends(get_db)
):
    """
    Record the per-recipient shares of a DRAFT settlement and mark it CALCULATED.
    """
    settlement = await energy_settlement_service.record_calculation(db, auth, settlement_id, data)
    return EnergySettlementResponse.model_validate(settlement)


@router.post("/{settlement_id}/reset-draft", response_model=EnergySettlementResponse)
async def reset_to_draft(
    settlement_id: int,
    auth: AuthContext = Depends(require_permission("energy:update")),
    db: AsyncSession = Depends(get_db)
):
    settlement = await energy_settlement_service.reset_to_draft(db, auth, settlement_id)
    return EnergySettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/create-invoices",
    response_model=InvoiceEmissionResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_invoices(
    settlement_id: int,
    auth: AuthContext = Depends(require_permission("energy:settlements:finalize")),
    db: AsyncSession = Depends(get_db)
):
    """
    Create one credit note per settlement item.

    Fails with 409 when credit notes exist already or the settlement is
    not CALCULATED.
    """
    result = await energy_settlement_service.emit_invoices(db, auth, settlement_id)

    return InvoiceEmissionResponse(
        invoices=[InvoiceResponse.model_validate(invoice) for invoice in result.invoices],
        summary=InvoiceEmissionSummary(**result.summary)
    )
