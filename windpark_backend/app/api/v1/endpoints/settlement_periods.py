"""
Settlement Period API Endpoints.

Administrative period workflow: CRUD, status transitions and bulk
creation of a park year.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from windpark_backend.app.db.session import get_db
from windpark_backend.app.core.guards import AuthContext, require_permission
from windpark_backend.app.models.settlement_enums import SettlementPeriodStatus, SettlementPeriodType
from windpark_backend.app.schemas.settlement_period import (
    BulkCreatePeriodsRequest,
    BulkCreatePeriodsResponse,
    SettlementPeriodCreate,
    SettlementPeriodListResponse,
    SettlementPeriodResponse,
    SettlementPeriodUpdate,
    YearOverviewResponse,
)
from windpark_backend.app.services import settlement_period_service

router = APIRouter(prefix="/admin/settlement-periods", tags=["Admin - Settlement Periods"])


@router.post("/bulk-create", response_model=BulkCreatePeriodsResponse, status_code=status.HTTP_201_CREATED)
async def bulk_create_periods(
    data: BulkCreatePeriodsRequest,
    auth: AuthContext = Depends(require_permission("invoices:create")),
    db: AsyncSession = Depends(get_db)
):
    """
    Create all missing periods of a year.

    Existing months are skipped; 409 if nothing is left to create.
    """
    created, plan = await settlement_period_service.bulk_create_periods(
        db,
        auth,
        park_id=data.park_id,
        year=data.year,
        frequency=data.frequency,
        create_final_period=data.create_final_period,
        notes=data.notes,
    )

    return BulkCreatePeriodsResponse(
        created=[SettlementPeriodResponse.model_validate(p) for p in created],
        created_count=len(created),
        skipped_months=plan.skipped_months,
        final_skipped=plan.final_skipped
    )


@router.get("/bulk-create", response_model=YearOverviewResponse)
async def year_overview(
    park_id: int = Query(...),
    year: int = Query(..., ge=2000, le=2100),
    auth: AuthContext = Depends(require_permission("invoices:read")),
    db: AsyncSession = Depends(get_db)
):
    """
    Show which periods of a park year exist before bulk creation.
    """
    overview = await settlement_period_service.get_year_overview(db, auth.tenant_id, park_id, year)
    return YearOverviewResponse(**overview)


@router.post("", response_model=SettlementPeriodResponse, status_code=status.HTTP_201_CREATED)
async def create_period(
    data: SettlementPeriodCreate,
    auth: AuthContext = Depends(require_permission("invoices:create")),
    db: AsyncSession = Depends(get_db)
):
    period = await settlement_period_service.create_period(db, auth, data)
    return SettlementPeriodResponse.model_validate(period)


@router.get("", response_model=SettlementPeriodListResponse)
async def list_periods(
    park_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    status_filter: Optional[SettlementPeriodStatus] = Query(None, alias="status"),
    period_type: Optional[SettlementPeriodType] = Query(None),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(50, ge=1, le=100, description="Items per page"),
    auth: AuthContext = Depends(require_permission("invoices:read")),
    db: AsyncSession = Depends(get_db)
):
    periods, total = await settlement_period_service.list_periods(
        db,
        auth.tenant_id,
        park_id=park_id,
        year=year,
        status=status_filter,
        period_type=period_type,
        page=page,
        page_size=page_size,
    )

    return SettlementPeriodListResponse(
        periods=[SettlementPeriodResponse.model_validate(p) for p in periods],
        total=total,
        page=page,
        page_size=page_size
    )


@router.get("/{period_id}", response_model=SettlementPeriodResponse)
async def get_period(
    period_id: int,
    auth: AuthContext = Depends(require_permission("invoices:read")),
    db: AsyncSession = Depends(get_db)
):
    period = await settlement_period_service.get_period(db, auth.tenant_id, period_id)
    return SettlementPeriodResponse.model_validate(period)


@router.patch("/{period_id}", response_model=SettlementPeriodResponse)
async def update_period(
    period_id: int,
    data: SettlementPeriodUpdate,
    auth: AuthContext = Depends(require_permission("invoices:update")),
    db: AsyncSession = Depends(get_db)
):
    """
    Update a period. Status changes must follow the review workflow.
    """
    period = await settlement_period_service.update_period(db, auth, period_id, data)
    return SettlementPeriodResponse.model_validate(period)


@router.delete("/{period_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_period(
    period_id: int,
    auth: AuthContext = Depends(require_permission("invoices:delete")),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete an OPEN period.
    """
    await settlement_period_service.delete_period(db, auth, period_id)
