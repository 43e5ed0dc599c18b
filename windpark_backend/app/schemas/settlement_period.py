"""
Settlement period Pydantic schemas.

Defines request and response models for the period review workflow and
bulk period creation.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from windpark_backend.app.models.settlement_enums import (
    SettlementPeriodStatus, SettlementPeriodType, PeriodFrequency
)


class SettlementPeriodCreate(BaseModel):
    """Schema for creating a single settlement period."""
    park_id: int
    year: int = Field(..., ge=2000, le=2100)
    month: Optional[int] = Field(None, ge=1, le=12)
    period_type: SettlementPeriodType = SettlementPeriodType.ADVANCE
    advance_invoice_date: Optional[date] = None
    settlement_date: Optional[date] = None
    linked_energy_settlement_id: Optional[int] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_month_matches_type(self):
        """FINAL periods have no month, ADVANCE periods need one."""
        if self.period_type == SettlementPeriodType.FINAL and self.month is not None:
            raise ValueError("FINAL periods must not have a month")
        if self.period_type == SettlementPeriodType.ADVANCE and self.month is None:
            raise ValueError("ADVANCE periods require a month")
        return self


class SettlementPeriodUpdate(BaseModel):
    """Schema for updating a period; status changes follow the workflow."""
    status: Optional[SettlementPeriodStatus] = None
    review_notes: Optional[str] = None
    advance_invoice_date: Optional[date] = None
    settlement_date: Optional[date] = None
    linked_energy_settlement_id: Optional[int] = None
    total_revenue: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    total_minimum_rent: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    total_actual_rent: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    notes: Optional[str] = None


class SettlementPeriodResponse(BaseModel):
    """Schema for settlement period response."""
    id: int
    park_id: int
    year: int
    month: Optional[int]
    period_type: SettlementPeriodType
    status: SettlementPeriodStatus
    linked_energy_settlement_id: Optional[int]
    advance_invoice_date: Optional[date]
    settlement_date: Optional[date]
    reviewed_by_id: Optional[int]
    reviewed_at: Optional[datetime]
    review_notes: Optional[str]
    total_revenue: Optional[Decimal]
    total_minimum_rent: Optional[Decimal]
    total_actual_rent: Optional[Decimal]
    notes: Optional[str]
    created_by_id: Optional[int]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class SettlementPeriodListResponse(BaseModel):
    """Schema for paginated period list."""
    periods: List[SettlementPeriodResponse]
    total: int
    page: int
    page_size: int


class BulkCreatePeriodsRequest(BaseModel):
    """Create all missing ADVANCE periods of a year, optionally with the FINAL one."""
    park_id: int
    year: int = Field(..., ge=2000, le=2100)
    frequency: PeriodFrequency = PeriodFrequency.MONTHLY
    create_final_period: bool = True
    notes: Optional[str] = Field(None, max_length=500)


class BulkCreatePeriodsResponse(BaseModel):
    created: List[SettlementPeriodResponse]
    created_count: int
    skipped_months: List[int]
    final_skipped: bool


class MonthOverview(BaseModel):
    month: int
    month_name: str
    exists: bool
    period_id: Optional[int] = None
    status: Optional[SettlementPeriodStatus] = None


class FinalPeriodOverview(BaseModel):
    exists: bool
    period_id: Optional[int] = None
    status: Optional[SettlementPeriodStatus] = None


class YearOverviewResponse(BaseModel):
    """Which periods of a park's year already exist."""
    park_id: int
    year: int
    monthly_periods: List[MonthOverview]
    final_period: FinalPeriodOverview
    monthly_existing: int
    monthly_missing: int
