"""
Energy settlement Pydantic schemas.

Defines request and response models for energy settlements and their
recipient items. Money and kWh values are Decimal end to end.
"""

from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict, Any
from windpark_backend.app.models.settlement_enums import EnergySettlementStatus, DistributionMode


class EnergySettlementCreate(BaseModel):
    """Schema for creating a new energy settlement (status DRAFT)."""
    park_id: int
    year: int = Field(..., ge=2000, le=2100)
    month: Optional[int] = Field(None, ge=1, le=12, description="Empty for an annual settlement")
    net_operator_revenue_eur: Decimal = Field(..., ge=0, decimal_places=2)
    net_operator_reference: Optional[str] = Field(None, max_length=100)
    total_production_kwh: Decimal = Field(..., ge=0, decimal_places=3)
    eeg_production_kwh: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    eeg_revenue_eur: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    dv_production_kwh: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    dv_revenue_eur: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    distribution_mode: Optional[DistributionMode] = None
    smoothing_factor: Optional[Decimal] = Field(None, ge=0, le=1)
    tolerance_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None


class EnergySettlementUpdate(BaseModel):
    """Schema for updating a DRAFT energy settlement. Only set fields are applied."""
    net_operator_revenue_eur: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    net_operator_reference: Optional[str] = Field(None, max_length=100)
    total_production_kwh: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    eeg_production_kwh: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    eeg_revenue_eur: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    dv_production_kwh: Optional[Decimal] = Field(None, ge=0, decimal_places=3)
    dv_revenue_eur: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    distribution_mode: Optional[DistributionMode] = None
    smoothing_factor: Optional[Decimal] = Field(None, ge=0, le=1)
    tolerance_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_required_not_cleared(self):
        """Revenue, production and distribution mode can be changed but not cleared."""
        for name in ("net_operator_revenue_eur", "total_production_kwh", "distribution_mode"):
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self


class CalculationItemInput(BaseModel):
    """One recipient share produced by the distribution calculation."""
    recipient_fund_id: Optional[int] = None
    turbine_id: Optional[int] = None
    production_share_kwh: Decimal = Field(..., ge=0, decimal_places=3)
    revenue_share_eur: Decimal = Field(..., ge=0, decimal_places=2)


class CalculationResultInput(BaseModel):
    """Externally computed shares recorded on a DRAFT settlement."""
    items: List[CalculationItemInput] = Field(..., min_length=1)
    calculation_details: Optional[Dict[str, Any]] = None


class EnergySettlementItemResponse(BaseModel):
    """Schema for a settlement item."""
    id: int
    recipient_fund_id: Optional[int]
    turbine_id: Optional[int]
    production_share_kwh: Decimal
    revenue_share_eur: Decimal
    invoice_id: Optional[int]

    class Config:
        from_attributes = True


class EnergySettlementResponse(BaseModel):
    """Schema for energy settlement response."""
    id: int
    park_id: int
    year: int
    month: Optional[int]
    period_label: str
    status: EnergySettlementStatus
    net_operator_revenue_eur: Decimal
    net_operator_reference: Optional[str]
    total_production_kwh: Decimal
    eeg_production_kwh: Optional[Decimal]
    eeg_revenue_eur: Optional[Decimal]
    dv_production_kwh: Optional[Decimal]
    dv_revenue_eur: Optional[Decimal]
    distribution_mode: DistributionMode
    smoothing_factor: Optional[Decimal]
    tolerance_percentage: Optional[Decimal]
    calculation_details: Optional[Dict[str, Any]]
    notes: Optional[str]
    items: List[EnergySettlementItemResponse] = []
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class EnergySettlementAggregates(BaseModel):
    """Sums over all settlements matching a list filter."""
    total_revenue_eur: Decimal
    total_production_kwh: Decimal


class EnergySettlementListResponse(BaseModel):
    """Schema for paginated energy settlement list."""
    settlements: List[EnergySettlementResponse]
    total: int
    page: int
    page_size: int
    aggregates: EnergySettlementAggregates
