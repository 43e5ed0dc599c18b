"""
Invoice Pydantic schemas.

Response models for credit notes created from energy settlements.
"""

from pydantic import BaseModel
from datetime import date
from decimal import Decimal
from typing import Optional, List
from windpark_backend.app.models.settlement_enums import InvoiceType, InvoiceStatus, TaxType


class InvoiceItemResponse(BaseModel):
    """Schema for a single invoice line."""
    position: int
    description: str
    quantity: Decimal
    unit: str
    unit_price: Decimal
    net_amount: Decimal
    tax_type: TaxType
    tax_rate: Decimal
    tax_amount: Decimal
    gross_amount: Decimal

    class Config:
        from_attributes = True


class InvoiceResponse(BaseModel):
    """Schema for a created credit note."""
    id: int
    invoice_type: InvoiceType
    invoice_number: str
    invoice_date: date
    due_date: Optional[date]
    status: InvoiceStatus
    recipient_name: str
    fund_id: Optional[int]
    settlement_item_id: Optional[int]
    service_start_date: Optional[date]
    service_end_date: Optional[date]
    payment_reference: Optional[str]
    net_amount: Decimal
    tax_amount: Decimal
    gross_amount: Decimal
    currency: str
    items: List[InvoiceItemResponse] = []

    class Config:
        from_attributes = True


class InvoiceEmissionSummary(BaseModel):
    settlement_id: int
    invoice_count: int
    total_gross: Decimal
    period: str
    park_name: str
    rounding_corrections: int
    production_records_invoiced: int


class InvoiceEmissionResponse(BaseModel):
    """Response of the create-invoices action."""
    invoices: List[InvoiceResponse]
    summary: InvoiceEmissionSummary
