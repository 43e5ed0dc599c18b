"""
Invoice database models.

Credit notes produced from energy settlements live here together with
their ordered line items.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Date, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base
from windpark_backend.app.models.settlement_enums import InvoiceType, InvoiceStatus, TaxType


class Invoice(Base):
    """
    Invoice / credit note model.

    settlement_item_id is unique: the storage layer admits at most one
    invoice per settlement item, which closes the read-then-write race of
    two concurrent invoicing requests.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_invoice_number"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    invoice_type = Column(Enum(InvoiceType), nullable=False)
    invoice_number = Column(String(50), nullable=False)
    invoice_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    status = Column(Enum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False, index=True)

    # Recipient
    recipient_type = Column(String(20), nullable=False)
    recipient_name = Column(String(200), nullable=False)
    recipient_address = Column(String(500), nullable=True)

    # Service period
    service_start_date = Column(Date, nullable=True)
    service_end_date = Column(Date, nullable=True)
    payment_reference = Column(String(200), nullable=True)

    # Totals
    net_amount = Column(Numeric(15, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    gross_amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)

    notes = Column(Text, nullable=True)

    # Linkage
    fund_id = Column(Integer, ForeignKey("funds.id"), nullable=True, index=True)
    park_id = Column(Integer, ForeignKey("parks.id"), nullable=True, index=True)
    energy_settlement_id = Column(Integer, ForeignKey("energy_settlements.id"), nullable=True, index=True)
    settlement_item_id = Column(Integer, nullable=True, unique=True)

    created_by_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', gross={self.gross_amount})>"


class InvoiceItem(Base):
    """A single tax-classified invoice line."""
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)

    position = Column(Integer, nullable=False)
    description = Column(String(500), nullable=False)
    quantity = Column(Numeric(15, 3), nullable=False)
    unit = Column(String(20), nullable=False)
    unit_price = Column(Numeric(15, 6), nullable=False)

    net_amount = Column(Numeric(15, 2), nullable=False)
    tax_type = Column(Enum(TaxType), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(15, 2), nullable=False)
    gross_amount = Column(Numeric(15, 2), nullable=False)

    reference_type = Column(String(50), nullable=True)
    reference_id = Column(Integer, nullable=True)

    invoice = relationship("Invoice", back_populates="items")

    def __repr__(self):
        return f"<InvoiceItem(position={self.position}, net={self.net_amount}, tax={self.tax_type.value})>"


class InvoiceNumberSequence(Base):
    """Last issued number per tenant, document type and year."""
    __tablename__ = "invoice_number_sequences"
    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_type", "year", name="uq_invoice_number_sequence"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    invoice_type = Column(Enum(InvoiceType), nullable=False)
    year = Column(Integer, nullable=False)
    last_number = Column(Integer, default=0, nullable=False)

    def __repr__(self):
        return f"<InvoiceNumberSequence(tenant={self.tenant_id}, type='{self.invoice_type.value}', last={self.last_number})>"
