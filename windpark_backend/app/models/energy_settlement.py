"""
Energy settlement database models.

An EnergySettlement distributes one period's net operator revenue of a park
among the recipient funds; each EnergySettlementItem is one recipient's share
and the unit an invoice is linked to.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, ForeignKey, DateTime, Enum, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base
from windpark_backend.app.models.settlement_enums import EnergySettlementStatus, DistributionMode


class EnergySettlement(Base):
    """
    Energy settlement model.

    Lifecycle: DRAFT -> CALCULATED -> INVOICED.
    netOperatorRevenue is authoritative; production only serves as the
    distribution key. The EEG/DV fields are an optional regulatory split.
    """
    __tablename__ = "energy_settlements"
    __table_args__ = (
        UniqueConstraint("tenant_id", "park_id", "year", "month", name="uq_energy_settlement_period"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    park_id = Column(Integer, ForeignKey("parks.id"), nullable=False, index=True)

    # Period (month NULL = annual settlement)
    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=True)

    status = Column(Enum(EnergySettlementStatus), default=EnergySettlementStatus.DRAFT, nullable=False, index=True)

    # Revenue to distribute
    net_operator_revenue_eur = Column(Numeric(15, 2), nullable=False)
    net_operator_reference = Column(String(100), nullable=True)
    total_production_kwh = Column(Numeric(15, 3), nullable=False)

    # Regulatory split (present together or absent)
    eeg_production_kwh = Column(Numeric(15, 3), nullable=True)
    eeg_revenue_eur = Column(Numeric(15, 2), nullable=True)
    dv_production_kwh = Column(Numeric(15, 3), nullable=True)
    dv_revenue_eur = Column(Numeric(15, 2), nullable=True)

    # Distribution parameters (consumed by the external calculation)
    distribution_mode = Column(Enum(DistributionMode), default=DistributionMode.SMOOTHED, nullable=False)
    smoothing_factor = Column(Numeric(5, 4), nullable=True)
    tolerance_percentage = Column(Numeric(5, 2), nullable=True)
    calculation_details = Column(JSON, nullable=True)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    park = relationship("Park", lazy="selectin")
    items = relationship(
        "EnergySettlementItem",
        back_populates="settlement",
        cascade="all, delete-orphan",
        order_by="EnergySettlementItem.id",
        lazy="selectin",
    )

    @property
    def period_label(self) -> str:
        """"03/2026" for monthly settlements, "2026" for annual ones."""
        if self.month:
            return f"{self.month:02d}/{self.year}"
        return f"{self.year}"

    def __repr__(self):
        return f"<EnergySettlement(id={self.id}, period='{self.period_label}', status='{self.status.value}')>"


class EnergySettlementItem(Base):
    """
    One recipient's allocation within a settlement.

    invoice_id is set exactly once, by the invoice emitter, and never reassigned.
    """
    __tablename__ = "energy_settlement_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    settlement_id = Column(Integer, ForeignKey("energy_settlements.id", ondelete="CASCADE"), nullable=False, index=True)

    recipient_fund_id = Column(Integer, ForeignKey("funds.id"), nullable=True, index=True)
    turbine_id = Column(Integer, ForeignKey("turbines.id"), nullable=True)

    production_share_kwh = Column(Numeric(15, 3), nullable=False)
    revenue_share_eur = Column(Numeric(15, 2), nullable=False)

    invoice_id = Column(Integer, ForeignKey("invoices.id"), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    settlement = relationship("EnergySettlement", back_populates="items")
    recipient_fund = relationship("Fund", lazy="selectin")
    turbine = relationship("Turbine", lazy="selectin")

    def __repr__(self):
        return f"<EnergySettlementItem(id={self.id}, fund={self.recipient_fund_id}, revenue={self.revenue_share_eur})>"
