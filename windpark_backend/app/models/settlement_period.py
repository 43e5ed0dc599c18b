"""
Settlement period database model.

Administrative container for a park + year (+ month) that tracks the
approval workflow independently of the revenue calculation.
"""

from sqlalchemy import (
    Column, Integer, String, Text, Date, Numeric, ForeignKey, DateTime, Enum,
    UniqueConstraint, CheckConstraint, Index, text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base
from windpark_backend.app.models.settlement_enums import SettlementPeriodStatus, SettlementPeriodType


class SettlementPeriod(Base):
    """
    Settlement period model.

    One ADVANCE period per (park, year, month), at most one FINAL period per
    (park, year). FINAL periods have no month.
    """
    __tablename__ = "settlement_periods"
    __table_args__ = (
        UniqueConstraint("tenant_id", "park_id", "year", "month", "period_type", name="uq_settlement_period"),
        CheckConstraint(
            "(period_type = 'FINAL' AND month IS NULL) OR (period_type = 'ADVANCE' AND month IS NOT NULL)",
            name="ck_settlement_period_month",
        ),
        Index(
            "uq_settlement_period_final",
            "tenant_id", "park_id", "year",
            unique=True,
            sqlite_where=text("period_type = 'FINAL'"),
            postgresql_where=text("period_type = 'FINAL'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    park_id = Column(Integer, ForeignKey("parks.id"), nullable=False, index=True)

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=True)
    period_type = Column(Enum(SettlementPeriodType), default=SettlementPeriodType.ADVANCE, nullable=False)
    status = Column(Enum(SettlementPeriodStatus), default=SettlementPeriodStatus.OPEN, nullable=False, index=True)

    linked_energy_settlement_id = Column(Integer, ForeignKey("energy_settlements.id"), nullable=True)

    advance_invoice_date = Column(Date, nullable=True)
    settlement_date = Column(Date, nullable=True)

    # Review
    reviewed_by_id = Column(Integer, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)

    # Totals
    total_revenue = Column(Numeric(15, 2), nullable=True)
    total_minimum_rent = Column(Numeric(15, 2), nullable=True)
    total_actual_rent = Column(Numeric(15, 2), nullable=True)

    notes = Column(Text, nullable=True)
    created_by_id = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    park = relationship("Park", lazy="selectin")

    def __repr__(self):
        return f"<SettlementPeriod(id={self.id}, year={self.year}, month={self.month}, status='{self.status.value}')>"
