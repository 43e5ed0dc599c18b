"""
Turbine production database model.

Metered production per turbine and period. Owned by the metering side;
the invoicing workflow only flips its status.
"""

from sqlalchemy import Column, Integer, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base
from windpark_backend.app.models.settlement_enums import ProductionStatus


class TurbineProduction(Base):
    """Production of one turbine in one month."""
    __tablename__ = "turbine_productions"
    __table_args__ = (
        UniqueConstraint("tenant_id", "turbine_id", "year", "month", name="uq_turbine_production_period"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    turbine_id = Column(Integer, ForeignKey("turbines.id"), nullable=False, index=True)

    year = Column(Integer, nullable=False)
    month = Column(Integer, nullable=False)
    production_kwh = Column(Numeric(15, 3), nullable=False)

    status = Column(Enum(ProductionStatus), default=ProductionStatus.DRAFT, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<TurbineProduction(turbine={self.turbine_id}, {self.month}/{self.year}, status='{self.status.value}')>"
