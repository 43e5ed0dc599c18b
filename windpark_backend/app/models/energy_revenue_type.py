"""
Energy revenue type configuration.

Tenant-level tax configuration per revenue component (EEG, MARKTPRAEMIE, ...).
"""

from sqlalchemy import Column, Integer, String, Boolean, Numeric, DateTime, UniqueConstraint
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base


class EnergyRevenueType(Base):
    """Revenue component with its VAT treatment."""
    __tablename__ = "energy_revenue_types"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_energy_revenue_type_code"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    code = Column(String(50), nullable=False)
    name = Column(String(100), nullable=False)
    has_tax = Column(Boolean, default=True, nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<EnergyRevenueType(code='{self.code}', has_tax={self.has_tax}, rate={self.tax_rate})>"
