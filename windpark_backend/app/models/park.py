"""
Park, turbine and fund master data.

Only the fields the settlement workflow reads are modelled here.
"""

from sqlalchemy import Column, Integer, String, Numeric, ForeignKey, DateTime, Enum, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from windpark_backend.app.db.session import Base
from windpark_backend.app.models.settlement_enums import DistributionMode


class Park(Base):
    """A wind park owned by a tenant."""
    __tablename__ = "parks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    short_name = Column(String(50), nullable=True)

    # Defaults applied to new energy settlements
    default_distribution_mode = Column(Enum(DistributionMode), nullable=True)
    default_tolerance_percent = Column(Numeric(5, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    turbines = relationship("Turbine", back_populates="park")

    def __repr__(self):
        return f"<Park(id={self.id}, name='{self.name}')>"


class Turbine(Base):
    """A single turbine (WKA) within a park."""
    __tablename__ = "turbines"
    __table_args__ = (
        UniqueConstraint("park_id", "designation", name="uq_turbine_park_designation"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    park_id = Column(Integer, ForeignKey("parks.id"), nullable=False, index=True)
    designation = Column(String(100), nullable=False)

    park = relationship("Park", back_populates="turbines")

    def __repr__(self):
        return f"<Turbine(id={self.id}, designation='{self.designation}')>"


class Fund(Base):
    """A legal entity holding shares of turbines; recipient of credit notes."""
    __tablename__ = "funds"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tenant_id = Column(Integer, nullable=False, index=True)

    name = Column(String(200), nullable=False)
    legal_form = Column(String(50), nullable=True)
    address = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Fund(id={self.id}, name='{self.name}')>"
