"""
Settlement and invoicing enumerations.
"""

import enum


class EnergySettlementStatus(str, enum.Enum):
    """Energy settlement status enumeration."""
    DRAFT = "DRAFT"  # Editable, no calculation result yet
    CALCULATED = "CALCULATED"  # Shares computed, ready to invoice
    INVOICED = "INVOICED"  # Credit notes issued (terminal)


class DistributionMode(str, enum.Enum):
    """How metered production is turned into revenue shares."""
    PROPORTIONAL = "PROPORTIONAL"
    SMOOTHED = "SMOOTHED"
    TOLERATED = "TOLERATED"


class SettlementPeriodType(str, enum.Enum):
    """Settlement period type enumeration."""
    ADVANCE = "ADVANCE"  # Monthly or quarterly advance
    FINAL = "FINAL"  # Annual final settlement, no month


class SettlementPeriodStatus(str, enum.Enum):
    """Settlement period approval workflow status."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    PENDING_REVIEW = "PENDING_REVIEW"
    APPROVED = "APPROVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"


class PeriodFrequency(str, enum.Enum):
    """Frequency for bulk period creation."""
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


class TaxType(str, enum.Enum):
    """VAT classification of an invoice line."""
    EXEMPT = "EXEMPT"
    REDUCED = "REDUCED"
    STANDARD = "STANDARD"


class InvoiceType(str, enum.Enum):
    """Invoice document type."""
    INVOICE = "INVOICE"
    CREDIT_NOTE = "CREDIT_NOTE"  # Issued by the operator to a revenue recipient


class InvoiceStatus(str, enum.Enum):
    """Invoice status enumeration."""
    DRAFT = "DRAFT"
    SENT = "SENT"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


class ProductionStatus(str, enum.Enum):
    """Turbine production record status."""
    DRAFT = "DRAFT"
    CONFIRMED = "CONFIRMED"
    INVOICED = "INVOICED"
