"""
Settlement State Machine (Domain Logic).

Two independent lifecycles live here:
- EnergySettlement: DRAFT -> CALCULATED -> INVOICED, with CALCULATED -> DRAFT
  whenever a recalculation-relevant field changes.
- SettlementPeriod: the administrative review workflow.

Functions only validate and mutate in-memory objects; persisting is the
caller's job.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence

from windpark_backend.app.core.exceptions import ConflictError, InvalidStateError
from windpark_backend.app.models.settlement_enums import (
    EnergySettlementStatus,
    PeriodFrequency,
    SettlementPeriodStatus,
    SettlementPeriodType,
)

logger = logging.getLogger(__name__)


SETTLEMENT_TRANSITIONS: Dict[EnergySettlementStatus, FrozenSet[EnergySettlementStatus]] = {
    EnergySettlementStatus.DRAFT: frozenset({EnergySettlementStatus.CALCULATED}),
    EnergySettlementStatus.CALCULATED: frozenset({
        EnergySettlementStatus.INVOICED,
        EnergySettlementStatus.DRAFT,
    }),
    EnergySettlementStatus.INVOICED: frozenset(),
}

PERIOD_TRANSITIONS: Dict[SettlementPeriodStatus, FrozenSet[SettlementPeriodStatus]] = {
    SettlementPeriodStatus.OPEN: frozenset({
        SettlementPeriodStatus.IN_PROGRESS,
        SettlementPeriodStatus.CANCELLED,
    }),
    SettlementPeriodStatus.IN_PROGRESS: frozenset({
        SettlementPeriodStatus.PENDING_REVIEW,
        SettlementPeriodStatus.OPEN,
        SettlementPeriodStatus.CANCELLED,
    }),
    SettlementPeriodStatus.PENDING_REVIEW: frozenset({
        SettlementPeriodStatus.APPROVED,
        SettlementPeriodStatus.IN_PROGRESS,
        SettlementPeriodStatus.CANCELLED,
    }),
    SettlementPeriodStatus.APPROVED: frozenset({SettlementPeriodStatus.CLOSED}),
    SettlementPeriodStatus.CLOSED: frozenset(),
    SettlementPeriodStatus.CANCELLED: frozenset(),
}

# Fields whose change makes an existing calculation stale
RECALCULATION_FIELDS = frozenset({
    "net_operator_revenue_eur",
    "total_production_kwh",
    "eeg_production_kwh",
    "eeg_revenue_eur",
    "dv_production_kwh",
    "dv_revenue_eur",
    "distribution_mode",
    "smoothing_factor",
    "tolerance_percentage",
})

QUARTER_END_MONTHS = (3, 6, 9, 12)

GERMAN_MONTH_NAMES = {
    1: "Januar", 2: "Februar", 3: "März", 4: "April", 5: "Mai", 6: "Juni",
    7: "Juli", 8: "August", 9: "September", 10: "Oktober", 11: "November", 12: "Dezember",
}


def _sorted_values(statuses: Iterable) -> List[str]:
    return sorted(s.value for s in statuses)


# --- Energy settlement ---------------------------------------------------

def requires_recalculation(changes: Dict) -> bool:
    """True if any of the changed fields invalidates the calculation."""
    return any(name in RECALCULATION_FIELDS for name in changes)


def invalidate_calculation(settlement):
    """
    Drop a stale calculation.

    A CALCULATED settlement goes back to DRAFT and its calculation details
    are cleared. DRAFT settlements only lose their details. INVOICED is
    terminal and rejected.

    Returns:
        The same settlement object
    """
    if settlement.status == EnergySettlementStatus.INVOICED:
        raise InvalidStateError(
            message="Invoiced settlements cannot be recalculated",
            current=settlement.status.value,
            attempted=EnergySettlementStatus.DRAFT.value,
            allowed=_sorted_values(SETTLEMENT_TRANSITIONS[settlement.status]),
        )

    if settlement.status == EnergySettlementStatus.CALCULATED:
        logger.info("Settlement %s calculation invalidated, back to DRAFT", settlement.id)

    settlement.status = EnergySettlementStatus.DRAFT
    settlement.calculation_details = None
    return settlement


def ensure_editable(settlement) -> None:
    """Only DRAFT settlements may be edited."""
    if settlement.status != EnergySettlementStatus.DRAFT:
        raise InvalidStateError(
            message=f"Settlement can only be edited in status DRAFT (current: {settlement.status.value})",
            current=settlement.status.value,
            attempted="EDIT",
            allowed=[EnergySettlementStatus.DRAFT.value],
        )


def ensure_invoiceable(settlement) -> None:
    """Only CALCULATED settlements may be invoiced."""
    if settlement.status != EnergySettlementStatus.CALCULATED:
        raise InvalidStateError(
            message=(
                f"Settlement must be CALCULATED to create credit notes "
                f"(current: {settlement.status.value})"
            ),
            current=settlement.status.value,
            attempted=EnergySettlementStatus.INVOICED.value,
            allowed=[EnergySettlementStatus.CALCULATED.value],
        )


def ensure_not_invoiced(items: Sequence) -> None:
    """
    Idempotency guard: no item may carry an invoice yet.

    Raises:
        ConflictError: listing the items that are already linked
    """
    linked = [item.id for item in items if item.invoice_id is not None]
    if linked:
        raise ConflictError(
            message="Credit notes have already been created for this settlement",
            details={"item_ids": linked},
        )


def ensure_deletable(settlement) -> None:
    """A settlement is deletable while none of its items is linked to an invoice."""
    if any(item.invoice_id is not None for item in settlement.items):
        raise InvalidStateError(
            message="Settlement has linked invoices and cannot be deleted",
            current=settlement.status.value,
            attempted="DELETE",
            allowed=[EnergySettlementStatus.DRAFT.value, EnergySettlementStatus.CALCULATED.value],
        )


def _transition_settlement(settlement, target: EnergySettlementStatus) -> None:
    allowed = SETTLEMENT_TRANSITIONS[settlement.status]
    if target not in allowed:
        raise InvalidStateError(
            message=f"Invalid status transition: {settlement.status.value} -> {target.value}",
            current=settlement.status.value,
            attempted=target.value,
            allowed=_sorted_values(allowed),
        )
    settlement.status = target


def mark_calculated(settlement, details: Optional[Dict] = None) -> None:
    _transition_settlement(settlement, EnergySettlementStatus.CALCULATED)
    settlement.calculation_details = details


def mark_invoiced(settlement) -> None:
    _transition_settlement(settlement, EnergySettlementStatus.INVOICED)


# --- Settlement periods --------------------------------------------------

def validate_period_transition(current: SettlementPeriodStatus, target: SettlementPeriodStatus) -> None:
    """
    Check a period status change against PERIOD_TRANSITIONS.

    Raises:
        InvalidStateError: naming the attempted and the allowed transitions
    """
    allowed = PERIOD_TRANSITIONS[current]
    if target not in allowed:
        allowed_values = _sorted_values(allowed)
        raise InvalidStateError(
            message=(
                f"Invalid status transition: {current.value} -> {target.value}. "
                f"Allowed: {', '.join(allowed_values) or 'none'}"
            ),
            current=current.value,
            attempted=target.value,
            allowed=allowed_values,
        )


def apply_period_transition(
    period,
    target: SettlementPeriodStatus,
    actor_id: Optional[int] = None,
    review_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> None:
    """
    Move a period to a new status.

    Entering PENDING_REVIEW wipes reviewer, timestamp and notes. Leaving
    PENDING_REVIEW (approval or send-back) records who reviewed it and when.
    """
    current = period.status
    validate_period_transition(current, target)

    if target == SettlementPeriodStatus.PENDING_REVIEW:
        period.reviewed_by_id = None
        period.reviewed_at = None
        period.review_notes = None
    elif current == SettlementPeriodStatus.PENDING_REVIEW and target in (
        SettlementPeriodStatus.APPROVED,
        SettlementPeriodStatus.IN_PROGRESS,
    ):
        period.reviewed_by_id = actor_id
        period.reviewed_at = now or datetime.utcnow()
        if review_notes is not None:
            period.review_notes = review_notes

    period.status = target
    logger.info("Settlement period %s: %s -> %s", period.id, current.value, target.value)


def ensure_period_deletable(period) -> None:
    if period.status != SettlementPeriodStatus.OPEN:
        raise InvalidStateError(
            message=f"Only OPEN periods can be deleted (current: {period.status.value})",
            current=period.status.value,
            attempted="DELETE",
            allowed=[SettlementPeriodStatus.OPEN.value],
        )


@dataclass(frozen=True)
class PlannedPeriod:
    """One period to be created by a bulk request."""
    period_type: SettlementPeriodType
    month: Optional[int]
    notes: Optional[str] = None


@dataclass(frozen=True)
class BulkPeriodPlan:
    periods: List[PlannedPeriod] = field(default_factory=list)
    skipped_months: List[int] = field(default_factory=list)
    final_skipped: bool = False


def months_for(frequency: PeriodFrequency) -> List[int]:
    if frequency == PeriodFrequency.QUARTERLY:
        return list(QUARTER_END_MONTHS)
    return list(range(1, 13))


def period_note(year: int, month: Optional[int], notes: Optional[str]) -> Optional[str]:
    """Suffix user notes with the German period name, e.g. "(März 2026)"."""
    if not notes:
        return None
    if month is None:
        return f"{notes} (Jahresendabrechnung {year})"
    return f"{notes} ({GERMAN_MONTH_NAMES[month]} {year})"


def plan_bulk_periods(
    year: int,
    frequency: PeriodFrequency,
    existing_months: Iterable[int],
    final_exists: bool,
    create_final_period: bool = True,
    notes: Optional[str] = None,
) -> BulkPeriodPlan:
    """
    Work out which periods a bulk request still has to create.

    Args:
        year: Settlement year
        frequency: MONTHLY (months 1-12) or QUARTERLY (months 3, 6, 9, 12)
        existing_months: Months that already have an ADVANCE period
        final_exists: Whether the FINAL period of the year exists
        create_final_period: Whether a FINAL period is requested
        notes: Optional note copied onto every new period

    Returns:
        BulkPeriodPlan with the periods to create

    Raises:
        ConflictError: If there is nothing left to create
    """
    existing = set(existing_months)
    planned = []
    skipped = []

    for month in months_for(frequency):
        if month in existing:
            skipped.append(month)
            continue
        planned.append(PlannedPeriod(
            period_type=SettlementPeriodType.ADVANCE,
            month=month,
            notes=period_note(year, month, notes),
        ))

    final_skipped = bool(create_final_period and final_exists)
    if create_final_period and not final_exists:
        planned.append(PlannedPeriod(
            period_type=SettlementPeriodType.FINAL,
            month=None,
            notes=period_note(year, None, notes),
        ))

    if not planned:
        raise ConflictError(
            message=f"All settlement periods for {year} already exist",
            details={"year": year, "frequency": frequency.value, "skipped_months": skipped},
        )

    return BulkPeriodPlan(periods=planned, skipped_months=skipped, final_skipped=final_skipped)
