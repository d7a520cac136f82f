"""
summary.py - Period-level totals and completion statistics

Pure folds over ObligationWithStatus items and FulfillmentRecords. None of
these functions assume a grouping: pass a whole period, one group, or any
other subset.

Key Formulas:
    total_amount_due   = sum(total_amount(obligation))
    total_paid         = sum(record.paid_amount), each record counted once
    total_balance      = total_amount_due - total_paid
    progress           = completed / total * 100   (0 when total == 0)
"""

from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Set

from .core import (
    FulfillmentRecord, ObligationDefinition, ObligationWithStatus, RecordKey,
    ZERO,
)


HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class PeriodSummary:
    """Aggregate standing of a set of obligations."""
    total_obligations: int
    completed_count: int
    total_amount_due: Decimal
    total_paid: Decimal
    total_balance: Decimal
    progress_percentage: Decimal


@dataclass(frozen=True, slots=True)
class ItemProgress:
    """Items required vs. received across a set of records."""
    total_required: int
    total_received: int
    progress_percentage: Decimal


def _percentage(part, whole) -> Decimal:
    if not whole:
        return ZERO
    return Decimal(part) / Decimal(whole) * HUNDRED


def summarize(items: Iterable[ObligationWithStatus]) -> PeriodSummary:
    """
    Fold obligations with status into totals.

    A bundle record covering several obligations contributes its paid
    amount once.
    """
    total = 0
    completed = 0
    due = ZERO
    paid = ZERO
    seen: Set[RecordKey] = set()
    for item in items:
        total += 1
        if item.is_complete:
            completed += 1
        due += item.total_amount
        if item.record is not None and item.record.key not in seen:
            seen.add(item.record.key)
            paid += item.record.paid_amount
    return PeriodSummary(
        total_obligations=total,
        completed_count=completed,
        total_amount_due=due,
        total_paid=paid,
        total_balance=due - paid,
        progress_percentage=_percentage(completed, total),
    )


def summarize_by_group(items: Iterable[ObligationWithStatus]) -> Dict[str, PeriodSummary]:
    """Summaries keyed by obligation group, in group order."""
    groups: Dict[str, List[ObligationWithStatus]] = {}
    for item in items:
        groups.setdefault(item.obligation.group, []).append(item)
    return {group: summarize(groups[group]) for group in sorted(groups)}


def item_progress(
    records: Iterable[FulfillmentRecord],
    obligations_by_id: Mapping[str, ObligationDefinition],
) -> ItemProgress:
    """
    Items required vs. received for a set of records.

    Cash-only obligations add nothing to the required count. Ids missing
    from obligations_by_id are skipped.
    """
    required = 0
    received = 0
    for record in records:
        required += sum(
            obligations_by_id[i].unit_quantity
            for i in record.obligation_ids if i in obligations_by_id
        )
        received += record.item_quantity_received
    return ItemProgress(
        total_required=required,
        total_received=received,
        progress_percentage=_percentage(received, required),
    )
