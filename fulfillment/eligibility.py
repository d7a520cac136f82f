"""
eligibility.py - Which obligations a person must fulfil in a period

The resolver combines three filters, in order:

1. Registration: terms that started before the person registered are empty.
2. Applicability: active obligations whose catalog predicate accepts the
   person.
3. Recurrence:
   - TERMLY   -> every term, tracked independently
   - YEARLY   -> first term of the year only (term_ordinal == 1)
   - ONE_TIME -> every term until a PAID record exists in an earlier term

Results are ordered by (group, name, obligation_id) so that display and
tests are reproducible. Nothing here mutates the ledger; it is read through
the FulfillmentView protocol.
"""

from __future__ import annotations
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Set
import logging

from .core import (
    ObligationDefinition, ObligationWithStatus, PaymentStatus, Period,
    PersonProfile, Recurrence, FulfillmentRecord,
    ZERO, total_amount,
)
from .ledger import FulfillmentView, derive_status
from .periods import PeriodCatalog, is_term_valid_for_person, previous_periods

logger = logging.getLogger("fulfillment.eligibility")


def _sort_key(obligation: ObligationDefinition):
    return (obligation.group, obligation.name, obligation.obligation_id)


def applicable_obligations(
    person: PersonProfile,
    obligations: Iterable[ObligationDefinition],
) -> List[ObligationDefinition]:
    """Active obligations whose applicability predicate accepts the person."""
    return [o for o in obligations if o.is_active and o.applies_to(person)]


def paid_in_periods(
    person_id: str,
    periods: Sequence[Period],
    view: FulfillmentView,
) -> Set[str]:
    """Obligation ids covered by a PAID record of the person in any of the periods."""
    wanted = {(p.year_id, p.term_id) for p in periods}
    paid: Set[str] = set()
    for record in view.records_for_person(person_id):
        if (record.year_id, record.term_id) in wanted and record.status is PaymentStatus.PAID:
            paid.update(record.obligation_ids)
    return paid


def recurrence_allows(
    obligation: ObligationDefinition,
    period: Period,
    already_paid: Set[str],
) -> bool:
    """
    Apply the recurrence rule for one obligation.

    Args:
        obligation: Candidate obligation
        period: Requested period
        already_paid: Ids paid in periods before the requested one
    """
    if obligation.recurrence is Recurrence.TERMLY:
        return True
    if obligation.recurrence is Recurrence.YEARLY:
        return period.is_first_term
    return obligation.obligation_id not in already_paid


def _record_covering(records: Sequence[FulfillmentRecord], obligation_id: str) -> Optional[FulfillmentRecord]:
    for record in records:
        if record.covers(obligation_id):
            return record
    return None


def _with_status(
    obligation: ObligationDefinition,
    period: Period,
    record: Optional[FulfillmentRecord],
    catalog_items: Sequence[ObligationDefinition],
) -> ObligationWithStatus:
    if record is None:
        return ObligationWithStatus(
            obligation=obligation,
            period=period,
            record=None,
            status=PaymentStatus.NOT_ASSIGNED,
            total_amount=obligation.total_amount,
            paid_amount=ZERO,
            balance=obligation.total_amount,
        )
    by_id = {o.obligation_id: o for o in catalog_items}
    # Bundle status and balance are judged against the whole bundle
    bundle_due: Decimal = total_amount([by_id[i] for i in record.obligation_ids if i in by_id])
    return ObligationWithStatus(
        obligation=obligation,
        period=period,
        record=record,
        status=derive_status(record.paid_amount, bundle_due),
        total_amount=obligation.total_amount,
        paid_amount=record.paid_amount,
        balance=bundle_due - record.paid_amount,
    )


def resolve(
    person: PersonProfile,
    period: Period,
    obligations: Sequence[ObligationDefinition],
    view: FulfillmentView,
    periods: PeriodCatalog,
) -> List[ObligationWithStatus]:
    """
    Resolve the obligations a person must fulfil in a period.

    Args:
        person: Person profile read by applicability predicates
        period: Requested period
        obligations: Catalog for the period's academic year
        view: Read-only ledger access
        periods: Period catalog, for ONE_TIME look-back

    Returns:
        Eligible obligations with their current standing, ordered by
        group, name and id.

    Raises:
        PeriodNotFound: If the period is not in the period catalog.
    """
    earlier = previous_periods(period, periods)
    if not is_term_valid_for_person(period, person):
        logger.debug("Term %s started before %s registered", period.term_id, person.person_id)
        return []

    candidates = applicable_obligations(person, obligations)
    already_paid = set()
    if any(o.recurrence is Recurrence.ONE_TIME for o in candidates):
        already_paid = paid_in_periods(person.person_id, earlier, view)

    records = view.records_for_person(person.person_id, year_id=period.year_id, term_id=period.term_id)
    results = [
        _with_status(o, period, _record_covering(records, o.obligation_id), obligations)
        for o in sorted(candidates, key=_sort_key)
        if recurrence_allows(o, period, already_paid)
    ]
    logger.debug(
        "Resolved %d of %d obligations for %s in %s/%s",
        len(results), len(obligations), person.person_id, period.year_id, period.term_id,
    )
    return results


def is_eligible(
    person: PersonProfile,
    period: Period,
    obligation: ObligationDefinition,
    view: FulfillmentView,
    periods: PeriodCatalog,
) -> bool:
    """True when resolve() would list the obligation for the person and period."""
    earlier = previous_periods(period, periods)
    if not is_term_valid_for_person(period, person):
        return False
    if not applicable_obligations(person, [obligation]):
        return False
    already_paid: Set[str] = set()
    if obligation.recurrence is Recurrence.ONE_TIME:
        already_paid = paid_in_periods(person.person_id, earlier, view)
    return recurrence_allows(obligation, period, already_paid)
