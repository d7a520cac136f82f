"""
service.py - Fulfillment service

Combines the period catalog, obligation catalog, person directory and
ledger into the caller-facing API:

    resolve_eligible_obligations(person_id, period_id)
    get_ledger_state(person_id, obligation_id, period_id)
    record_contribution(person_id, obligation_id, period_id, entry)
    get_history(person_id, obligation_id, period_id)
    summarize_period(person_id, period_id)

obligation_id may be a single id or a bundle of ids. Writes are validated
in this order before the ledger is touched:

    period -> obligation ids -> person & eligibility -> entry -> version

The service holds no per-call state; every call is parameterized by its
arguments.
"""

from __future__ import annotations
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Sequence, Tuple
import logging

from .core import (
    ContributionEntry, CoverageMode, FulfillmentRecord, LedgerState,
    ObligationDefinition, ObligationRef, ObligationWithStatus, Period,
    PersonProfile, ReplayStep,
    PupilIneligible, RequirementNotFound, InvalidItemQuantity,
    normalize_obligation_ids, to_decimal,
)
from .catalog import ObligationCatalog, PersonDirectory
from .conversion import items_to_cash, price_per_unit
from .eligibility import is_eligible, resolve
from .ledger import FulfillmentLedger, current_state, replay_history
from .periods import PeriodCatalog
from .summary import PeriodSummary, summarize

logger = logging.getLogger("fulfillment.service")


class FulfillmentService:
    """
    Caller-facing API over the ledger and its catalogs.

    Example:
        service = FulfillmentService(periods, obligations, people)
        items = service.resolve_eligible_obligations("p1", "2025-T1")
        service.record_contribution("p1", "ream", "2025-T1",
                                    service.cash_contribution(25000, "bursar"))
    """

    def __init__(
        self,
        periods: PeriodCatalog,
        obligations: ObligationCatalog,
        people: PersonDirectory,
        ledger: Optional[FulfillmentLedger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the service.

        Args:
            periods: Period catalog
            obligations: Obligation catalog
            people: Person directory
            ledger: Record store (a fresh in-memory ledger if not provided)
            clock: Time source for entry builders (default: datetime.now)
        """
        self.periods = periods
        self.obligations = obligations
        self.people = people
        self.ledger = ledger if ledger is not None else FulfillmentLedger()
        self._clock = clock or datetime.now

    # ========================================================================
    # LOOKUPS
    # ========================================================================

    def _bundle(self, period: Period, obligation_id: ObligationRef) -> Tuple[Tuple[str, ...], List[ObligationDefinition], List[ObligationDefinition]]:
        """
        Normalize ids and fetch their definitions.

        Returns:
            (ids, bundle definitions, full catalog for the year)

        Raises:
            RequirementNotFound: Any id missing from the year's catalog.
        """
        ids = normalize_obligation_ids(obligation_id)
        catalog = self.obligations.list_obligations(period.year_id)
        by_id = {o.obligation_id: o for o in catalog}
        missing = [i for i in ids if i not in by_id]
        if missing:
            raise RequirementNotFound(
                f"Obligation(s) {', '.join(missing)} not found for year {period.year_id}"
            )
        return ids, [by_id[i] for i in ids], catalog

    def _check_eligible(self, person: PersonProfile, period: Period, bundle: Sequence[ObligationDefinition]) -> None:
        for obligation in bundle:
            if not is_eligible(person, period, obligation, self.ledger, self.periods):
                message = (f"{person.person_id} is not eligible for {obligation.obligation_id} "
                           f"in {period.year_id}/{period.term_id}")
                logger.warning("Rejected contribution: %s", message)
                raise PupilIneligible(message)

    def _record(self, person_id: str, obligation_id: ObligationRef, period_id: str) -> Tuple[FulfillmentRecord, List[ObligationDefinition]]:
        period = self.periods.get_period(period_id)
        ids, bundle, _ = self._bundle(period, obligation_id)
        return self.ledger.open_record(person_id, ids, period), bundle

    # ========================================================================
    # READS
    # ========================================================================

    def resolve_eligible_obligations(self, person_id: str, period_id: str) -> List[ObligationWithStatus]:
        """
        Obligations the person must fulfil in the period, with standing.

        Raises:
            PeriodNotFound, PersonNotFound
        """
        period = self.periods.get_period(period_id)
        person = self.people.get_person(person_id)
        catalog = self.obligations.list_obligations(period.year_id)
        return resolve(person, period, catalog, self.ledger, self.periods)

    def get_ledger_state(self, person_id: str, obligation_id: ObligationRef, period_id: str) -> LedgerState:
        """
        Current standing of one record. A record with no contributions is
        reported as PENDING with version 0.

        Raises:
            PeriodNotFound, RequirementNotFound
        """
        record, bundle = self._record(person_id, obligation_id, period_id)
        return current_state(record, bundle)

    def get_history(self, person_id: str, obligation_id: ObligationRef, period_id: str) -> List[ReplayStep]:
        """Ordered replay of a record's contributions with running totals."""
        record, bundle = self._record(person_id, obligation_id, period_id)
        return replay_history(record, bundle)

    def summarize_period(self, person_id: str, period_id: str) -> PeriodSummary:
        """Aggregate standing of everything the person owes in the period."""
        return summarize(self.resolve_eligible_obligations(person_id, period_id))

    # ========================================================================
    # WRITES
    # ========================================================================

    def record_contribution(
        self,
        person_id: str,
        obligation_id: ObligationRef,
        period_id: str,
        entry: ContributionEntry,
        expected_version: Optional[int] = None,
    ) -> LedgerState:
        """
        Validate and commit a contribution.

        Args:
            person_id: Person identifier
            obligation_id: Single id or bundle
            period_id: Term identifier
            entry: Contribution to append
            expected_version: Version from the caller's last get_ledger_state;
                              a mismatch raises ConcurrentModification

        Returns:
            The record's state after the commit.

        Raises:
            PeriodNotFound, RequirementNotFound, PupilIneligible,
            InvalidContributionAmount, InvalidItemQuantity,
            ConcurrentModification
        """
        period = self.periods.get_period(period_id)
        ids, bundle, _ = self._bundle(period, obligation_id)
        person = self.people.get_person(person_id)
        self._check_eligible(person, period, bundle)
        record = self.ledger.commit(person_id, ids, period, entry, bundle, expected_version=expected_version)
        return current_state(record, bundle)

    def release_items(
        self,
        person_id: str,
        obligation_id: ObligationRef,
        period_id: str,
        released_by: str,
        expected_version: Optional[int] = None,
    ) -> LedgerState:
        """
        Mark paid-for items as handed over.

        Raises:
            PeriodNotFound, RequirementNotFound, RecordNotFound,
            ConcurrentModification, FulfillmentError (already released)
        """
        period = self.periods.get_period(period_id)
        ids, bundle, _ = self._bundle(period, obligation_id)
        record = self.ledger.release(
            person_id, ids, period, released_by,
            at=self._clock(), expected_version=expected_version,
        )
        return current_state(record, bundle)

    # ========================================================================
    # ENTRY BUILDERS
    # ========================================================================

    def cash_contribution(self, amount, recorded_by: str, note: Optional[str] = None) -> ContributionEntry:
        """Build a CASH entry stamped with the service clock."""
        return ContributionEntry(
            timestamp=self._clock(),
            amount=to_decimal(amount),
            coverage_mode=CoverageMode.CASH,
            recorded_by=recorded_by,
            note=note,
        )

    def item_contribution(
        self,
        period_id: str,
        obligation_id: ObligationRef,
        item_quantity: int,
        recorded_by: str,
        note: Optional[str] = None,
    ) -> ContributionEntry:
        """
        Build an ITEM entry whose amount is the items' cash equivalent.

        Raises:
            InvalidItemQuantity: The obligation is cash-only or the quantity
                is not positive.
        """
        period = self.periods.get_period(period_id)
        _, bundle, _ = self._bundle(period, obligation_id)
        unit_price = price_per_unit(bundle)
        if unit_price is None or unit_price <= 0:
            raise InvalidItemQuantity(f"{list(normalize_obligation_ids(obligation_id))} has no item price")
        if item_quantity <= 0:
            raise InvalidItemQuantity(f"Item quantity must be positive, got {item_quantity}")
        amount: Decimal = items_to_cash(item_quantity, unit_price)
        return ContributionEntry(
            timestamp=self._clock(),
            amount=amount,
            coverage_mode=CoverageMode.ITEM,
            item_quantity=item_quantity,
            recorded_by=recorded_by,
            note=note,
        )
