"""
ledger.py - Append-only fulfillment ledger

Pure functions derive and advance FulfillmentRecord values; the
FulfillmentLedger class stores them and is the only component that mutates
state.

Key responsibilities:
    - Validate contributions before any mutation
    - Append entries and recompute paid amount, item count and status together
    - Serialize writes per record (exclusive lock + optional version check)
    - Keep a one-time obligation PAID in at most one term per person
    - Replay history for audit, and verify materialized totals against it

Status derivation (no regression, paid amount never decreases):

    paid >= total      -> PAID
    paid == 0          -> PENDING
    otherwise          -> PARTIAL
"""

from __future__ import annotations
from collections import defaultdict
from contextlib import nullcontext
from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Set, Tuple, runtime_checkable
import logging
import threading

from .core import (
    # Types
    ContributionEntry, FulfillmentRecord, LedgerState, ObligationDefinition,
    ObligationIds, ObligationRef, Period, RecordKey, ReplayStep,
    PaymentStatus, ReleaseStatus, CoverageMode, Recurrence,
    # Constants
    ZERO,
    # Exceptions
    FulfillmentError, ConcurrentModification, InvalidContributionAmount,
    InvalidItemQuantity, PupilIneligible, RecordNotFound, RequirementNotFound,
    # Helpers
    normalize_obligation_ids, total_amount, total_quantity,
)

logger = logging.getLogger("fulfillment.ledger")


# ============================================================================
# READ-ONLY VIEW
# ============================================================================

@runtime_checkable
class FulfillmentView(Protocol):
    """
    Read-only access to stored records.

    The eligibility resolver accepts this protocol so that it cannot mutate
    the ledger. FulfillmentLedger implements it.
    """

    def get_record(self, person_id: str, obligation_ids: ObligationRef, period: Period) -> Optional[FulfillmentRecord]:
        """Return the stored record, or None."""
        ...

    def records_for_person(
        self, person_id: str, year_id: Optional[str] = None, term_id: Optional[str] = None,
    ) -> List[FulfillmentRecord]:
        """Return the person's stored records, optionally narrowed to a year or term."""
        ...


# ============================================================================
# PURE FUNCTIONS
# ============================================================================

def derive_status(paid_amount: Decimal, amount_due: Decimal) -> PaymentStatus:
    """Payment status as a pure function of paid vs. due."""
    if paid_amount >= amount_due:
        return PaymentStatus.PAID
    if paid_amount == ZERO:
        return PaymentStatus.PENDING
    return PaymentStatus.PARTIAL


def new_record(person_id: str, obligation_ids: ObligationRef, period: Period) -> FulfillmentRecord:
    """A fresh, unpersisted record in PENDING state."""
    return FulfillmentRecord(
        person_id=person_id,
        obligation_ids=normalize_obligation_ids(obligation_ids),
        year_id=period.year_id,
        term_id=period.term_id,
    )


def _bundle(record: FulfillmentRecord, obligations: Sequence[ObligationDefinition]) -> Tuple[ObligationDefinition, ...]:
    """
    Select the definitions covered by a record, in id order.

    Raises:
        RequirementNotFound: If any of the record's ids has no definition.
    """
    by_id = {o.obligation_id: o for o in obligations}
    missing = [i for i in record.obligation_ids if i not in by_id]
    if missing:
        raise RequirementNotFound(f"Obligation(s) not found: {', '.join(missing)}")
    return tuple(by_id[i] for i in record.obligation_ids)


def validate_contribution(entry: ContributionEntry, obligations: Sequence[ObligationDefinition]) -> None:
    """
    Check an entry before it touches a record.

    Raises:
        InvalidContributionAmount: amount is not finite and strictly positive.
        InvalidItemQuantity: ITEM entry without a positive quantity, ITEM entry
            against a cash-only obligation, or CASH entry carrying items.
    """
    amount = entry.amount
    if amount.is_nan() or amount.is_infinite():
        raise InvalidContributionAmount(f"Contribution amount must be finite, got {amount}")
    if amount <= 0:
        raise InvalidContributionAmount(f"Contribution amount must be positive, got {amount}")

    quantity = entry.item_quantity
    if entry.coverage_mode is CoverageMode.ITEM:
        if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise InvalidItemQuantity(f"Item contribution requires a positive item quantity, got {quantity!r}")
        if total_quantity(obligations) <= 0:
            raise InvalidItemQuantity("Obligation is cash-only and cannot be covered with items")
    elif quantity:
        raise InvalidItemQuantity(f"Cash contribution cannot carry an item quantity ({quantity})")


def record_contribution(
    record: FulfillmentRecord,
    entry: ContributionEntry,
    obligations: Sequence[ObligationDefinition],
) -> FulfillmentRecord:
    """
    Append an entry and recompute the record's derived fields.

    The input record is not modified; a new record with version + 1 is
    returned. paid_amount is recomputed from the full history rather than
    incremented, so it cannot drift from the entries.

    Args:
        record: Current record (persisted or fresh).
        entry: Contribution to append.
        obligations: Definitions for (at least) the record's obligation ids.

    Returns:
        The updated record.

    Raises:
        RequirementNotFound, InvalidContributionAmount, InvalidItemQuantity
    """
    bundle = _bundle(record, obligations)
    validate_contribution(entry, bundle)

    entries = record.entries + (entry,)
    paid = sum((e.amount for e in entries), ZERO)
    items = record.item_quantity_received
    if entry.is_item:
        items += entry.item_quantity

    return replace(
        record,
        entries=entries,
        paid_amount=paid,
        item_quantity_received=items,
        status=derive_status(paid, total_amount(bundle)),
        version=record.version + 1,
    )


def current_state(record: FulfillmentRecord, obligations: Sequence[ObligationDefinition]) -> LedgerState:
    """Derived standing of a record against its obligations."""
    bundle = _bundle(record, obligations)
    due = total_amount(bundle)
    required = total_quantity(bundle)
    return LedgerState(
        paid_amount=record.paid_amount,
        item_quantity_received=record.item_quantity_received,
        total_amount=due,
        balance=due - record.paid_amount,
        status=derive_status(record.paid_amount, due),
        item_quantity_required=required,
        remaining_quantity=max(required - record.item_quantity_received, 0),
        version=record.version,
    )


def replay_history(record: FulfillmentRecord, obligations: Sequence[ObligationDefinition]) -> List[ReplayStep]:
    """
    Rebuild running totals entry by entry, in append order.

    Read-only and deterministic: repeated calls return equal lists.
    """
    due = total_amount(_bundle(record, obligations))
    steps: List[ReplayStep] = []
    running = ZERO
    items = 0
    for entry in record.entries:
        running += entry.amount
        if entry.is_item:
            items += entry.item_quantity
        steps.append(ReplayStep(
            entry=entry,
            running_paid_amount=running,
            running_item_quantity=items,
            balance_after=due - running,
            status_after=derive_status(running, due),
        ))
    return steps


def mark_released(record: FulfillmentRecord, released_by: str, at: datetime) -> FulfillmentRecord:
    """
    Mark a record's items as handed over. Money and entries are untouched.

    Raises:
        FulfillmentError: If the record was already released.
    """
    if record.release_status is ReleaseStatus.RELEASED:
        raise FulfillmentError(f"Items for {list(record.obligation_ids)} already released by {record.released_by}")
    return replace(
        record,
        release_status=ReleaseStatus.RELEASED,
        released_by=released_by,
        released_at=at,
        version=record.version + 1,
    )


# ============================================================================
# STATEFUL LEDGER
# ============================================================================

class FulfillmentLedger:
    """
    In-memory store of fulfillment records with serialized writes.

    Implements FulfillmentView. Records are immutable values; a commit
    computes the successor under the record's lock and swaps it in with a
    single assignment, so readers never see an entry without its totals.

    Thread Safety:
        Writes to the same record are serialized by a per-record lock.
        Writes to different records do not contend. Reads take a snapshot.

    Example:
        ledger = FulfillmentLedger("main")
        record = ledger.commit("p1", "ream", term1, entry, catalog_items)
        history = replay_history(record, catalog_items)
    """

    def __init__(
        self,
        name: str = "main",
        verbose: bool = False,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Create a ledger.

        Args:
            name: Ledger identifier (used in log lines)
            verbose: Print a line per commit/rejection (default: False)
            clock: Time source for release timestamps (default: datetime.now)
        """
        self.name = name
        self.verbose = verbose
        self._clock = clock or datetime.now
        self._records: Dict[RecordKey, FulfillmentRecord] = {}
        # Creation order of each key, for duplicate detection
        self._created: Dict[RecordKey, int] = {}
        self._next_sequence = 0
        self._record_locks: Dict[RecordKey, threading.Lock] = {}
        # Taken before any record lock when a commit touches a one-time obligation
        self._person_locks: Dict[str, threading.Lock] = {}
        # Guards the dictionaries above, never held across a recompute
        self._index_lock = threading.Lock()

    # ========================================================================
    # FulfillmentView PROTOCOL IMPLEMENTATION (read-only methods)
    # ========================================================================

    @staticmethod
    def make_key(person_id: str, obligation_ids: ObligationRef, period: Period) -> RecordKey:
        return (person_id, normalize_obligation_ids(obligation_ids), period.year_id, period.term_id)

    def get_record(self, person_id: str, obligation_ids: ObligationRef, period: Period) -> Optional[FulfillmentRecord]:
        """Return the stored record for the key, or None if nothing was committed."""
        key = self.make_key(person_id, obligation_ids, period)
        with self._index_lock:
            return self._records.get(key)

    def open_record(self, person_id: str, obligation_ids: ObligationRef, period: Period) -> FulfillmentRecord:
        """Return the stored record, or a fresh PENDING one (not stored)."""
        record = self.get_record(person_id, obligation_ids, period)
        if record is None:
            record = new_record(person_id, obligation_ids, period)
        return record

    def records_for_person(
        self, person_id: str, year_id: Optional[str] = None, term_id: Optional[str] = None,
    ) -> List[FulfillmentRecord]:
        """
        All stored records for a person, oldest first.

        Args:
            person_id: Person identifier
            year_id: Restrict to one academic year
            term_id: Restrict to one term
        """
        return [
            r for r in self._snapshot()
            if r.person_id == person_id
            and (year_id is None or r.year_id == year_id)
            and (term_id is None or r.term_id == term_id)
        ]

    def records_for_period(self, year_id: str, term_id: Optional[str] = None) -> List[FulfillmentRecord]:
        """All stored records for a year (or one of its terms), oldest first."""
        return [
            r for r in self._snapshot()
            if r.year_id == year_id and (term_id is None or r.term_id == term_id)
        ]

    def _snapshot(self) -> List[FulfillmentRecord]:
        with self._index_lock:
            keys = sorted(self._records, key=self._created.__getitem__)
            return [self._records[k] for k in keys]

    def __len__(self) -> int:
        with self._index_lock:
            return len(self._records)

    # ========================================================================
    # WRITES (Mutating)
    # ========================================================================

    def _lock_for(self, key: RecordKey) -> threading.Lock:
        with self._index_lock:
            lock = self._record_locks.get(key)
            if lock is None:
                lock = self._record_locks[key] = threading.Lock()
            return lock

    def _person_lock(self, person_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._person_locks.get(person_id)
            if lock is None:
                lock = self._person_locks[person_id] = threading.Lock()
            return lock

    @staticmethod
    def _one_time_ids(obligation_ids: ObligationIds, obligations: Sequence[ObligationDefinition]) -> Set[str]:
        return {
            o.obligation_id for o in obligations
            if o.obligation_id in obligation_ids and o.recurrence is Recurrence.ONE_TIME
        }

    def _check_paid_elsewhere(self, person_id: str, one_time_ids: Set[str], period: Period) -> None:
        """
        A one-time obligation may carry a PAID record in one period only.

        Raises:
            PupilIneligible: Another period already holds a PAID record
                covering one of the ids.
        """
        for record in self.records_for_person(person_id):
            if (record.year_id, record.term_id) == (period.year_id, period.term_id):
                continue
            if record.status is not PaymentStatus.PAID:
                continue
            paid = one_time_ids.intersection(record.obligation_ids)
            if paid:
                raise PupilIneligible(
                    f"{person_id} already paid {', '.join(sorted(paid))} "
                    f"in {record.year_id}/{record.term_id}"
                )

    def _store(self, key: RecordKey, record: FulfillmentRecord) -> None:
        with self._index_lock:
            if key not in self._created:
                self._created[key] = self._next_sequence
                self._next_sequence += 1
            self._records[key] = record

    @staticmethod
    def _check_version(current: FulfillmentRecord, expected_version: Optional[int]) -> None:
        if expected_version is not None and current.version != expected_version:
            raise ConcurrentModification(
                f"Record {list(current.obligation_ids)} for {current.person_id} "
                f"is at version {current.version}, caller expected {expected_version}"
            )

    def commit(
        self,
        person_id: str,
        obligation_ids: ObligationRef,
        period: Period,
        entry: ContributionEntry,
        obligations: Sequence[ObligationDefinition],
        expected_version: Optional[int] = None,
    ) -> FulfillmentRecord:
        """
        Append a contribution to a record atomically.

        The record's lock is held for read, validation, recompute and store.
        When the record covers a one-time obligation, the person's lock is
        taken first so that no other period can reach PAID for it meanwhile.
        Validation failures leave the ledger untouched.

        Args:
            person_id: Person identifier
            obligation_ids: Single id or bundle
            period: Period the record belongs to
            entry: Contribution to append
            obligations: Definitions covering the record's ids
            expected_version: Version the caller last saw (0 for a new record).
                              None skips the check; the lock still serializes.

        Returns:
            The committed record.

        Raises:
            ConcurrentModification: expected_version does not match.
            PupilIneligible: A one-time obligation is already PAID in
                another period.
            RequirementNotFound, InvalidContributionAmount, InvalidItemQuantity
        """
        key = self.make_key(person_id, obligation_ids, period)
        one_time_ids = self._one_time_ids(key[1], obligations)
        guard = self._person_lock(person_id) if one_time_ids else nullcontext()
        with guard, self._lock_for(key):
            with self._index_lock:
                current = self._records.get(key)
            if current is None:
                current = new_record(person_id, key[1], period)
            try:
                updated = record_contribution(current, entry, obligations)
                self._check_version(current, expected_version)
                if one_time_ids:
                    self._check_paid_elsewhere(person_id, one_time_ids, period)
            except FulfillmentError as exc:
                logger.warning("Rejected contribution on %s: %s", key, exc)
                if self.verbose:
                    print(f"✗ REJECTED: {person_id} {list(key[1])} {period.term_id}: {exc}")
                raise
            self._store(key, updated)

        logger.info(
            "Committed %s %s to %s (paid=%s, status=%s, v%d)",
            entry.amount, entry.coverage_mode.value, key, updated.paid_amount,
            updated.status.value, updated.version,
        )
        if self.verbose:
            print(f"✓ APPLIED: {updated!r}")
        return updated

    def release(
        self,
        person_id: str,
        obligation_ids: ObligationRef,
        period: Period,
        released_by: str,
        at: Optional[datetime] = None,
        expected_version: Optional[int] = None,
    ) -> FulfillmentRecord:
        """
        Mark a stored record's items as released.

        Raises:
            RecordNotFound: No record has been committed for the key.
            ConcurrentModification: expected_version does not match.
            FulfillmentError: Already released.
        """
        key = self.make_key(person_id, obligation_ids, period)
        with self._lock_for(key):
            with self._index_lock:
                current = self._records.get(key)
            if current is None:
                raise RecordNotFound(f"No record for {person_id} {list(key[1])} in {period.term_id}")
            self._check_version(current, expected_version)
            updated = mark_released(current, released_by, at or self._clock())
            self._store(key, updated)
        logger.info("Released %s by %s", key, released_by)
        return updated

    # ========================================================================
    # AUDIT
    # ========================================================================

    def find_duplicate_records(self, person_id: str, year_id: str) -> List[FulfillmentRecord]:
        """
        Records that cover an obligation already covered in the same term.

        For each term, the oldest record covering an obligation is kept;
        later records sharing any obligation id with a kept record are
        returned as duplicates.
        """
        kept: Dict[str, set] = defaultdict(set)  # term_id -> covered ids
        duplicates: List[FulfillmentRecord] = []
        for record in self.records_for_person(person_id, year_id=year_id):
            covered = kept[record.term_id]
            if covered.intersection(record.obligation_ids):
                duplicates.append(record)
            else:
                covered.update(record.obligation_ids)
        return duplicates

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Check that every record's materialized totals match its history.

        Returns:
            Dict with keys:
            - 'valid': bool - True if every record agrees with its entries
            - 'checked': int - Number of records inspected
            - 'discrepancies': List[Dict] - key, field, materialized, replayed
        """
        discrepancies = []
        records = self._snapshot()
        for record in records:
            replayed_paid = sum((e.amount for e in record.entries), ZERO)
            replayed_items = sum(e.item_quantity for e in record.entries if e.is_item)
            if replayed_paid != record.paid_amount:
                discrepancies.append({
                    'key': record.key,
                    'field': 'paid_amount',
                    'materialized': record.paid_amount,
                    'replayed': replayed_paid,
                })
            if replayed_items != record.item_quantity_received:
                discrepancies.append({
                    'key': record.key,
                    'field': 'item_quantity_received',
                    'materialized': record.item_quantity_received,
                    'replayed': replayed_items,
                })
        return {
            'valid': len(discrepancies) == 0,
            'checked': len(records),
            'discrepancies': discrepancies,
        }

    def __repr__(self) -> str:
        return f"FulfillmentLedger({self.name!r}, {len(self)} records)"
