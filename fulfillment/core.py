"""
Core types and pure helpers for the requirement fulfillment ledger.

This module provides the foundational data structures for the system:
1. Enums: Recurrence, CoverageMode, PaymentStatus, ReleaseStatus
2. Immutable data structures: ObligationDefinition, Period, AcademicYear,
   PersonProfile, ContributionEntry, FulfillmentRecord
3. Result types: LedgerState, ReplayStep, ObligationWithStatus
4. Exceptions: FulfillmentError and domain-specific error types
5. Helpers: obligation id normalization, bundle totals, Decimal coercion

All functions in this module are pure. No function mutates a record;
every change produces a new instance.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN, getcontext
from enum import Enum
from typing import (
    Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union,
)


# ============================================================================
# DECIMAL CONTEXT CONFIGURATION
# ============================================================================
#
# Money arithmetic must be deterministic. The global context is configured
# once at import time.
#
# PRECONDITION: No other code should modify the global Decimal context.
#
_FULFILLMENT_DECIMAL_CONTEXT = getcontext()
_FULFILLMENT_DECIMAL_CONTEXT.prec = 50
_FULFILLMENT_DECIMAL_CONTEXT.rounding = ROUND_HALF_EVEN


# ============================================================================
# CONSTANTS
# ============================================================================

ZERO = Decimal("0")


# ============================================================================
# TYPE ALIASES
# ============================================================================

# Normalized, always-plural reference to one or more obligation definitions.
ObligationIds = Tuple[str, ...]

# A single id or a bundle of ids, as callers may supply it.
ObligationRef = Union[str, Iterable[str]]

# (person_id, obligation_ids, year_id, term_id)
RecordKey = Tuple[str, ObligationIds, str, str]

# Applicability predicate supplied by the obligation catalog.
Applicability = Callable[['PersonProfile'], bool]


# ============================================================================
# ENUMS
# ============================================================================

class Recurrence(Enum):
    """
    How often an obligation recurs.

    ONE_TIME: Once ever. Suppressed after it is paid in an earlier period.
    YEARLY: Once per academic year, tracked in the first term only.
    TERMLY: Every term, each term tracked independently.
    """
    ONE_TIME = "one-time"
    YEARLY = "yearly"
    TERMLY = "termly"


class CoverageMode(Enum):
    """Whether a contribution was made in currency or in physical items."""
    CASH = "cash"
    ITEM = "item"


class PaymentStatus(Enum):
    """
    Derived payment status of an obligation for a period.

    NOT_ASSIGNED: No record exists yet.
    PENDING: A record exists but nothing has been paid.
    PARTIAL: Something has been paid, less than the total.
    PAID: Paid amount reached (or exceeded) the total.
    """
    NOT_ASSIGNED = "not_assigned"
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class ReleaseStatus(Enum):
    """Whether paid-for items have been handed over."""
    PENDING = "pending"
    RELEASED = "released"


# ============================================================================
# EXCEPTIONS
# ============================================================================

class FulfillmentError(Exception):
    """Base exception for all fulfillment-ledger errors."""
    pass


class RequirementNotFound(FulfillmentError):
    """Raised when an obligation id is not present in the catalog."""
    pass


class PeriodNotFound(FulfillmentError):
    """Raised when a period id is not present in the period catalog."""
    pass


class PupilIneligible(FulfillmentError):
    """Raised when a contribution targets an obligation the person is not eligible for."""
    pass


class PersonNotFound(PupilIneligible):
    """Raised when the person directory does not know the person."""
    pass


class InvalidContributionAmount(FulfillmentError):
    """Raised when a contribution amount is not strictly positive."""
    pass


class InvalidItemQuantity(FulfillmentError):
    """Raised when an item contribution carries no positive item quantity."""
    pass


class ConcurrentModification(FulfillmentError):
    """Raised when the caller's view of a record is stale. Re-fetch and retry."""
    pass


class RecordNotFound(FulfillmentError):
    """Raised when an operation requires a persisted record that does not exist."""
    pass


# ============================================================================
# HELPERS
# ============================================================================

def to_decimal(value: Any) -> Decimal:
    """
    Convert a numeric value to Decimal without float noise.

    Floats go through str() so that 0.1 becomes Decimal("0.1").
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    if isinstance(value, (int, float, str)):
        try:
            return Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Expected a number, got {value!r}") from None
    raise ValueError(f"Expected a number, got {type(value).__name__}")


def normalize_obligation_ids(ref: ObligationRef) -> ObligationIds:
    """
    Normalize a single obligation id or a bundle of ids to a sorted tuple.

    This is the only place that distinguishes a scalar id from a collection.
    Duplicates are removed. An empty reference raises RequirementNotFound.
    """
    if isinstance(ref, str):
        ids = (ref,)
    else:
        ids = tuple(ref)
    cleaned = sorted({i.strip() for i in ids if i and i.strip()})
    if not cleaned:
        raise RequirementNotFound("No obligation id supplied")
    return tuple(cleaned)


def always_applies(person: 'PersonProfile') -> bool:
    """Default applicability predicate: the obligation applies to everyone."""
    return True


# ============================================================================
# CATALOG DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ObligationDefinition:
    """
    Definition of a trackable obligation (fee, item quota, or both).

    Attributes:
        obligation_id: Catalog identifier.
        name: Display name.
        group: Category tag used for ordering (e.g. "Books", "Fees").
        price: Total amount of the obligation in currency.
        unit_quantity: Number of items required (0 = cash-only).
        recurrence: How often the obligation recurs.
        applies_to: Opaque predicate over the person's profile.
        is_active: Inactive obligations are never eligible.
        description: Optional free text.

    Immutable once fetched for a computation.
    """
    obligation_id: str
    name: str
    group: str
    price: Decimal
    unit_quantity: int = 0
    recurrence: Recurrence = Recurrence.TERMLY
    applies_to: Applicability = field(default=always_applies, compare=False)
    is_active: bool = True
    description: Optional[str] = None

    def __post_init__(self):
        if not self.obligation_id or not self.obligation_id.strip():
            raise ValueError("Obligation id cannot be empty")
        object.__setattr__(self, 'price', to_decimal(self.price))
        if self.price.is_nan() or self.price.is_infinite():
            raise ValueError(f"Obligation price must be finite, got {self.price}")
        if self.price < 0:
            raise ValueError(f"Obligation price cannot be negative, got {self.price}")
        if isinstance(self.unit_quantity, bool) or not isinstance(self.unit_quantity, int):
            raise ValueError(f"Unit quantity must be int, got {type(self.unit_quantity).__name__}")
        if self.unit_quantity < 0:
            raise ValueError(f"Unit quantity cannot be negative, got {self.unit_quantity}")
        if not isinstance(self.recurrence, Recurrence):
            object.__setattr__(self, 'recurrence', Recurrence(self.recurrence))

    @property
    def total_amount(self) -> Decimal:
        return self.price

    @property
    def is_item_trackable(self) -> bool:
        return self.unit_quantity > 0

    def __repr__(self) -> str:
        return (f"Obligation({self.obligation_id}: {self.name} [{self.group}] "
                f"{self.price} x{self.unit_quantity} {self.recurrence.value})")


def total_amount(obligations: Sequence[ObligationDefinition]) -> Decimal:
    """Total amount due for an obligation or bundle (sum of prices)."""
    return sum((o.price for o in obligations), ZERO)


def total_quantity(obligations: Sequence[ObligationDefinition]) -> int:
    """Total item quantity required for an obligation or bundle."""
    return sum(o.unit_quantity for o in obligations)


@dataclass(frozen=True, slots=True)
class Period:
    """
    One term of an academic year.

    Attributes:
        year_id: Academic year identifier.
        term_id: Term identifier (also the period id).
        term_ordinal: 1-based position of the term within its year.
        name: Optional display name.
        start_date: Optional first day of the term.
        end_date: Optional last day of the term.
    """
    year_id: str
    term_id: str
    term_ordinal: int
    name: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def __post_init__(self):
        if not self.year_id or not self.term_id:
            raise ValueError("Period requires year_id and term_id")
        if self.term_ordinal < 1:
            raise ValueError(f"Term ordinal is 1-based, got {self.term_ordinal}")

    @property
    def period_id(self) -> str:
        return self.term_id

    @property
    def is_first_term(self) -> bool:
        return self.term_ordinal == 1


@dataclass(frozen=True, slots=True)
class AcademicYear:
    """An academic year with its terms in order."""
    year_id: str
    name: str
    start_date: Optional[date] = None
    terms: Tuple[Period, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, 'terms', tuple(self.terms))
        for i, term in enumerate(self.terms, start=1):
            if term.year_id != self.year_id:
                raise ValueError(f"Term {term.term_id} belongs to {term.year_id}, not {self.year_id}")
            if term.term_ordinal != i:
                raise ValueError(f"Term {term.term_id} has ordinal {term.term_ordinal}, expected {i}")


@dataclass(frozen=True, slots=True)
class PersonProfile:
    """
    Person attributes read by applicability predicates.

    The core never interprets these fields itself except registration_date,
    which bounds the terms a person can be charged for.
    """
    person_id: str
    gender: Optional[str] = None
    class_id: Optional[str] = None
    section: Optional[str] = None
    registration_date: Optional[date] = None
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False)


# ============================================================================
# LEDGER DATA STRUCTURES
# ============================================================================

@dataclass(frozen=True, slots=True)
class ContributionEntry:
    """
    One immutable contribution against a fulfillment record.

    Attributes:
        timestamp: When the contribution was made.
        amount: Currency value credited (validated > 0 when recorded).
        coverage_mode: CASH or ITEM.
        item_quantity: Items represented by an ITEM entry.
        recorded_by: Actor who recorded the entry.
        note: Optional free text.
    """
    timestamp: datetime
    amount: Decimal
    coverage_mode: CoverageMode = CoverageMode.CASH
    item_quantity: Optional[int] = None
    recorded_by: str = "system"
    note: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'amount', to_decimal(self.amount))
        if not isinstance(self.coverage_mode, CoverageMode):
            object.__setattr__(self, 'coverage_mode', CoverageMode(self.coverage_mode))

    @property
    def is_item(self) -> bool:
        return self.coverage_mode is CoverageMode.ITEM

    def __repr__(self) -> str:
        items = f" ({self.item_quantity} items)" if self.is_item else ""
        return f"Entry({self.timestamp.isoformat()} {self.amount} {self.coverage_mode.value}{items} by {self.recorded_by})"


@dataclass(frozen=True, slots=True)
class FulfillmentRecord:
    """
    Ledger aggregate for one person, one obligation (or bundle), one period.

    Value semantics: every mutation produces a new instance. paid_amount and
    item_quantity_received are materialized from entries and always agree
    with a replay of them.

    Attributes:
        person_id: Person the record belongs to.
        obligation_ids: Normalized tuple of obligation ids covered.
        year_id: Academic year.
        term_id: Term within the year.
        paid_amount: Sum of entry amounts.
        item_quantity_received: Sum of item quantities of ITEM entries.
        status: Derived payment status.
        entries: Append-only contribution history.
        version: Incremented by every committed mutation.
        release_status: Whether paid-for items were handed over.
        released_by: Actor who released the items.
        released_at: When the items were released.
    """
    person_id: str
    obligation_ids: ObligationIds
    year_id: str
    term_id: str
    paid_amount: Decimal = ZERO
    item_quantity_received: int = 0
    status: PaymentStatus = PaymentStatus.PENDING
    entries: Tuple[ContributionEntry, ...] = ()
    version: int = 0
    release_status: ReleaseStatus = ReleaseStatus.PENDING
    released_by: Optional[str] = None
    released_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, 'obligation_ids', normalize_obligation_ids(self.obligation_ids))
        object.__setattr__(self, 'paid_amount', to_decimal(self.paid_amount))
        object.__setattr__(self, 'entries', tuple(self.entries))

    @property
    def key(self) -> RecordKey:
        return (self.person_id, self.obligation_ids, self.year_id, self.term_id)

    def covers(self, obligation_id: str) -> bool:
        return obligation_id in self.obligation_ids

    def __repr__(self) -> str:
        return (f"Record({self.person_id} {list(self.obligation_ids)} "
                f"{self.year_id}/{self.term_id}: paid={self.paid_amount} "
                f"items={self.item_quantity_received} {self.status.value} v{self.version})")


# ============================================================================
# RESULT TYPES
# ============================================================================

@dataclass(frozen=True, slots=True)
class LedgerState:
    """Derived view of a record against its obligations."""
    paid_amount: Decimal
    item_quantity_received: int
    total_amount: Decimal
    balance: Decimal
    status: PaymentStatus
    item_quantity_required: int
    remaining_quantity: int
    version: int


@dataclass(frozen=True, slots=True)
class ReplayStep:
    """One entry in an audit replay, with the running totals after it."""
    entry: ContributionEntry
    running_paid_amount: Decimal
    running_item_quantity: int
    balance_after: Decimal
    status_after: PaymentStatus


@dataclass(frozen=True, slots=True)
class ObligationWithStatus:
    """
    An eligible obligation for a person and period, with its current standing.

    record is None when nothing has been recorded yet (status NOT_ASSIGNED).
    For a bundle record, total_amount is still the single obligation's price;
    paid_amount and balance are the record's.
    """
    obligation: ObligationDefinition
    period: Period
    record: Optional[FulfillmentRecord]
    status: PaymentStatus
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal

    @property
    def obligation_id(self) -> str:
        return self.obligation.obligation_id

    @property
    def is_complete(self) -> bool:
        return self.status is PaymentStatus.PAID


def as_mapping(items: Iterable[ObligationDefinition]) -> Dict[str, ObligationDefinition]:
    """Index obligation definitions by id."""
    return {o.obligation_id: o for o in items}
