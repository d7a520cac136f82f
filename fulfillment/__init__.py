"""
fulfillment - Requirement Fulfillment Ledger

Tracks, per person and academic term, whether fees and item quotas have been
satisfied, by how much, and through which contributions.

Usage:
    from fulfillment import (
        FulfillmentService, StaticPeriodCatalog, StaticObligationCatalog,
        StaticPersonDirectory, AcademicYear, Period, ObligationDefinition,
        PersonProfile, Recurrence,
    )

    year = AcademicYear("2025", "2025", terms=(
        Period("2025", "2025-T1", 1),
        Period("2025", "2025-T2", 2),
        Period("2025", "2025-T3", 3),
    ))
    service = FulfillmentService(
        StaticPeriodCatalog([year]),
        StaticObligationCatalog([
            ObligationDefinition("ream", "Paper ream", "Stationery", 50000,
                                 unit_quantity=5, recurrence=Recurrence.TERMLY),
        ]),
        StaticPersonDirectory([PersonProfile("p1")]),
    )

    entry = service.cash_contribution(25000, recorded_by="bursar")
    state = service.record_contribution("p1", "ream", "2025-T1", entry)
    # state.status == PaymentStatus.PARTIAL, state.balance == 25000
"""

# Core types
from .core import (
    Recurrence,
    CoverageMode,
    PaymentStatus,
    ReleaseStatus,
    ObligationDefinition,
    Period,
    AcademicYear,
    PersonProfile,
    ContributionEntry,
    FulfillmentRecord,
    LedgerState,
    ReplayStep,
    ObligationWithStatus,
    FulfillmentError,
    RequirementNotFound,
    PeriodNotFound,
    PupilIneligible,
    PersonNotFound,
    InvalidContributionAmount,
    InvalidItemQuantity,
    ConcurrentModification,
    RecordNotFound,
    normalize_obligation_ids,
    total_amount,
    total_quantity,
)

# Conversion
from .conversion import (
    ItemEquivalent,
    price_per_unit,
    cash_to_items,
    items_to_cash,
    item_equivalent,
)

# Catalogs
from .periods import (
    PeriodCatalog,
    StaticPeriodCatalog,
    previous_periods,
    is_term_valid_for_person,
)
from .catalog import (
    ObligationCatalog,
    PersonDirectory,
    StaticObligationCatalog,
    StaticPersonDirectory,
    applicability_rule,
)

# Ledger
from .ledger import (
    FulfillmentView,
    FulfillmentLedger,
    derive_status,
    new_record,
    validate_contribution,
    record_contribution,
    current_state,
    replay_history,
    mark_released,
)

# Eligibility
from .eligibility import (
    resolve,
    is_eligible,
    applicable_obligations,
)

# Summaries
from .summary import (
    PeriodSummary,
    ItemProgress,
    summarize,
    summarize_by_group,
    item_progress,
)

# Service
from .service import FulfillmentService

__all__ = [
    # Core
    'Recurrence', 'CoverageMode', 'PaymentStatus', 'ReleaseStatus',
    'ObligationDefinition', 'Period', 'AcademicYear', 'PersonProfile',
    'ContributionEntry', 'FulfillmentRecord',
    'LedgerState', 'ReplayStep', 'ObligationWithStatus',
    'FulfillmentError', 'RequirementNotFound', 'PeriodNotFound',
    'PupilIneligible', 'PersonNotFound', 'InvalidContributionAmount',
    'InvalidItemQuantity', 'ConcurrentModification', 'RecordNotFound',
    'normalize_obligation_ids', 'total_amount', 'total_quantity',
    # Conversion
    'ItemEquivalent', 'price_per_unit', 'cash_to_items', 'items_to_cash',
    'item_equivalent',
    # Catalogs
    'PeriodCatalog', 'StaticPeriodCatalog', 'previous_periods',
    'is_term_valid_for_person',
    'ObligationCatalog', 'PersonDirectory', 'StaticObligationCatalog',
    'StaticPersonDirectory', 'applicability_rule',
    # Ledger
    'FulfillmentView', 'FulfillmentLedger', 'derive_status', 'new_record',
    'validate_contribution', 'record_contribution', 'current_state',
    'replay_history', 'mark_released',
    # Eligibility
    'resolve', 'is_eligible', 'applicable_obligations',
    # Summaries
    'PeriodSummary', 'ItemProgress', 'summarize', 'summarize_by_group',
    'item_progress',
    # Service
    'FulfillmentService',
]

__version__ = '1.0.0'
