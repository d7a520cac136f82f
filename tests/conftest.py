"""
conftest.py - Shared pytest fixtures for fulfillment tests

Provides common fixtures used across unit, functional and conformance tests:
- Two academic years of three dated terms each
- A catalog covering every recurrence class, a cash-only fee and a
  boarding-only item
- A person directory with day and boarding pupils
- A ledger and a service wired to all of the above
"""

import pytest
from datetime import date
from decimal import Decimal

from fulfillment import (
    ObligationDefinition, PersonProfile, Recurrence,
    StaticPeriodCatalog, StaticObligationCatalog, StaticPersonDirectory,
    FulfillmentLedger, FulfillmentService,
    applicability_rule,
)

from tests.builders import FixedClock, make_year


# =============================================================================
# CATALOG FIXTURES
# =============================================================================

@pytest.fixture
def year_2025():
    return make_year("2025", date(2025, 1, 1))


@pytest.fixture
def year_2026():
    return make_year("2026", date(2026, 1, 1))


@pytest.fixture
def periods(year_2025, year_2026):
    """Period catalog with 2025 and 2026, three terms each."""
    return StaticPeriodCatalog([year_2026, year_2025])


@pytest.fixture
def ream():
    """Termly item quota: 5 reams for 50000 (10000 each)."""
    return ObligationDefinition(
        "ream", "Paper ream", "Stationery", Decimal("50000"),
        unit_quantity=5, recurrence=Recurrence.TERMLY,
    )


@pytest.fixture
def uniform():
    """Yearly mixed requirement: 2 uniforms for 60000."""
    return ObligationDefinition(
        "uniform", "Uniform", "Clothing", Decimal("60000"),
        unit_quantity=2, recurrence=Recurrence.YEARLY,
    )


@pytest.fixture
def admission():
    """One-time cash fee."""
    return ObligationDefinition(
        "admission", "Admission fee", "Fees", Decimal("30000"),
        recurrence=Recurrence.ONE_TIME,
    )


@pytest.fixture
def lunch():
    """Termly cash-only fee."""
    return ObligationDefinition(
        "lunch", "Lunch", "Fees", Decimal("120000"),
        recurrence=Recurrence.TERMLY,
    )


@pytest.fixture
def mattress():
    """Boarding-only one-time item."""
    return ObligationDefinition(
        "mattress", "Mattress", "Bedding", Decimal("80000"),
        unit_quantity=1, recurrence=Recurrence.ONE_TIME,
        applies_to=applicability_rule(section="Boarding"),
    )


@pytest.fixture
def retired():
    """Inactive obligation that must never be resolved."""
    return ObligationDefinition(
        "retired", "Old levy", "Fees", Decimal("1000"),
        recurrence=Recurrence.TERMLY, is_active=False,
    )


@pytest.fixture
def catalog_items(ream, uniform, admission, lunch, mattress, retired):
    return [ream, uniform, admission, lunch, mattress, retired]


@pytest.fixture
def obligations(catalog_items):
    return StaticObligationCatalog(catalog_items)


@pytest.fixture
def day_pupil():
    return PersonProfile("p-day", gender="Female", class_id="P3", section="Day",
                         registration_date=date(2024, 12, 1))


@pytest.fixture
def boarder():
    return PersonProfile("p-board", gender="Male", class_id="P5", section="Boarding",
                         registration_date=date(2024, 12, 1))


@pytest.fixture
def late_joiner():
    """Registered after term 1 of 2025 started."""
    return PersonProfile("p-late", gender="Male", class_id="P3", section="Day",
                         registration_date=date(2025, 3, 1))


@pytest.fixture
def people(day_pupil, boarder, late_joiner):
    return StaticPersonDirectory([day_pupil, boarder, late_joiner])


# =============================================================================
# LEDGER / SERVICE FIXTURES
# =============================================================================

@pytest.fixture
def ledger():
    """Fresh, quiet ledger."""
    return FulfillmentLedger("test", verbose=False)


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def service(periods, obligations, people, ledger, clock):
    return FulfillmentService(periods, obligations, people, ledger=ledger, clock=clock)


@pytest.fixture
def term1(periods):
    return periods.get_period("2025-T1")


@pytest.fixture
def term2(periods):
    return periods.get_period("2025-T2")


@pytest.fixture
def term3(periods):
    return periods.get_period("2025-T3")
