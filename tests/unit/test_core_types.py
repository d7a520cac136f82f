"""
test_core_types.py - Unit tests for core data structures

Tests:
- normalize_obligation_ids: scalar vs. bundle, de-duplication, empty input
- ObligationDefinition: validation, Decimal coercion, immutability
- Period / AcademicYear: ordinals and ownership
- ContributionEntry: coercion of amounts and coverage modes
- FulfillmentRecord: normalized ids, key, equality
"""

import pytest
from datetime import datetime
from decimal import Decimal

from fulfillment import (
    AcademicYear, ContributionEntry, CoverageMode, FulfillmentRecord,
    ObligationDefinition, PaymentStatus, Period, PersonProfile, Recurrence,
    ReleaseStatus, RequirementNotFound,
    normalize_obligation_ids, total_amount, total_quantity,
)


class TestNormalizeObligationIds:
    """Tests for the single normalization point of obligation references."""

    def test_scalar_becomes_tuple(self):
        assert normalize_obligation_ids("ream") == ("ream",)

    def test_list_is_sorted(self):
        assert normalize_obligation_ids(["uniform", "ream"]) == ("ream", "uniform")

    def test_duplicates_removed(self):
        assert normalize_obligation_ids(["ream", "ream", "pens"]) == ("pens", "ream")

    def test_whitespace_and_blanks_dropped(self):
        assert normalize_obligation_ids([" ream ", "", "  "]) == ("ream",)

    def test_tuple_input_accepted(self):
        assert normalize_obligation_ids(("b", "a")) == ("a", "b")

    def test_empty_raises(self):
        with pytest.raises(RequirementNotFound):
            normalize_obligation_ids([])

    def test_blank_string_raises(self):
        with pytest.raises(RequirementNotFound):
            normalize_obligation_ids("   ")


class TestObligationDefinition:
    """Tests for ObligationDefinition dataclass."""

    def test_defaults(self):
        o = ObligationDefinition("fee", "Tuition", "Fees", Decimal("100"))
        assert o.unit_quantity == 0
        assert o.recurrence is Recurrence.TERMLY
        assert o.is_active is True
        assert o.is_item_trackable is False
        assert o.applies_to(PersonProfile("anyone")) is True

    def test_price_coerced_to_decimal(self):
        o = ObligationDefinition("fee", "Tuition", "Fees", 0.1)
        assert o.price == Decimal("0.1")
        assert isinstance(o.price, Decimal)

    def test_total_amount_is_price(self):
        o = ObligationDefinition("ream", "Ream", "Stationery", Decimal("50000"), unit_quantity=5)
        assert o.total_amount == Decimal("50000")
        assert o.is_item_trackable is True

    def test_recurrence_from_string(self):
        o = ObligationDefinition("fee", "Tuition", "Fees", 1, recurrence="one-time")
        assert o.recurrence is Recurrence.ONE_TIME

    def test_unknown_recurrence_raises(self):
        with pytest.raises(ValueError):
            ObligationDefinition("fee", "Tuition", "Fees", 1, recurrence="monthly")

    def test_non_numeric_price_raises(self):
        with pytest.raises(ValueError, match="Expected a number"):
            ObligationDefinition("fee", "Tuition", "Fees", "ten")

    def test_negative_price_raises(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            ObligationDefinition("fee", "Tuition", "Fees", Decimal("-1"))

    def test_negative_quantity_raises(self):
        with pytest.raises(ValueError, match="cannot be negative"):
            ObligationDefinition("fee", "Tuition", "Fees", 1, unit_quantity=-2)

    def test_float_quantity_raises(self):
        with pytest.raises(ValueError, match="must be int"):
            ObligationDefinition("fee", "Tuition", "Fees", 1, unit_quantity=2.5)

    def test_empty_id_raises(self):
        with pytest.raises(ValueError, match="cannot be empty"):
            ObligationDefinition(" ", "Tuition", "Fees", 1)

    def test_is_frozen(self):
        o = ObligationDefinition("fee", "Tuition", "Fees", 1)
        with pytest.raises(AttributeError):
            o.price = Decimal("2")

    def test_bundle_totals(self):
        a = ObligationDefinition("a", "A", "G", Decimal("100"), unit_quantity=2)
        b = ObligationDefinition("b", "B", "G", Decimal("50"), unit_quantity=3)
        assert total_amount([a, b]) == Decimal("150")
        assert total_quantity([a, b]) == 5
        assert total_amount([]) == Decimal("0")


class TestPeriods:
    """Tests for Period and AcademicYear."""

    def test_period_id_is_term_id(self):
        p = Period("2025", "2025-T2", 2)
        assert p.period_id == "2025-T2"
        assert p.is_first_term is False

    def test_first_term(self):
        assert Period("2025", "2025-T1", 1).is_first_term is True

    def test_zero_ordinal_raises(self):
        with pytest.raises(ValueError, match="1-based"):
            Period("2025", "T0", 0)

    def test_year_rejects_foreign_term(self):
        with pytest.raises(ValueError, match="belongs to"):
            AcademicYear("2025", "2025", terms=(Period("2024", "2024-T1", 1),))

    def test_year_rejects_out_of_order_terms(self):
        with pytest.raises(ValueError, match="expected 1"):
            AcademicYear("2025", "2025", terms=(Period("2025", "2025-T2", 2),))


class TestContributionEntry:
    """Tests for ContributionEntry dataclass."""

    def test_amount_coerced(self):
        e = ContributionEntry(datetime(2025, 1, 1), 1000)
        assert e.amount == Decimal("1000")
        assert e.coverage_mode is CoverageMode.CASH
        assert e.is_item is False

    def test_mode_from_string(self):
        e = ContributionEntry(datetime(2025, 1, 1), 1000, coverage_mode="item", item_quantity=1)
        assert e.coverage_mode is CoverageMode.ITEM
        assert e.is_item is True

    def test_non_numeric_amount_raises(self):
        with pytest.raises(ValueError, match="Expected a number"):
            ContributionEntry(datetime(2025, 1, 1), "abc")

    def test_entry_is_frozen(self):
        e = ContributionEntry(datetime(2025, 1, 1), 1000)
        with pytest.raises(AttributeError):
            e.amount = Decimal("1")

    def test_repr_mentions_items(self):
        e = ContributionEntry(datetime(2025, 1, 1), 1000, coverage_mode="item", item_quantity=3)
        assert "3 items" in repr(e)


class TestFulfillmentRecord:
    """Tests for FulfillmentRecord dataclass."""

    def test_ids_always_normalized(self):
        r = FulfillmentRecord("p1", "ream", "2025", "2025-T1")
        assert r.obligation_ids == ("ream",)

    def test_bundle_key(self):
        r = FulfillmentRecord("p1", ["uniform", "ream"], "2025", "2025-T1")
        assert r.key == ("p1", ("ream", "uniform"), "2025", "2025-T1")
        assert r.covers("uniform")
        assert not r.covers("lunch")

    def test_defaults(self):
        r = FulfillmentRecord("p1", "ream", "2025", "2025-T1")
        assert r.paid_amount == Decimal("0")
        assert r.item_quantity_received == 0
        assert r.status is PaymentStatus.PENDING
        assert r.entries == ()
        assert r.version == 0
        assert r.release_status is ReleaseStatus.PENDING

    def test_entries_list_becomes_tuple(self):
        e = ContributionEntry(datetime(2025, 1, 1), 10)
        r = FulfillmentRecord("p1", "ream", "2025", "2025-T1", paid_amount=10, entries=[e])
        assert r.entries == (e,)

    def test_records_with_same_content_are_equal(self):
        a = FulfillmentRecord("p1", ["a", "b"], "2025", "T1")
        b = FulfillmentRecord("p1", ["b", "a"], "2025", "T1")
        assert a == b
        assert hash(a) == hash(b)
