"""
Concurrency Conformance Tests

INVARIANT: Concurrent contributions to one record lose no update.

    ∀ N concurrent commits c_1..c_N to record R:
        R_after.paid_amount == R_before.paid_amount + Σ c_i.amount
        len(R_after.entries) == len(R_before.entries) + N

Writes carrying a stale expected_version fail with ConcurrentModification
and change nothing. Writes to different records do not interfere, except
that a one-time obligation reaches PAID in at most one term per person.
"""

import threading
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from decimal import Decimal

from fulfillment import (
    ConcurrentModification, ContributionEntry, FulfillmentLedger,
    ObligationDefinition, PaymentStatus, Period, PupilIneligible, Recurrence,
)


PERIOD = Period("2025", "2025-T1", 1)
LUNCH = ObligationDefinition("lunch", "Lunch", "Fees", Decimal("120000"))
ADMISSION = ObligationDefinition("admission", "Admission fee", "Fees", Decimal("30000"),
                                 recurrence=Recurrence.ONE_TIME)
LATER = Period("2025", "2025-T2", 2)


def entry(amount):
    return ContributionEntry(datetime(2025, 1, 1), Decimal(amount))


class TestConcurrencyExamples:
    """Explicit concurrency examples."""

    def test_two_concurrent_contributions(self):
        """Two threads each add 1000; both are applied."""
        ledger = FulfillmentLedger("race")
        barrier = threading.Barrier(2)

        def contribute():
            barrier.wait()
            ledger.commit("p1", "lunch", PERIOD, entry(1000), [LUNCH])

        threads = [threading.Thread(target=contribute) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        record = ledger.get_record("p1", "lunch", PERIOD)
        assert record.paid_amount == Decimal("2000")
        assert len(record.entries) == 2
        assert record.version == 2

    def test_many_concurrent_contributions(self):
        ledger = FulfillmentLedger("race")
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda _: ledger.commit("p1", "lunch", PERIOD, entry(1000), [LUNCH]),
                range(100),
            ))
        record = ledger.get_record("p1", "lunch", PERIOD)
        assert record.paid_amount == Decimal("100000")
        assert record.version == 100
        assert ledger.verify_integrity()['valid']

    def test_stale_version_loses_race(self):
        """Two writers read version 0; only the first commit wins."""
        ledger = FulfillmentLedger("race")
        seen = 0
        ledger.commit("p1", "lunch", PERIOD, entry(1000), [LUNCH], expected_version=seen)
        with pytest.raises(ConcurrentModification):
            ledger.commit("p1", "lunch", PERIOD, entry(1000), [LUNCH], expected_version=seen)
        record = ledger.get_record("p1", "lunch", PERIOD)
        assert record.paid_amount == Decimal("1000")
        assert record.version == 1

    def test_optimistic_writers_one_winner_per_version(self):
        """
        Many threads race with the same expected_version; exactly one
        succeeds and the rest see ConcurrentModification.
        """
        ledger = FulfillmentLedger("race")
        ledger.commit("p1", "lunch", PERIOD, entry(1), [LUNCH])
        barrier = threading.Barrier(6)
        outcomes = []
        lock = threading.Lock()

        def contribute():
            barrier.wait()
            try:
                ledger.commit("p1", "lunch", PERIOD, entry(1000), [LUNCH], expected_version=1)
                result = "applied"
            except ConcurrentModification:
                result = "conflict"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=contribute) for _ in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("applied") == 1
        assert outcomes.count("conflict") == 5
        assert ledger.get_record("p1", "lunch", PERIOD).paid_amount == Decimal("1001")

    def test_one_time_paid_in_one_term_only(self):
        """
        Two threads pay the same one-time fee in different terms at once;
        one is applied and the other sees PupilIneligible.
        """
        ledger = FulfillmentLedger("race")
        barrier = threading.Barrier(2)
        outcomes = []
        lock = threading.Lock()

        def contribute(period):
            barrier.wait()
            try:
                ledger.commit("p1", "admission", period, entry(30000), [ADMISSION])
                result = "applied"
            except PupilIneligible:
                result = "ineligible"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=contribute, args=(p,)) for p in (PERIOD, LATER)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["applied", "ineligible"]
        paid = [r for r in ledger.records_for_person("p1") if r.status is PaymentStatus.PAID]
        assert len(paid) == 1
        assert len(ledger) == 1


class TestConcurrencyProperties:
    """Property-based concurrency tests."""

    @given(st.lists(st.integers(min_value=1, max_value=5000), min_size=1, max_size=30),
           st.integers(min_value=1, max_value=4))
    @settings(max_examples=25, deadline=None)
    def test_no_lost_updates_across_records(self, values, people):
        """
        PROPERTY: Each person's record holds exactly their own contributions,
        however the commits interleave.
        """
        ledger = FulfillmentLedger("prop")
        jobs = [(f"p{i % people}", v) for i, v in enumerate(values)]
        with ThreadPoolExecutor(max_workers=4) as pool:
            list(pool.map(
                lambda job: ledger.commit(job[0], "lunch", PERIOD, entry(job[1]), [LUNCH]),
                jobs,
            ))
        for i in range(min(people, len(values))):
            person = f"p{i}"
            expected = sum(v for p, v in jobs if p == person)
            record = ledger.get_record(person, "lunch", PERIOD)
            assert record.paid_amount == Decimal(expected)
            assert len(record.entries) == sum(1 for p, _ in jobs if p == person)
