"""
Conformance Test Suite

This suite defines the NORMATIVE behavior of the fulfillment ledger.
Any compliant implementation MUST pass these tests.

The tests are organized by invariant:
1. conservation.py - Paid amount equals the sum of contributions; status
   agrees with balance
2. monotonicity.py - Paid amount, item count and version never decrease
3. replay_determinism.py - Replay is ordered, read-only and repeatable
4. conversion_law.py - Item-to-cash round trip is exact; cash-to-item floors
5. concurrency.py - Concurrent writes to one record lose no update

These tests use hypothesis for property-based testing.
"""
