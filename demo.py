#!/usr/bin/env python3
"""
demo.py - Interactive Tutorial: Learn the Fulfillment Ledger Step by Step

A walkthrough of one school year: catalogs, eligibility, cash and item
contributions, audit replay and concurrent writes. Press Enter to advance.

WHAT YOU'LL LEARN:
  1-3:  Setup        - Periods, obligations, people
  4-6:  Contributions - Partial cash, items, rejections
  7-8:  Recurrence   - Termly, yearly and one-time obligations across terms
  9-10: Audit        - Replay, summaries, integrity, concurrent writes

Run:
    python demo.py           # Interactive mode (press Enter for each step)
    python demo.py --quick   # Run all steps without pausing
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
import logging
import sys
import threading

from fulfillment import (
    # Catalog types
    AcademicYear, Period, ObligationDefinition, PersonProfile, Recurrence,
    StaticPeriodCatalog, StaticObligationCatalog, StaticPersonDirectory,
    applicability_rule,
    # Ledger and service
    FulfillmentLedger, FulfillmentService,
    # Errors
    FulfillmentError,
    # Conversion
    price_per_unit, item_equivalent,
)


# ============================================================================
# CONFIGURATION
# ============================================================================

@dataclass
class DemoConfig:
    """Configuration for the tutorial. Modify these to experiment."""
    year_start: date = date(2025, 1, 1)
    registration: date = date(2024, 12, 1)

    ream_price: Decimal = Decimal("50000")
    ream_quantity: int = 5
    uniform_price: Decimal = Decimal("60000")
    admission_fee: Decimal = Decimal("30000")

    first_payment: Decimal = Decimal("25000")
    items_brought: int = 2

    # Step 10
    concurrent_writers: int = 20
    concurrent_amount: Decimal = Decimal("1000")


CONFIG = DemoConfig()

QUICK_MODE = "--quick" in sys.argv


def wait_for_enter():
    """Pause for user input unless in quick mode."""
    if not QUICK_MODE:
        input("\n[Press Enter to continue...]")


def step_header(number: int, title: str, objective: str):
    print(f"\n{'='*70}")
    print(f"STEP {number}: {title}")
    print(f"{'='*70}")
    print(f"\nObjective: {objective}\n")


def section_header(text: str):
    print(f"\n--- {text} ---\n")


def show_standing(service: FulfillmentService, person_id: str, period_id: str):
    for item in service.resolve_eligible_obligations(person_id, period_id):
        print(f"    {item.obligation.group:<11} {item.obligation.name:<15} "
              f"{item.status.value:<13} paid={item.paid_amount:>8} balance={item.balance:>8}")


# ============================================================================
# SETUP (Steps 1-3)
# ============================================================================

def step_01_periods() -> StaticPeriodCatalog:
    step_header(1, "The Period Catalog",
        "An academic year is an ordered list of terms; ordinals drive recurrence.")

    terms = tuple(
        Period("2025", f"2025-T{n}", n, name=f"Term {n}",
               start_date=date(2025, month, 1))
        for n, month in ((1, 1), (2, 5), (3, 9))
    )
    periods = StaticPeriodCatalog([AcademicYear("2025", "2025", CONFIG.year_start, terms)])
    for term in periods.list_terms_of_year("2025"):
        print(f"    {term.term_id}: ordinal {term.term_ordinal}, starts {term.start_date}")
    return periods


def step_02_obligations() -> StaticObligationCatalog:
    step_header(2, "The Obligation Catalog",
        "Obligations carry a price, an optional item quantity and a recurrence.")

    catalog = StaticObligationCatalog([
        ObligationDefinition("ream", "Paper ream", "Stationery", CONFIG.ream_price,
                             unit_quantity=CONFIG.ream_quantity, recurrence=Recurrence.TERMLY),
        ObligationDefinition("uniform", "Uniform", "Clothing", CONFIG.uniform_price,
                             unit_quantity=2, recurrence=Recurrence.YEARLY),
        ObligationDefinition("admission", "Admission fee", "Fees", CONFIG.admission_fee,
                             recurrence=Recurrence.ONE_TIME),
        ObligationDefinition("mattress", "Mattress", "Bedding", Decimal("80000"),
                             unit_quantity=1, recurrence=Recurrence.ONE_TIME,
                             applies_to=applicability_rule(section="Boarding")),
    ])
    for obligation in catalog.list_obligations("2025"):
        print(f"    {obligation!r}")

    ream = catalog.get_obligation("2025", "ream")
    print(f"\n    One ream is worth {price_per_unit(ream)} (price / quantity).")
    return catalog


def step_03_people() -> StaticPersonDirectory:
    step_header(3, "The Person Directory",
        "Applicability predicates read person attributes; the core never does.")

    people = StaticPersonDirectory([
        PersonProfile("amina", gender="Female", class_id="P3", section="Day",
                      registration_date=CONFIG.registration),
        PersonProfile("brian", gender="Male", class_id="P5", section="Boarding",
                      registration_date=CONFIG.registration),
    ])
    print("    amina: Day pupil, P3")
    print("    brian: Boarding pupil, P5 (the mattress applies to him only)")
    return people


# ============================================================================
# CONTRIBUTIONS (Steps 4-6)
# ============================================================================

def step_04_partial_payment(service: FulfillmentService):
    step_header(4, "A Partial Cash Payment",
        "Paid amount, balance and status are recomputed together on every commit.")

    section_header("Before")
    show_standing(service, "amina", "2025-T1")

    entry = service.cash_contribution(CONFIG.first_payment, recorded_by="bursar")
    state = service.record_contribution("amina", "ream", "2025-T1", entry)

    section_header("After")
    show_standing(service, "amina", "2025-T1")
    eq = item_equivalent(state.paid_amount, service.obligations.get_obligation("2025", "ream"))
    print(f"\n    {state.paid_amount} buys {eq.items} reams with {eq.remainder} left over.")


def step_05_item_contribution(service: FulfillmentService):
    step_header(5, "Bringing Items Instead of Cash",
        "Items are valued at price per unit and counted separately.")

    entry = service.item_contribution("2025-T1", "ream", CONFIG.items_brought, recorded_by="class teacher")
    state = service.record_contribution("amina", "ream", "2025-T1", entry)
    print(f"    Items received: {state.item_quantity_received} of {state.item_quantity_required}")
    print(f"    Status: {state.status.value}, balance {state.balance}, version {state.version}")


def step_06_rejections(service: FulfillmentService):
    step_header(6, "Rejected Contributions",
        "Validation runs before any mutation; a failed write changes nothing.")

    attempts = [
        ("zero amount", "amina", "ream", "2025-T1", service.cash_contribution(0, "bursar")),
        ("not applicable", "amina", "mattress", "2025-T1", service.cash_contribution(100, "bursar")),
        ("unknown obligation", "amina", "piano", "2025-T1", service.cash_contribution(100, "bursar")),
        ("unknown term", "amina", "ream", "2030-T1", service.cash_contribution(100, "bursar")),
    ]
    for label, person_id, obligation_id, period_id, entry in attempts:
        try:
            service.record_contribution(person_id, obligation_id, period_id, entry)
        except FulfillmentError as exc:
            print(f"    {label:<19} -> {type(exc).__name__}: {exc}")

    state = service.get_ledger_state("amina", "ream", "2025-T1")
    print(f"\n    Ream record unchanged at version {state.version}, paid {state.paid_amount}.")


# ============================================================================
# RECURRENCE (Steps 7-8)
# ============================================================================

def step_07_terms(service: FulfillmentService):
    step_header(7, "Termly and Yearly Obligations",
        "Termly items restart each term; yearly items appear in term 1 only.")

    for period_id in ("2025-T1", "2025-T2", "2025-T3"):
        section_header(period_id)
        show_standing(service, "amina", period_id)


def step_08_one_time(service: FulfillmentService):
    step_header(8, "One-Time Obligations",
        "Once paid, a one-time obligation disappears from every later term.")

    service.record_contribution("amina", "admission", "2025-T1",
                                service.cash_contribution(CONFIG.admission_fee, "bursar"))
    for period_id in ("2025-T1", "2025-T2"):
        listed = [i.obligation_id for i in service.resolve_eligible_obligations("amina", period_id)]
        print(f"    {period_id}: {listed}")


# ============================================================================
# AUDIT (Steps 9-10)
# ============================================================================

def step_09_audit(service: FulfillmentService):
    step_header(9, "Replay and Summaries",
        "History replays deterministically; summaries fold a term into totals.")

    section_header("Replay of amina / ream / 2025-T1")
    for step in service.get_history("amina", "ream", "2025-T1"):
        print(f"    {step.entry!r}\n      -> running {step.running_paid_amount}, "
              f"balance {step.balance_after}, {step.status_after.value}")

    summary = service.summarize_period("amina", "2025-T1")
    section_header("Term 1 summary")
    print(f"    {summary.completed_count}/{summary.total_obligations} complete "
          f"({summary.progress_percentage:.1f}%), due {summary.total_amount_due}, "
          f"paid {summary.total_paid}, balance {summary.total_balance}")


def step_10_concurrency(service: FulfillmentService):
    step_header(10, "Concurrent Writes",
        "Writes to one record are serialized; no contribution is lost.")

    before = service.get_ledger_state("brian", "ream", "2025-T2").paid_amount

    def contribute():
        service.record_contribution("brian", "ream", "2025-T2",
                                    service.cash_contribution(CONFIG.concurrent_amount, "bursar"))

    threads = [threading.Thread(target=contribute) for _ in range(CONFIG.concurrent_writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    after = service.get_ledger_state("brian", "ream", "2025-T2")
    print(f"    {CONFIG.concurrent_writers} writers x {CONFIG.concurrent_amount}: "
          f"{before} -> {after.paid_amount} (version {after.version})")
    print(f"    Integrity: {service.ledger.verify_integrity()}")


def main():
    """Run the complete tutorial."""
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 70)
    print("       FULFILLMENT LEDGER - INTERACTIVE TUTORIAL")
    print("=" * 70)
    if QUICK_MODE:
        print("Running in QUICK mode (no pauses)")
    else:
        print("Running in INTERACTIVE mode (press Enter to advance)")
    wait_for_enter()

    periods = step_01_periods()
    wait_for_enter()
    obligations = step_02_obligations()
    wait_for_enter()
    people = step_03_people()
    wait_for_enter()

    service = FulfillmentService(periods, obligations, people,
                                 ledger=FulfillmentLedger("demo", verbose=True),
                                 clock=lambda: datetime(2025, 2, 1, 9, 0))

    step_04_partial_payment(service)
    wait_for_enter()
    step_05_item_contribution(service)
    wait_for_enter()
    step_06_rejections(service)
    wait_for_enter()
    step_07_terms(service)
    wait_for_enter()
    step_08_one_time(service)
    wait_for_enter()
    step_09_audit(service)
    wait_for_enter()

    service.ledger.verbose = False
    step_10_concurrency(service)

    print("\n" + "=" * 70)
    print("       TUTORIAL COMPLETE!")
    print("=" * 70)
    print("""
    Next steps:
      - See fulfillment/eligibility.py for the recurrence rules
      - See fulfillment/ledger.py for the write discipline
      - Run tests: pytest tests/
    """)


if __name__ == "__main__":
    main()
