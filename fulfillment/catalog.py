"""
catalog.py - Obligation catalog and person directory

The catalogs are external collaborators of the ledger: they supply
obligation definitions and the person attributes that applicability
predicates read. This module defines their protocols and in-memory
implementations.

Classes:
- ObligationCatalog / StaticObligationCatalog
- PersonDirectory / StaticPersonDirectory

Functions:
- applicability_rule: Build a predicate from gender/class/section filters
"""

from __future__ import annotations
from typing import (
    Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, runtime_checkable,
)

from .core import (
    Applicability, ObligationDefinition, PersonNotFound, PersonProfile,
    RequirementNotFound,
)


@runtime_checkable
class ObligationCatalog(Protocol):
    """Protocol for obligation catalogs."""

    def list_obligations(self, year_id: str) -> List[ObligationDefinition]:
        """Return every obligation defined for an academic year."""
        ...


@runtime_checkable
class PersonDirectory(Protocol):
    """Protocol for person directories. Unknown ids raise PersonNotFound."""

    def get_person(self, person_id: str) -> PersonProfile:
        """Return the person's profile."""
        ...


class StaticObligationCatalog:
    """
    Obligation catalog with a shared list plus optional per-year additions.

    Obligations passed as `obligations` apply to every year. `by_year` adds
    year-specific definitions; a year-specific definition replaces a shared
    one with the same id.
    """

    def __init__(
        self,
        obligations: Iterable[ObligationDefinition] = (),
        by_year: Optional[Mapping[str, Iterable[ObligationDefinition]]] = None,
    ):
        self._shared: Dict[str, ObligationDefinition] = {}
        for obligation in obligations:
            self._add(self._shared, obligation)
        self._by_year: Dict[str, Dict[str, ObligationDefinition]] = {}
        for year_id, items in (by_year or {}).items():
            year_items: Dict[str, ObligationDefinition] = {}
            for obligation in items:
                self._add(year_items, obligation)
            self._by_year[year_id] = year_items

    @staticmethod
    def _add(target: Dict[str, ObligationDefinition], obligation: ObligationDefinition) -> None:
        if obligation.obligation_id in target:
            raise ValueError(f"Obligation {obligation.obligation_id} already defined")
        target[obligation.obligation_id] = obligation

    def list_obligations(self, year_id: str) -> List[ObligationDefinition]:
        merged = dict(self._shared)
        merged.update(self._by_year.get(year_id, {}))
        return list(merged.values())

    def get_obligation(self, year_id: str, obligation_id: str) -> ObligationDefinition:
        """Look up a single obligation, raising RequirementNotFound if absent."""
        for obligation in self.list_obligations(year_id):
            if obligation.obligation_id == obligation_id:
                return obligation
        raise RequirementNotFound(f"Obligation {obligation_id} not found for year {year_id}")

    def __repr__(self):
        return f"StaticObligationCatalog({len(self._shared)} shared, {len(self._by_year)} years)"


class StaticPersonDirectory:
    """Person directory backed by a fixed set of profiles."""

    def __init__(self, people: Iterable[PersonProfile] = ()):
        self._people: Dict[str, PersonProfile] = {p.person_id: p for p in people}

    def get_person(self, person_id: str) -> PersonProfile:
        try:
            return self._people[person_id]
        except KeyError:
            raise PersonNotFound(f"Person {person_id} not found") from None

    def add(self, person: PersonProfile) -> None:
        """Add or replace a profile."""
        self._people[person.person_id] = person

    def __repr__(self):
        return f"StaticPersonDirectory({len(self._people)} people)"


def _normalize_gender(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().lower()
    return value or None


def applicability_rule(
    gender: str = "all",
    class_ids: Optional[Sequence[str]] = None,
    section: Optional[str] = None,
) -> Applicability:
    """
    Build an applicability predicate from catalog filters.

    Args:
        gender: "male", "female" or "all".
        class_ids: Restrict to these classes (None = all classes).
        section: Restrict to this section, e.g. "Day" or "Boarding"
                 (None = all sections).

    Returns:
        A predicate over PersonProfile. A person with no recorded gender does
        not match a gender-specific rule.

    Example:
        boarders = applicability_rule(section="Boarding")
        ObligationDefinition("mattress", "Mattress", "Bedding", 80000,
                             unit_quantity=1, applies_to=boarders)
    """
    wanted_gender = _normalize_gender(gender)
    if wanted_gender not in ("all", "male", "female"):
        raise ValueError(f"Unknown gender filter {gender!r}")
    allowed_classes = frozenset(class_ids) if class_ids is not None else None

    def rule(person: PersonProfile) -> bool:
        if wanted_gender != "all" and _normalize_gender(person.gender) != wanted_gender:
            return False
        if allowed_classes is not None and person.class_id not in allowed_classes:
            return False
        if section is not None and person.section != section:
            return False
        return True

    return rule
