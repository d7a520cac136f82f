"""
periods.py - Period catalog for academic years and terms

Provides the period hierarchy (year -> ordered terms) consumed by the
eligibility resolver.

Classes:
- PeriodCatalog: Protocol defining the lookup interface
- StaticPeriodCatalog: In-memory catalog built from AcademicYear objects

Functions:
- previous_periods: Chronologically earlier terms across all years
- is_term_valid_for_person: Registration-date bound on chargeable terms
"""

from __future__ import annotations
from datetime import date
from typing import Dict, Iterable, List, Optional, Protocol, Tuple, runtime_checkable

from .core import AcademicYear, Period, PeriodNotFound, PersonProfile


@runtime_checkable
class PeriodCatalog(Protocol):
    """
    Protocol for period catalogs.

    get_period raises PeriodNotFound for unknown ids. list_years returns
    years in chronological order; terms within a year are ordered by ordinal.
    """

    def get_period(self, period_id: str) -> Period:
        """Return the term with the given id."""
        ...

    def list_terms_of_year(self, year_id: str) -> List[Period]:
        """Return the terms of a year in order."""
        ...

    def list_years(self) -> List[AcademicYear]:
        """Return all academic years in chronological order."""
        ...


class StaticPeriodCatalog:
    """
    Period catalog backed by a fixed list of academic years.

    Years are kept in the order given unless every year has a start_date,
    in which case they are sorted by it.
    """

    def __init__(self, years: Iterable[AcademicYear]):
        years = list(years)
        if years and all(y.start_date is not None for y in years):
            years.sort(key=lambda y: y.start_date)
        self._years: Tuple[AcademicYear, ...] = tuple(years)
        self._by_year: Dict[str, AcademicYear] = {}
        self._by_term: Dict[str, Period] = {}
        for year in self._years:
            if year.year_id in self._by_year:
                raise ValueError(f"Duplicate academic year {year.year_id}")
            self._by_year[year.year_id] = year
            for term in year.terms:
                if term.term_id in self._by_term:
                    raise ValueError(f"Duplicate term {term.term_id}")
                self._by_term[term.term_id] = term

    def get_period(self, period_id: str) -> Period:
        """Look up a term by id."""
        try:
            return self._by_term[period_id]
        except KeyError:
            raise PeriodNotFound(f"Period {period_id} not found") from None

    def list_terms_of_year(self, year_id: str) -> List[Period]:
        """List the terms of a year in order."""
        if year_id not in self._by_year:
            raise PeriodNotFound(f"Academic year {year_id} not found")
        return list(self._by_year[year_id].terms)

    def list_years(self) -> List[AcademicYear]:
        return list(self._years)

    def __repr__(self):
        return f"StaticPeriodCatalog({len(self._years)} years, {len(self._by_term)} terms)"


def chronological_terms(catalog: PeriodCatalog) -> List[Period]:
    """All terms of all years, oldest first."""
    terms: List[Period] = []
    for year in catalog.list_years():
        terms.extend(catalog.list_terms_of_year(year.year_id))
    return terms


def previous_periods(period: Period, catalog: PeriodCatalog) -> List[Period]:
    """
    Terms strictly before the given one, across all years, oldest first.

    Raises:
        PeriodNotFound: If the period is not in the catalog.
    """
    terms = chronological_terms(catalog)
    for index, term in enumerate(terms):
        if term.term_id == period.term_id:
            return terms[:index]
    raise PeriodNotFound(f"Period {period.term_id} not found")


def is_term_valid_for_person(period: Period, person: PersonProfile) -> bool:
    """
    A term is chargeable if it started on or after the person's registration.

    Terms or persons without dates are always valid.
    """
    registered: Optional[date] = person.registration_date
    if registered is None or period.start_date is None:
        return True
    return period.start_date >= registered
