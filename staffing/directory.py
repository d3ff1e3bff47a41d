from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol


@dataclass(frozen=True, slots=True)
class PhysicianRecord:
    id: str
    last_name: str
    specialty: str = ""
    first_name: str = ""

    @property
    def display_name(self) -> str:
        return f"Dr. {self.last_name}"


@dataclass(frozen=True, slots=True)
class InstitutionRecord:
    id: str
    name: str
    abbreviation: str = ""
    city: str = ""
    category: str = ""


class Directory(Protocol):
    """Read-only physician/institution lookups keyed by id."""

    def get_physician(self, physician_id: str) -> Optional[PhysicianRecord]: ...

    def get_institution(self, institution_id: str) -> Optional[InstitutionRecord]: ...

    def list_institutions(self) -> List[InstitutionRecord]: ...


def matches_physician(record: PhysicianRecord, term: str) -> bool:
    needle = term.strip().lower()
    return needle in f"{record.first_name} {record.last_name}".lower()


def matches_institution(record: InstitutionRecord, term: str) -> bool:
    needle = term.strip().lower()
    return needle in record.name.lower() or needle in record.abbreviation.lower()


class StaticDirectory:
    """Directory backed by in-memory records, used by scripts and tests."""

    def __init__(
        self,
        physicians: Iterable[PhysicianRecord] = (),
        institutions: Iterable[InstitutionRecord] = (),
    ) -> None:
        self._physicians: Dict[str, PhysicianRecord] = {record.id: record for record in physicians}
        self._institutions: Dict[str, InstitutionRecord] = {record.id: record for record in institutions}

    def get_physician(self, physician_id: str) -> Optional[PhysicianRecord]:
        return self._physicians.get(physician_id)

    def get_institution(self, institution_id: str) -> Optional[InstitutionRecord]:
        return self._institutions.get(institution_id)

    def list_institutions(self) -> List[InstitutionRecord]:
        return sorted(self._institutions.values(), key=lambda record: record.name)

    def search_physicians(self, term: str) -> List[PhysicianRecord]:
        return [record for record in self._physicians.values() if matches_physician(record, term)]

    def search_institutions(self, term: str) -> List[InstitutionRecord]:
        return [record for record in self.list_institutions() if matches_institution(record, term)]
