from __future__ import annotations

from typing import Dict, List, Optional

from staffing.database import DirectorySessionLocal, Institution, Physician, init_database


SAMPLE_PHYSICIANS: List[Dict[str, str]] = [
    {"id": "P1", "first_name": "Laura", "last_name": "Medina", "specialty": "Radiology"},
    {"id": "P2", "first_name": "Tomas", "last_name": "Vidal", "specialty": "Radiology"},
    {"id": "P3", "first_name": "Irene", "last_name": "Castro", "specialty": "Nuclear Medicine"},
    {"id": "P4", "first_name": "Andres", "last_name": "Rojas", "specialty": "Interventional Radiology"},
    {"id": "P5", "first_name": "Carla", "last_name": "Fuentes", "specialty": "Neuroradiology"},
]

SAMPLE_INSTITUTIONS: List[Dict[str, str]] = [
    {"id": "I1", "name": "Hospital del Norte", "abbreviation": "HDN", "city": "Antofagasta", "category": "Hospital"},
    {"id": "I2", "name": "Clinica Costa Norte", "abbreviation": "CCN", "city": "Iquique", "category": "Clinic"},
    {"id": "I3", "name": "Hospital Regional Sur", "abbreviation": "HRS", "city": "Temuco", "category": "Hospital"},
    {"id": "I4", "name": "Centro Medico Austral", "abbreviation": "CMA", "city": "Punta Arenas", "category": "Clinic"},
    {"id": "I5", "name": "Imagenologia Central", "abbreviation": "IMC", "city": "Santiago", "category": "Imaging Center"},
]


def seed_directory(session_factory=None, *, physicians: Optional[List[Dict[str, str]]] = None,
                   institutions: Optional[List[Dict[str, str]]] = None) -> tuple[int, int]:
    """Insert or refresh the sample directory; returns (created, refreshed)."""
    if session_factory is None:
        init_database()
        session_factory = DirectorySessionLocal
    created = 0
    refreshed = 0
    with session_factory() as session:
        for entry in physicians if physicians is not None else SAMPLE_PHYSICIANS:
            physician = session.get(Physician, entry["id"])
            if not physician:
                session.add(Physician(**entry))
                created += 1
            else:
                physician.first_name = entry.get("first_name", "")
                physician.last_name = entry["last_name"]
                physician.specialty = entry.get("specialty", "")
                refreshed += 1
        for entry in institutions if institutions is not None else SAMPLE_INSTITUTIONS:
            institution = session.get(Institution, entry["id"])
            if not institution:
                session.add(Institution(**entry))
                created += 1
            else:
                institution.name = entry["name"]
                institution.abbreviation = entry.get("abbreviation", "")
                institution.city = entry.get("city", "")
                institution.category = entry.get("category", "")
                refreshed += 1
        session.commit()
    return created, refreshed


if __name__ == "__main__":
    created, refreshed = seed_directory()
    print(f"Seed complete. Created {created} directory entries, refreshed {refreshed}.")
