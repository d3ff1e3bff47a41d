from __future__ import annotations

import datetime
import json
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Date,
    DateTime,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
    select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from staffing.config import (
    ACTIVE_RULES_NAME,
    DATA_DIR,
    DIRECTORY_DATABASE_URL,
    STAFFING_DATABASE_URL,
)
from staffing.directory import InstitutionRecord, PhysicianRecord, matches_institution, matches_physician
from staffing.draft import CommittedAssignment
from staffing.errors import NotFoundError
from staffing.logger import logger
from staffing.rules import RuleSet, format_minutes

DATA_DIR.mkdir(parents=True, exist_ok=True)
ASSIGNMENT_STATUS_CHOICES = {"Pending", "Confirmed", "Conflict"}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class DirectoryBase(DeclarativeBase):
    """Standalone metadata for the read-only directory living in directory.db."""

    pass


class Base(DeclarativeBase):
    """Metadata for rules, assignments and audit tables living in staffing.db."""

    pass


class Physician(DirectoryBase):
    __tablename__ = "physicians"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(80), default="", nullable=False)
    last_name: Mapped[str] = mapped_column(String(80), nullable=False)
    specialty: Mapped[str] = mapped_column(String(120), default="", nullable=False)

    def to_record(self) -> PhysicianRecord:
        return PhysicianRecord(
            id=self.id,
            last_name=self.last_name,
            specialty=self.specialty or "",
            first_name=self.first_name or "",
        )


class Institution(DirectoryBase):
    __tablename__ = "institutions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False)
    abbreviation: Mapped[str] = mapped_column(String(24), default="", nullable=False)
    city: Mapped[str] = mapped_column(String(80), default="", nullable=False)
    category: Mapped[str] = mapped_column(String(80), default="", nullable=False)

    def to_record(self) -> InstitutionRecord:
        return InstitutionRecord(
            id=self.id,
            name=self.name,
            abbreviation=self.abbreviation or "",
            city=self.city or "",
            category=self.category or "",
        )


class RuleDocument(Base):
    __tablename__ = "rule_documents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    paramsJSON: Mapped[str] = mapped_column(String(20000), nullable=False, default="{}")
    lastEditedBy: Mapped[str] = mapped_column(String(60), nullable=False, default="system")
    lastEditedAt: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        UniqueConstraint("name", name="uq_rule_documents_name"),
    )

    def params_dict(self) -> Dict:
        try:
            value = json.loads(self.paramsJSON or "{}")
            if isinstance(value, dict):
                return value
        except json.JSONDecodeError:
            logger.warning("Stored rule document %r is not valid JSON", self.name)
        return {}


class ShiftAssignment(Base):
    __tablename__ = "shift_assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    physician_id: Mapped[str] = mapped_column(String(64), nullable=False)
    physician_name: Mapped[str] = mapped_column(String(160), nullable=False, default="")
    institution_id: Mapped[str] = mapped_column(String(64), nullable=False)
    institution_name: Mapped[str] = mapped_column(String(160), nullable=False, default="")
    date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    group_tag: Mapped[str] = mapped_column(String(80), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="Confirmed")
    notes: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "physician_id": self.physician_id,
            "physician_name": self.physician_name,
            "institution_id": self.institution_id,
            "institution_name": self.institution_name,
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "group_tag": self.group_tag,
            "status": self.status,
            "notes": self.notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class AuditLog(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(60), nullable=False)
    action: Mapped[str] = mapped_column(String(60), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False, default="RuleSet")
    target_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    payloadJSON: Mapped[str] = mapped_column(String(2000), nullable=False, default="{}")
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


directory_engine = create_engine(
    DIRECTORY_DATABASE_URL,
    echo=False,
    future=True,
)
staffing_engine = create_engine(
    STAFFING_DATABASE_URL,
    echo=False,
    future=True,
)
DirectorySessionLocal = sessionmaker(bind=directory_engine, expire_on_commit=False, future=True)
SessionLocal = sessionmaker(bind=staffing_engine, expire_on_commit=False, future=True)


def init_database() -> None:
    DirectoryBase.metadata.create_all(directory_engine)
    Base.metadata.create_all(staffing_engine)


# ---------------------------------------------------------------------------
# Rule document


def get_rule_document(session, name: str = ACTIVE_RULES_NAME) -> Optional[RuleDocument]:
    stmt = select(RuleDocument).where(RuleDocument.name == name)
    return session.scalars(stmt).first()


def upsert_rule_document(
    session, params_dict: Dict, *, name: str = ACTIVE_RULES_NAME, edited_by: str = "system"
) -> RuleDocument:
    existing = get_rule_document(session, name)
    payload = params_dict if isinstance(params_dict, dict) else {}
    if existing:
        existing.paramsJSON = json.dumps(payload)
        existing.lastEditedBy = edited_by
        existing.lastEditedAt = _utcnow()
        session.commit()
        session.refresh(existing)
        return existing
    document = RuleDocument(
        name=name,
        paramsJSON=json.dumps(payload),
        lastEditedBy=edited_by,
        lastEditedAt=_utcnow(),
    )
    session.add(document)
    session.commit()
    session.refresh(document)
    return document


class RuleSetStore:
    """Loads and saves the single rule document; last write wins."""

    def __init__(self, session_factory=None, *, name: str = ACTIVE_RULES_NAME) -> None:
        self.session_factory = session_factory or SessionLocal
        self.name = name

    def load(self) -> RuleSet:
        with self.session_factory() as session:
            document = get_rule_document(session, self.name)
            if document is None:
                logger.info("No stored rule document %r; starting from defaults", self.name)
                return RuleSet()
            return RuleSet.from_document(document.params_dict())

    def save(self, rule_set: RuleSet, *, edited_by: str = "system") -> RuleDocument:
        with self.session_factory() as session:
            document = upsert_rule_document(session, rule_set.to_document(), name=self.name, edited_by=edited_by)
            record_audit_log(
                session,
                user_id=edited_by,
                action="RULES_APPLY",
                target_type="RuleSet",
                target_id=document.id,
                payload=rule_set.summary(),
            )
            logger.info("Saved rule document %r (edited by %s)", self.name, edited_by)
            return document


# ---------------------------------------------------------------------------
# Committed assignments


def add_assignment(
    session,
    assignment: CommittedAssignment,
    *,
    physician_name: str = "",
    institution_name: str = "",
) -> ShiftAssignment:
    row = ShiftAssignment(
        physician_id=assignment.physician_id,
        physician_name=physician_name,
        institution_id=assignment.institution_id,
        institution_name=institution_name,
        date=assignment.date,
        start_time=format_minutes(assignment.start_time),
        end_time=format_minutes(assignment.end_time),
        group_tag=assignment.group_tag,
        status=assignment.status,
        notes=assignment.notes,
        created_at=assignment.created_at,
    )
    session.add(row)
    session.commit()
    session.refresh(row)
    return row


def list_assignments(
    session,
    *,
    physician_id: Optional[str] = None,
    institution_id: Optional[str] = None,
) -> List[ShiftAssignment]:
    stmt = select(ShiftAssignment)
    if physician_id:
        stmt = stmt.where(ShiftAssignment.physician_id == physician_id)
    if institution_id:
        stmt = stmt.where(ShiftAssignment.institution_id == institution_id)
    stmt = stmt.order_by(ShiftAssignment.date.asc(), ShiftAssignment.start_time.asc(), ShiftAssignment.id.asc())
    return list(session.scalars(stmt))


def update_assignment(session, assignment_id: int, *, status: Optional[str] = None, notes: Optional[str] = None) -> ShiftAssignment:
    row = session.get(ShiftAssignment, assignment_id)
    if not row:
        raise NotFoundError(f"Assignment with id {assignment_id} was not found.")
    if status is not None:
        if status not in ASSIGNMENT_STATUS_CHOICES:
            raise ValueError(f"Unsupported assignment status {status!r}.")
        row.status = status
    if notes is not None:
        row.notes = notes
    session.commit()
    session.refresh(row)
    return row


def delete_assignment(session, assignment_id: int) -> None:
    row = session.get(ShiftAssignment, assignment_id)
    if not row:
        raise NotFoundError(f"Assignment with id {assignment_id} was not found.")
    session.delete(row)
    session.commit()


class AssignmentStore:
    """Persistence sink for committed drafts."""

    def __init__(self, session_factory=None, *, directory=None) -> None:
        self.session_factory = session_factory or SessionLocal
        self.directory = directory

    def __call__(self, assignment: CommittedAssignment) -> ShiftAssignment:
        return self.add(assignment)

    def add(self, assignment: CommittedAssignment) -> ShiftAssignment:
        physician_name = ""
        institution_name = ""
        if self.directory is not None:
            physician = self.directory.get_physician(assignment.physician_id)
            institution = self.directory.get_institution(assignment.institution_id)
            physician_name = physician.display_name if physician else ""
            institution_name = institution.name if institution else ""
        with self.session_factory() as session:
            row = add_assignment(
                session,
                assignment,
                physician_name=physician_name,
                institution_name=institution_name,
            )
            record_audit_log(
                session,
                user_id="engine",
                action="ASSIGNMENT_COMMIT",
                target_type="ShiftAssignment",
                target_id=row.id,
                payload=assignment.to_dict(),
            )
            return row


# ---------------------------------------------------------------------------
# Directory


class SqlDirectory:
    """Directory lookups served from directory.db."""

    def __init__(self, session_factory=None) -> None:
        self.session_factory = session_factory or DirectorySessionLocal

    def get_physician(self, physician_id: str) -> Optional[PhysicianRecord]:
        with self.session_factory() as session:
            row = session.get(Physician, physician_id)
            return row.to_record() if row else None

    def get_institution(self, institution_id: str) -> Optional[InstitutionRecord]:
        with self.session_factory() as session:
            row = session.get(Institution, institution_id)
            return row.to_record() if row else None

    def list_physicians(self) -> List[PhysicianRecord]:
        with self.session_factory() as session:
            rows = session.scalars(select(Physician).order_by(Physician.last_name.asc()))
            return [row.to_record() for row in rows]

    def list_institutions(self) -> List[InstitutionRecord]:
        with self.session_factory() as session:
            rows = session.scalars(select(Institution).order_by(Institution.name.asc()))
            return [row.to_record() for row in rows]

    def search_physicians(self, term: str) -> List[PhysicianRecord]:
        return [record for record in self.list_physicians() if matches_physician(record, term)]

    def search_institutions(self, term: str) -> List[InstitutionRecord]:
        return [record for record in self.list_institutions() if matches_institution(record, term)]


def record_audit_log(
    session,
    user_id: str,
    action: str,
    target_type: str = "RuleSet",
    target_id: Optional[int] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    log = AuditLog(
        user_id=user_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        payloadJSON=json.dumps(payload or {}),
    )
    session.add(log)
    session.commit()
    return log
