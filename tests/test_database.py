from __future__ import annotations

import datetime
import json
import unittest

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from staffing.database import (
    AssignmentStore,
    AuditLog,
    Base,
    DirectoryBase,
    RuleDocument,
    RuleSetStore,
    SqlDirectory,
    delete_assignment,
    list_assignments,
    update_assignment,
)
from staffing.draft import CommittedAssignment
from staffing.errors import NotFoundError
from staffing.rules import RuleSet
from staffing.scripts.seed_directory import seed_directory


class PersistenceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = create_engine("sqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.directory_engine = create_engine("sqlite:///:memory:", future=True)
        DirectoryBase.metadata.create_all(self.directory_engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)
        self.directory_factory = sessionmaker(bind=self.directory_engine, expire_on_commit=False, future=True)

    def tearDown(self) -> None:
        self.engine.dispose()
        self.directory_engine.dispose()


class RuleSetStoreTests(PersistenceTestCase):
    def test_load_without_document_returns_defaults(self) -> None:
        self.assertEqual(RuleSetStore(self.session_factory).load(), RuleSet())

    def test_save_then_load_round_trips(self) -> None:
        store = RuleSetStore(self.session_factory)
        rules = RuleSet()
        rules.set_business_window("07:00", "19:30")
        rules.institution_groups["North"] = {"I1", "I2"}
        rules.restrictions["P1"] = {"I1"}

        store.save(rules, edited_by="coordinator")

        self.assertEqual(store.load(), rules)

    def test_save_overwrites_single_document(self) -> None:
        store = RuleSetStore(self.session_factory)
        store.save(RuleSet())
        rules = RuleSet()
        rules.set_duration_bounds(2, 8)
        store.save(rules, edited_by="second")

        with self.session_factory() as session:
            documents = list(session.scalars(select(RuleDocument)))
            audits = list(session.scalars(select(AuditLog).where(AuditLog.action == "RULES_APPLY")))
        self.assertEqual(len(documents), 1)
        self.assertEqual(documents[0].lastEditedBy, "second")
        self.assertEqual(documents[0].params_dict()["maxShiftHours"], 8.0)
        self.assertEqual(len(audits), 2)

    def test_corrupt_document_loads_defaults(self) -> None:
        with self.session_factory() as session:
            session.add(RuleDocument(name="Golden Rules", paramsJSON="{not json"))
            session.commit()
        self.assertEqual(RuleSetStore(self.session_factory).load(), RuleSet())


class AssignmentStoreTests(PersistenceTestCase):
    def setUp(self) -> None:
        super().setUp()
        seed_directory(self.directory_factory)
        self.directory = SqlDirectory(self.directory_factory)
        self.store = AssignmentStore(self.session_factory, directory=self.directory)

    def _assignment(self, day: int = 2, physician: str = "P1") -> CommittedAssignment:
        return CommittedAssignment(
            physician_id=physician,
            institution_id="I1",
            date=datetime.date(2024, 4, day),
            start_time=540,
            end_time=720,
            group_tag="1",
        )

    def test_add_denormalises_directory_names(self) -> None:
        row = self.store(self._assignment())
        self.assertEqual(row.physician_name, "Dr. Medina")
        self.assertEqual(row.institution_name, "Hospital del Norte")
        self.assertEqual(row.start_time, "09:00")
        self.assertEqual(row.status, "Confirmed")

        with self.session_factory() as session:
            audit = session.scalars(select(AuditLog).where(AuditLog.action == "ASSIGNMENT_COMMIT")).one()
        self.assertEqual(json.loads(audit.payloadJSON)["institution_id"], "I1")

    def test_unknown_ids_are_stored_without_names(self) -> None:
        row = self.store(self._assignment(physician="P99"))
        self.assertEqual(row.physician_name, "")

    def test_list_orders_by_date_and_filters(self) -> None:
        self.store(self._assignment(day=4))
        self.store(self._assignment(day=2))
        self.store(self._assignment(day=3, physician="P2"))

        with self.session_factory() as session:
            dates = [row.date.day for row in list_assignments(session)]
            mine = list_assignments(session, physician_id="P1")
        self.assertEqual(dates, [2, 3, 4])
        self.assertEqual(len(mine), 2)

    def test_update_and_delete(self) -> None:
        row = self.store(self._assignment())
        with self.session_factory() as session:
            updated = update_assignment(session, row.id, status="Conflict", notes="double booked")
            self.assertEqual((updated.status, updated.notes), ("Conflict", "double booked"))
            with self.assertRaises(ValueError):
                update_assignment(session, row.id, status="Archived")
            delete_assignment(session, row.id)
            self.assertEqual(list_assignments(session), [])
            with self.assertRaises(NotFoundError):
                delete_assignment(session, row.id)


class DirectoryTests(PersistenceTestCase):
    def test_seed_is_idempotent(self) -> None:
        created, refreshed = seed_directory(self.directory_factory)
        self.assertEqual((created, refreshed), (10, 0))
        created, refreshed = seed_directory(self.directory_factory)
        self.assertEqual((created, refreshed), (0, 10))

    def test_lookups_and_search(self) -> None:
        seed_directory(self.directory_factory)
        directory = SqlDirectory(self.directory_factory)

        self.assertEqual(directory.get_physician("P1").last_name, "Medina")
        self.assertIsNone(directory.get_institution("I404"))
        self.assertEqual([r.id for r in directory.search_institutions("hdn")], ["I1"])
        self.assertEqual(
            {r.id for r in directory.search_institutions("norte")},
            {"I1", "I2"},
        )
        self.assertEqual([r.id for r in directory.search_physicians("laura")], ["P1"])
        self.assertEqual(len(directory.list_institutions()), 5)
