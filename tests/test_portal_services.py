import tempfile
import unittest
from datetime import date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from freezegun import freeze_time
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from portal.core.time_provider import TimeProvider
from portal.db import Base
from portal.domain.shuttle_run import RunState, RunTransitionError, next_run_state
from portal.models import (
    AdminProfile,
    Bus,
    Driver,
    Parent,
    PortalRequest,
    SchoolClass,
    ShuttleRun,
    Student,
    Teacher,
    TeacherClass,
    TransportTimeSlot,
)
from portal.services.class_service import can_access_class, list_accessible_classes
from portal.services.identity_service import IdentityRole, resolve_identity
from portal.services.portal_request_service import (
    PortalRequestValidationError,
    build_request_payload,
    list_parent_requests,
    serialize_request,
    submit_portal_request,
)
from portal.services.shuttle_run_service import advance_run, get_run


KST = ZoneInfo('Asia/Seoul')


class FixedTimeProvider(TimeProvider):
    def __init__(self, frozen_dt: datetime):
        self._frozen_dt = frozen_dt

    def now(self) -> datetime:
        return self._frozen_dt


class _DatabaseTestCase(unittest.TestCase):
    db_name = 'test_portal_services.db'

    @classmethod
    def setUpClass(cls):
        cls._tmpdir = tempfile.TemporaryDirectory()
        db_path = Path(cls._tmpdir.name) / cls.db_name
        cls._engine = create_engine(f"sqlite:///{db_path}", connect_args={'check_same_thread': False})
        cls._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=cls._engine)
        Base.metadata.create_all(bind=cls._engine)

    @classmethod
    def tearDownClass(cls):
        cls._engine.dispose()
        cls._tmpdir.cleanup()

    def setUp(self):
        db = self._session_factory()
        try:
            for model in (
                PortalRequest,
                ShuttleRun,
                TeacherClass,
                Student,
                Parent,
                Driver,
                Bus,
                TransportTimeSlot,
                Teacher,
                AdminProfile,
                SchoolClass,
            ):
                db.query(model).delete()
            db.commit()
        finally:
            db.close()


class BuildRequestPayloadTests(unittest.TestCase):
    def test_absence_range(self):
        payload = build_request_payload('absence', date_start='2026-03-10', date_end='2026-03-12', note=' sick ')
        self.assertEqual(payload, {'dateStart': '2026-03-10', 'dateEnd': '2026-03-12', 'note': 'sick'})

    def test_rejects_missing_or_reversed_dates(self):
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('absence', date_start=None)
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('absence', date_start='2026-03-10', date_end='2026-03-09')
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('absence', date_start='2026-03-10', date_end='tomorrow')

    def test_early_pickup_needs_time(self):
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('early_pickup', date_start='2026-03-10')
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('early_pickup', date_start='2026-03-10', time='3pm')
        payload = build_request_payload('early_pickup', date_start=date(2026, 3, 10), time='14:30')
        self.assertEqual(payload['time'], '14:30')

    def test_bus_change_needs_known_change_type(self):
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('bus_change', date_start='2026-03-10', change_type='teleport')
        payload = build_request_payload('bus_change', date_start='2026-03-10', change_type='no_bus')
        self.assertEqual(payload['changeType'], 'no_bus')

    def test_unknown_type(self):
        with self.assertRaises(PortalRequestValidationError):
            build_request_payload('holiday', date_start='2026-03-10')


class PortalRequestServiceTests(_DatabaseTestCase):
    db_name = 'test_portal_requests.db'

    def test_submit_and_list_newest_first(self):
        db = self._session_factory()
        try:
            parent = Parent(name='Parent', phone='010')
            other = Parent(name='Other', phone='011')
            db.add_all([parent, other])
            db.flush()
            child = Student(student_name='Child', parent_id=parent.id)
            stranger = Student(student_name='Stranger', parent_id=other.id)
            db.add_all([child, stranger])
            db.commit()

            first = submit_portal_request(
                db,
                parent_id=parent.id,
                student_id=child.id,
                request_type='absence',
                date_start='2026-03-10',
                time_provider=FixedTimeProvider(datetime(2026, 3, 9, 8, 0, tzinfo=KST)),
            )
            second = submit_portal_request(
                db,
                parent_id=parent.id,
                student_id=child.id,
                request_type='early_pickup',
                date_start='2026-03-11',
                time='13:00',
                time_provider=FixedTimeProvider(datetime(2026, 3, 9, 9, 0, tzinfo=KST)),
            )
            self.assertEqual(first.status, 'pending')
            rows = list_parent_requests(db, parent.id)
            self.assertEqual([row.id for row in rows], [second.id, first.id])
            self.assertEqual(serialize_request(rows[0])['payload'], {'dateStart': '2026-03-11', 'time': '13:00'})
            self.assertEqual(list_parent_requests(db, other.id), [])

            with self.assertRaises(PermissionError):
                submit_portal_request(
                    db,
                    parent_id=parent.id,
                    student_id=stranger.id,
                    request_type='absence',
                    date_start='2026-03-10',
                )
            with self.assertRaises(LookupError):
                submit_portal_request(db, parent_id=parent.id, student_id=99999, request_type='absence', date_start='2026-03-10')
        finally:
            db.close()


class ShuttleRunTests(_DatabaseTestCase):
    db_name = 'test_shuttle_runs.db'

    def test_state_machine(self):
        self.assertEqual(next_run_state('idle'), RunState.RUNNING)
        self.assertEqual(next_run_state(RunState.RUNNING), RunState.ENDED)
        with self.assertRaises(RunTransitionError):
            next_run_state('ended')

    @freeze_time('2026-03-10 00:30:00')
    def test_advance_moves_today_run_forward_until_ended(self):
        db = self._session_factory()
        try:
            bus = Bus(label='Bus 1')
            slot = TransportTimeSlot(route_type='pickup', label='Morning', departure_time='08:00')
            db.add_all([bus, slot])
            db.commit()

            run = advance_run(db, bus.id, slot.id)
            self.assertEqual(run.state, 'running')
            self.assertEqual(run.run_date, date(2026, 3, 10))
            self.assertEqual(run.started_at, datetime(2026, 3, 10, 0, 30))

            run = advance_run(db, bus.id, slot.id)
            self.assertEqual(run.state, 'ended')
            self.assertIsNotNone(run.ended_at)

            with self.assertRaises(RunTransitionError):
                advance_run(db, bus.id, slot.id)
            self.assertEqual(db.query(ShuttleRun).count(), 1)
            self.assertIsNone(get_run(db, bus.id, slot.id, date(2026, 3, 11)))
        finally:
            db.close()


class IdentityAndClassScopeTests(_DatabaseTestCase):
    db_name = 'test_identity.db'

    def test_priority_and_master_flag(self):
        db = self._session_factory()
        try:
            bus = Bus(label='Bus 3')
            db.add(bus)
            db.flush()
            db.add_all(
                [
                    AdminProfile(auth_user_id='u-both', name='Boss'),
                    Teacher(auth_user_id='u-both', name='Boss Teacher'),
                    Teacher(auth_user_id='u-master', name='Master', role='master_teacher'),
                    Driver(auth_user_id='u-driver', name='Driver', bus_id=bus.id),
                    Parent(auth_user_id='u-driver', name='Driver as parent'),
                    Parent(auth_user_id='u-parent', name='Parent'),
                ]
            )
            db.commit()

            self.assertEqual(resolve_identity(db, 'u-both').role, IdentityRole.ADMIN)
            master = resolve_identity(db, 'u-master')
            self.assertEqual(master.role, IdentityRole.TEACHER)
            self.assertTrue(master.is_master)
            driver = resolve_identity(db, 'u-driver')
            self.assertEqual(driver.role, IdentityRole.DRIVER)
            self.assertEqual(driver.bus_id, bus.id)
            self.assertEqual(resolve_identity(db, 'u-parent').role, IdentityRole.PARENT)
            self.assertFalse(resolve_identity(db, 'nobody').is_known)
            self.assertFalse(resolve_identity(db, '').is_known)
        finally:
            db.close()

    def test_teacher_sees_only_coached_classes(self):
        db = self._session_factory()
        try:
            maple = SchoolClass(name='Maple')
            oak = SchoolClass(name='Oak')
            teacher = Teacher(auth_user_id='u-teacher', name='T')
            admin = AdminProfile(auth_user_id='u-admin', name='A')
            db.add_all([maple, oak, teacher, admin])
            db.flush()
            db.add(TeacherClass(teacher_id=teacher.id, class_id=oak.id))
            db.commit()

            teacher_identity = resolve_identity(db, 'u-teacher')
            admin_identity = resolve_identity(db, 'u-admin')
            self.assertEqual([row.name for row in list_accessible_classes(db, teacher_identity)], ['Oak'])
            self.assertEqual([row.name for row in list_accessible_classes(db, admin_identity)], ['Maple', 'Oak'])
            self.assertTrue(can_access_class(db, teacher_identity, oak.id))
            self.assertFalse(can_access_class(db, teacher_identity, maple.id))
            self.assertTrue(can_access_class(db, admin_identity, maple.id))
        finally:
            db.close()


if __name__ == '__main__':
    unittest.main()
