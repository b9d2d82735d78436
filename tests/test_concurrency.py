"""
Concurrent writes against one clinician slot or one appointment.

Each worker uses its own session, as separate requests would, and all of
them are released at once. The partial unique index and the row version
counter have to turn every loser into a conflict.
"""
import threading
from datetime import date, time

from carebook.core.exceptions import ConflictError
from carebook.core.security import Identity
from carebook.models.appointment import Appointment, AppointmentStatus
from carebook.schemas.appointment import AppointmentCreate
from carebook.services.appointment_service import AppointmentService

from .conftest import TestingSessionLocal

WORKERS = 5
DAY = date(2025, 3, 1)
NINE = time(9, 0)


def run_concurrently(operations):
    """
    Run each ``operation(service)`` in its own thread and session.

    Returns (successes, conflicts, errors); anything that is not a
    ConflictError lands in ``errors``.
    """
    barrier = threading.Barrier(len(operations))
    successes, conflicts, errors = [], [], []
    lock = threading.Lock()

    def worker(operation):
        session = TestingSessionLocal()
        try:
            barrier.wait()
            result = operation(AppointmentService(session))
            with lock:
                successes.append(result)
        except ConflictError as e:
            with lock:
                conflicts.append(e)
        except Exception as e:  # surfaced by the assertions below
            with lock:
                errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=worker, args=(op,)) for op in operations]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return successes, conflicts, errors


def as_identity(user):
    return Identity(actor_id=user.id, role=user.role)


def active_in_slot(db_session, clinician_id):
    db_session.expire_all()
    return (
        db_session.query(Appointment)
        .filter(
            Appointment.clinician_id == clinician_id,
            Appointment.scheduled_date == DAY,
            Appointment.scheduled_time == NINE,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        .count()
    )


class TestConcurrentBooking:

    def test_only_one_booking_wins(self, db_session, clinician, client_user):
        identity = as_identity(client_user)
        payload = AppointmentCreate(clinician_id=clinician.id, scheduled_date=DAY, scheduled_time=NINE)

        successes, conflicts, errors = run_concurrently(
            [lambda service: service.create(identity, payload).id] * WORKERS
        )

        assert errors == []
        assert len(successes) == 1
        assert len(conflicts) == WORKERS - 1
        assert active_in_slot(db_session, clinician.id) == 1

    def test_cancelled_booking_does_not_hold_slot(self, db_session, clinician, client_user):
        identity = as_identity(client_user)
        payload = AppointmentCreate(clinician_id=clinician.id, scheduled_date=DAY, scheduled_time=NINE)
        service = AppointmentService(db_session)
        first = service.create(identity, payload)
        service.cancel(identity, first.id, "Changed plans")

        successes, conflicts, errors = run_concurrently(
            [lambda service: service.create(identity, payload).id] * WORKERS
        )

        assert errors == []
        assert len(successes) == 1
        assert len(conflicts) == WORKERS - 1


class TestConcurrentAssignment:

    def test_two_pending_appointments_race_for_one_slot(
        self, db_session, coordinator, clinician, client_user, other_client
    ):
        service = AppointmentService(db_session)
        slot = dict(scheduled_date=DAY, scheduled_time=NINE)
        first = service.create(as_identity(client_user), AppointmentCreate(**slot)).id
        second = service.create(as_identity(other_client), AppointmentCreate(**slot)).id
        staff = as_identity(coordinator)

        successes, conflicts, errors = run_concurrently([
            lambda service: service.assign(staff, first, clinician.id).id,
            lambda service: service.assign(staff, second, clinician.id).id,
        ])

        assert errors == []
        assert len(successes) == 1
        assert len(conflicts) == 1
        assert active_in_slot(db_session, clinician.id) == 1


class TestConcurrentTransitions:

    def test_cancel_and_complete_on_one_appointment(self, db_session, clinician, client_user):
        owner = as_identity(client_user)
        payload = AppointmentCreate(clinician_id=clinician.id, scheduled_date=DAY, scheduled_time=NINE)
        appointment_id = AppointmentService(db_session).create(owner, payload).id

        successes, conflicts, errors = run_concurrently([
            lambda service: service.cancel(owner, appointment_id, "Cannot make it").status,
            lambda service: service.complete(as_identity(clinician), appointment_id, "Seen").status,
        ])

        assert errors == []
        assert len(successes) == 1
        assert len(conflicts) == 1

        db_session.expire_all()
        stored = db_session.query(Appointment).filter(Appointment.id == appointment_id).one()
        assert stored.status == successes[0]
        assert stored.version == 2
