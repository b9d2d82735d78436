from datetime import date, time

import pytest
from sqlalchemy.exc import IntegrityError

from carebook.core.exceptions import ConflictError, SlotConflictError
from carebook.models.appointment import Appointment, AppointmentStatus
from carebook.repositories.appointment_repository import AppointmentRepository, _is_slot_violation
from carebook.services.availability_service import ConflictChecker

from .conftest import TestingSessionLocal

DAY = date(2025, 3, 1)
NINE = time(9, 0)


@pytest.fixture
def booked(db_session, clinician, client_user):
    appointment = Appointment(
        client_id=client_user.id,
        clinician_id=clinician.id,
        scheduled_date=DAY,
        scheduled_time=NINE,
        status=AppointmentStatus.ASSIGNED,
    )
    db_session.add(appointment)
    db_session.commit()
    db_session.refresh(appointment)
    return appointment


class TestConflictChecker:

    def test_free_slot(self, db_session, clinician):
        assert ConflictChecker(db_session).is_free(clinician.id, DAY, NINE)

    def test_exact_match_only(self, db_session, clinician, booked):
        checker = ConflictChecker(db_session)
        assert not checker.is_free(clinician.id, DAY, NINE)
        assert checker.is_free(clinician.id, DAY, time(9, 30))
        assert checker.is_free(clinician.id, date(2025, 3, 2), NINE)

    def test_own_appointment_excluded(self, db_session, clinician, booked):
        assert ConflictChecker(db_session).is_free(
            clinician.id, DAY, NINE, exclude_appointment_id=booked.id
        )

    def test_ensure_free_raises(self, db_session, clinician, booked):
        with pytest.raises(SlotConflictError) as exc:
            ConflictChecker(db_session).ensure_free(clinician.id, DAY, NINE)
        assert exc.value.status_code == 409

    def test_cancelled_does_not_hold_slot(self, db_session, clinician, booked):
        booked.status = AppointmentStatus.CANCELLED
        db_session.commit()
        assert ConflictChecker(db_session).is_free(clinician.id, DAY, NINE)


class TestSlotIndex:

    def test_duplicate_active_slot_rejected_at_flush(self, db_session, clinician, other_client, booked):
        repository = AppointmentRepository(db_session)
        duplicate = Appointment(
            client_id=other_client.id,
            clinician_id=clinician.id,
            scheduled_date=DAY,
            scheduled_time=NINE,
            status=AppointmentStatus.ASSIGNED,
        )
        with pytest.raises(SlotConflictError):
            repository.insert(duplicate)
        db_session.rollback()

    def test_version_increments_on_save(self, db_session, booked):
        repository = AppointmentRepository(db_session)
        assert booked.version == 1

        repository.update(booked, {"notes": "Bring referral letter", "status": AppointmentStatus.CANCELLED})
        db_session.commit()

        assert booked.version == 2
        assert booked.notes == "Bring referral letter"
        assert booked.status == AppointmentStatus.ASSIGNED

    def test_stale_write_is_a_conflict(self, db_session, booked):
        other = TestingSessionLocal()
        try:
            rival = other.query(Appointment).filter(Appointment.id == booked.id).one()

            AppointmentRepository(db_session).update(booked, {"notes": "First writer"})
            db_session.commit()

            with pytest.raises(ConflictError) as exc:
                AppointmentRepository(other).update(rival, {"notes": "Second writer"})
            assert exc.value.status_code == 409
            other.rollback()
        finally:
            other.close()


class TestSlotViolation:

    @staticmethod
    def integrity_error(message):
        return IntegrityError("INSERT INTO appointments", {}, Exception(message))

    def test_sqlite_slot_columns(self):
        assert _is_slot_violation(self.integrity_error(
            "UNIQUE constraint failed: appointments.clinician_id, "
            "appointments.scheduled_date, appointments.scheduled_time"
        ))

    def test_postgres_index_name(self):
        assert _is_slot_violation(self.integrity_error(
            'duplicate key value violates unique constraint "uq_appointments_active_slot"'
        ))

    def test_other_unique_constraints_are_not_slot_conflicts(self):
        assert not _is_slot_violation(self.integrity_error("UNIQUE constraint failed: users.email"))
        assert not _is_slot_violation(self.integrity_error(
            'duplicate key value violates unique constraint "ix_users_email"'
        ))
