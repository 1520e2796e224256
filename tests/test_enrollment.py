from database.models import AttendanceStatus, ClassSlot, Enrollment
from services.enrollment import NotificationAction, admin_update_seat, book_seat, cancel_seat


def _booked_slot():
    return ClassSlot(
        date="2024-06-03",
        hour="09:00",
        service_id="S1",
        capacity=2,
        enrollments=[Enrollment(student_id="s2", status=AttendanceStatus.BOOKED, price=25), Enrollment(price=25)],
    )


def test_client_books_open_seat(alice, open_slot):
    result = book_seat(open_slot, 1, alice)

    assert result.applied
    assert result.action == NotificationAction.BOOKING
    seat = result.slot.enrollments[1]
    assert seat.student_id == "s1"
    assert seat.status == AttendanceStatus.BOOKED
    assert seat.price == 25
    # исходный слот не меняется
    assert open_slot.enrollments[1].is_open


def test_booking_occupied_seat_is_ignored(alice):
    slot = _booked_slot()

    result = book_seat(slot, 0, alice)

    assert not result.applied
    assert result.action is None
    assert result.slot is slot
    assert slot.enrollments[0].student_id == "s2"


def test_booking_missing_seat_is_ignored(alice, open_slot):
    result = book_seat(open_slot, 5, alice)

    assert not result.applied
    assert result.slot is open_slot


def test_admin_cannot_use_client_booking(admin, open_slot):
    assert not book_seat(open_slot, 0, admin).applied
    assert not cancel_seat(open_slot, 0, admin).applied


def test_client_cancels_own_seat(bob):
    slot = _booked_slot()

    result = cancel_seat(slot, 0, bob)

    assert result.applied
    assert result.action == NotificationAction.CANCELLATION
    seat = result.slot.enrollments[0]
    assert seat.student_id is None
    assert seat.status == AttendanceStatus.OPEN
    assert seat.price == 25


def test_client_cannot_cancel_foreign_seat(alice):
    slot = _booked_slot()

    result = cancel_seat(slot, 0, alice)

    assert not result.applied
    assert result.slot.enrollments[0].student_id == "s2"


def test_cancel_present_seat_by_owner_releases_it(bob):
    slot = ClassSlot(date="2024-06-03", hour="09:00", service_id="S1", capacity=1,
                     enrollments=[Enrollment(student_id="s2", status=AttendanceStatus.PRESENT, price=25)])

    result = cancel_seat(slot, 0, bob)

    assert result.applied
    assert result.slot.enrollments[0].is_open


def test_admin_sets_any_status_and_student(admin, open_slot):
    result = admin_update_seat(open_slot, 0, admin, student_id="s7", status=AttendanceStatus.PRESENT)

    assert result.applied
    assert result.action is None
    seat = result.slot.enrollments[0]
    assert seat.student_id == "s7"
    assert seat.status == AttendanceStatus.PRESENT


def test_admin_status_only_keeps_student(admin):
    slot = _booked_slot()

    result = admin_update_seat(slot, 0, admin, status="absent")

    assert result.slot.enrollments[0].student_id == "s2"
    assert result.slot.enrollments[0].status == AttendanceStatus.ABSENT


def test_admin_can_clear_student(admin):
    result = admin_update_seat(_booked_slot(), 0, admin, student_id=None)

    assert result.applied
    assert result.slot.enrollments[0].student_id is None


def test_admin_update_without_changes_is_ignored(admin, open_slot):
    assert not admin_update_seat(open_slot, 0, admin).applied


def test_client_cannot_use_admin_update(alice, open_slot):
    result = admin_update_seat(open_slot, 0, alice, student_id="s1", status=AttendanceStatus.PRESENT)

    assert not result.applied
    assert result.slot is open_slot
