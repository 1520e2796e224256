import json
from dataclasses import replace
from datetime import date

import pytest

from database.manager import DatabaseManager
from database.models import AttendanceStatus, Caller, UserRole
from database.store import EXPENSES
from services.backup import BackupImportError
from services.enrollment import NotificationAction
from services.persistence import PersistenceGateway
from services.studio import StudioStore


@pytest.mark.asyncio
async def test_load_all_seeds_defaults(store):
    data = await store.load_all()

    assert [s.id for s in data.services] == ['serv1', 'serv2']
    assert [a.id for a in data.admins] == ['adm1']
    assert data.students == []
    assert data.classes == []


@pytest.mark.asyncio
async def test_load_all_skips_malformed_rows(store, db):
    db.save_snapshot('students', [{'id': 's1', 'name': 'Alice'}, {'name': 'no id'}])

    data = await store.load_all()

    assert [s.id for s in data.students] == ['s1']


@pytest.mark.asyncio
async def test_load_all_survives_damaged_class_rows(store, db):
    db.save_snapshot('students', [{'id': 's1', 'name': 'Alice'}])
    db.save_snapshot('classes', [
        {'date': '2024-06-03', 'hour': '09:00', 'capacity': 1, 'enrollments': [None, 'x', {'student_id': 's1'}]},
        {'date': '2024-06-03', 'hour': '10:00', 'capacity': -2, 'enrollments': '[{"price": 25}]'},
        {'date': '2024-06-03', 'hour': '11:00', 'capacity': 1, 'enrollments': 'not json'},
        {'date': '2024-06-03', 'hour': '12:00', 'capacity': 1, 'enrollments': 7},
        {'date': '03.06.2030', 'hour': '09:00', 'enrollments': []},
        None,
    ])

    data = await store.load_all()

    assert [s.id for s in data.students] == ['s1']
    assert [s.id for s in data.services] == ['serv1', 'serv2']
    assert [slot.hour for slot in data.classes] == ['09:00', '10:00', '11:00', '12:00']
    assert [e.student_id for e in data.classes[0].enrollments] == ['s1']
    assert data.classes[1].capacity == 0
    assert data.classes[1].enrollments[0].price == 25
    assert data.classes[2].enrollments == []
    assert data.classes[3].enrollments == []
    assert store.student_bookings('s1') == []


@pytest.mark.asyncio
async def test_batch_configure_scenario(store, admin):
    await store.load_all()

    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00', '10:00'], 3, 'serv1', admin)

    grid = store.day_grid('2024-06-03')
    configured = [slot for slot in grid if slot.service_id]
    assert len(grid) == 14
    assert [slot.hour for slot in configured] == ['09:00', '10:00']
    assert all(len(slot.enrollments) == 3 for slot in configured)
    assert all(seat.price == 25 for slot in configured for seat in slot.enrollments)

    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00', '10:00'], 2, 'serv1', admin)

    slot = store.slot('2024-06-03', '09:00')
    assert slot.capacity == 2
    assert len(slot.enrollments) == 3


@pytest.mark.asyncio
async def test_batch_configure_persists_locally(store, admin, db):
    await store.load_all()

    await store.batch_configure(date(2024, 6, 3), 'week', ['07:00'], 1, None, admin)

    assert len(db.load_snapshot('classes')) == 7


@pytest.mark.asyncio
async def test_batch_configure_ignored_for_client(store, alice):
    await store.load_all()

    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 3, 'serv1', alice)

    assert store.data.classes == []


@pytest.mark.asyncio
async def test_batch_configure_rejects_unknown_service(store, admin):
    await store.load_all()

    with pytest.raises(ValueError):
        await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 3, 'missing', admin)


@pytest.mark.asyncio
async def test_booking_and_cancellation_notify_once_each(store, notifier, admin):
    await store.load_all()
    student = await store.add_student('Alice Silva', email='alice@example.com', student_id='s1')
    caller = Caller(role=UserRole.CLIENT, student_id=student.id, name=student.name)
    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 2, 'serv1', admin)

    booked = await store.book_seat('2024-06-03', '09:00', 0, caller)

    assert booked.applied
    assert store.slot('2024-06-03', '09:00').enrollments[0].student_id == 's1'
    assert len(notifier.sent) == 1
    assert notifier.sent[0].action_type == NotificationAction.BOOKING
    assert notifier.sent[0].to_email == 'alice@example.com'
    assert notifier.sent[0].class_date == '03.06.2024'
    assert notifier.sent[0].class_time == '09:00'

    cancelled = await store.cancel_seat('2024-06-03', '09:00', 0, caller)

    assert cancelled.applied
    assert store.slot('2024-06-03', '09:00').enrollments[0].is_open
    assert len(notifier.sent) == 2
    assert notifier.sent[1].action_type == NotificationAction.CANCELLATION


@pytest.mark.asyncio
async def test_rejected_booking_sends_nothing(store, notifier, admin, alice, bob):
    await store.load_all()
    await store.ensure_student('s1', 'Alice')
    await store.ensure_student('s2', 'Bob')
    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 1, 'serv1', admin)
    await store.book_seat('2024-06-03', '09:00', 0, alice)
    notifier.sent.clear()

    taken = await store.book_seat('2024-06-03', '09:00', 0, bob)
    foreign = await store.cancel_seat('2024-06-03', '09:00', 0, bob)

    assert not taken.applied
    assert not foreign.applied
    assert notifier.sent == []
    assert store.slot('2024-06-03', '09:00').enrollments[0].student_id == 's1'


@pytest.mark.asyncio
async def test_service_price_change_keeps_seat_prices(store, admin):
    await store.load_all()
    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 1, 'serv1', admin)

    service = store.data.find_service('serv1')
    await store.update_service(replace(service, price=40))
    slot = await store.add_seat('2024-06-03', '09:00', admin)

    assert [seat.price for seat in slot.enrollments] == [25, 40]


@pytest.mark.asyncio
async def test_negative_service_price_rejected(store):
    await store.load_all()

    with pytest.raises(ValueError):
        await store.add_service('Yoga', -1)


@pytest.mark.asyncio
async def test_admin_slot_edits(store, admin):
    await store.load_all()
    await store.ensure_student('s1', 'Alice')

    slot = await store.set_slot_service('2024-06-04', '08:00', 'serv2', admin)
    assert slot.service_id == 'serv2'
    assert [seat.price for seat in slot.enrollments] == [50]

    result = await store.update_seat('2024-06-04', '08:00', 0, admin,
                                     student_id='s1', status=AttendanceStatus.PRESENT)
    assert result.applied
    assert store.slot('2024-06-04', '08:00').enrollments[0].status == AttendanceStatus.PRESENT

    slot = await store.remove_seat('2024-06-04', '08:00', 0, admin)
    assert slot.enrollments == []


@pytest.mark.asyncio
async def test_client_slot_edits_do_not_persist(store, alice, db):
    await store.load_all()

    slot = await store.set_slot_service('2024-06-04', '08:00', 'serv2', alice)

    assert slot.service_id is None
    assert store.data.classes == []
    assert db.load_snapshot('classes') is None


@pytest.mark.asyncio
async def test_export_import_round_trip(store, admin, tmp_path, notifier):
    await store.load_all()
    await store.add_student('Alice', email='alice@example.com', student_id='s1')
    await store.add_label('VIP')
    await store.add_expense('2024-06-01', 'Коврики', 120)
    await store.batch_configure(date(2024, 6, 3), 'today', ['09:00'], 2, 'serv1', admin)

    payload = json.loads(json.dumps(store.export_backup()))
    assert payload['version'] == '1.0'
    assert set(payload['data']) == {
        'students', 'admins', 'instructors', 'services', 'student_labels', 'expenses', 'classes',
    }

    other = StudioStore(gateway=PersistenceGateway(DatabaseManager(str(tmp_path / 'other.db'))), notifier=notifier)
    await other.load_all()
    await other.import_backup(payload)

    assert [s.id for s in other.data.students] == ['s1']
    assert other.data.labels[0].name == 'VIP'
    assert other.data.classes == store.data.classes
    assert other.gateway.db.load_snapshot('expenses') == store.data.rows(EXPENSES)


@pytest.mark.asyncio
async def test_broken_backup_leaves_data_untouched(store):
    await store.load_all()
    await store.add_student('Alice', student_id='s1')
    payload = store.export_backup()
    payload['data']['classes'] = [{'hour': '09:00'}]

    with pytest.raises(BackupImportError):
        await store.import_backup(payload)

    with pytest.raises(BackupImportError):
        await store.import_backup({'version': '1.0'})

    assert [s.id for s in store.data.students] == ['s1']


@pytest.mark.asyncio
async def test_student_bookings_for_client(store, admin, alice):
    await store.load_all()
    await store.ensure_student('s1', 'Alice')
    await store.batch_configure(date(2099, 1, 5), 'today', ['10:00', '09:00'], 1, 'serv1', admin)
    await store.book_seat('2099-01-05', '10:00', 0, alice)
    await store.book_seat('2099-01-05', '09:00', 0, alice)

    bookings = store.student_bookings('s1')

    assert [b['time'] for b in bookings] == ['09:00', '10:00']
    assert all(b['status'] == 'booked' for b in bookings)


@pytest.mark.asyncio
async def test_ensure_student_is_idempotent(store):
    await store.load_all()

    first = await store.ensure_student('tg42', 'Alice')
    second = await store.ensure_student('tg42', 'Alice again')

    assert first == second
    assert len(store.data.students) == 1


def test_default_store_uses_settings(monkeypatch, tmp_path):
    monkeypatch.setattr('services.studio.DATABASE_PATH', str(tmp_path / 'default.db'))

    default = StudioStore()

    assert default.gateway.db.db_path == str(tmp_path / 'default.db')
    assert isinstance(default.data.students, list)


@pytest.mark.asyncio
async def test_catalog_and_directory_commands(store, db):
    await store.load_all()

    admin_user = await store.add_admin('Maria', 'maria@studio.local', 'secret')
    instructor = await store.add_instructor('Carla Souza', 'Pilates')
    label = await store.add_label('VIP')
    yoga = await store.add_service('Yoga', 30)

    assert admin_user.id.startswith('adm')
    assert instructor.avatar_url.endswith('/Carla/200')
    assert [row['id'] for row in db.load_snapshot('admins')] == ['adm1', admin_user.id]
    assert db.load_snapshot('instructors')[0]['specialty'] == 'Pilates'

    await store.remove_label(label.id)
    await store.remove_service(yoga.id)

    assert store.data.labels == []
    assert db.load_snapshot('student_labels') == []
    assert [row['id'] for row in db.load_snapshot('services')] == ['serv1', 'serv2']
