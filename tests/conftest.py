import asyncio
import json
from collections import defaultdict

import httpx
import pytest

from cloud_api.manager import SupabaseManager
from database.manager import DatabaseManager
from database.models import Caller, ClassSlot, Enrollment, Service, UserRole
from services.persistence import PersistenceGateway
from services.studio import StudioStore

REMOTE_URL = "https://studio.supabase.test"


class FakeRemote:
    """Мини-PostgREST в памяти для httpx.MockTransport"""

    def __init__(self):
        self.tables = defaultdict(list)
        self.available = True
        self.requests = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0)
        table = request.url.path.rsplit('/', 1)[-1]
        self.requests.append((request.method, table))

        if not self.available:
            raise httpx.ConnectError("remote unavailable", request=request)

        rows = self.tables[table]

        if request.method == 'GET':
            columns = request.url.params.get('select', '*')
            if columns == '*':
                return httpx.Response(200, json=[dict(row) for row in rows])
            keys = columns.split(',')
            return httpx.Response(200, json=[{k: row[k] for k in keys if k in row} for row in rows])

        if request.method == 'POST':
            keys = request.url.params.get('on_conflict', 'id').split(',')
            for row in json.loads(request.content):
                identity = tuple(row.get(k) for k in keys)
                for i, existing in enumerate(rows):
                    if tuple(existing.get(k) for k in keys) == identity:
                        rows[i] = {**existing, **row}
                        break
                else:
                    rows.append(row)
            return httpx.Response(201)

        if request.method == 'DELETE':
            column, expression = next(iter(request.url.params.items()))
            values = {value.strip('"') for value in expression[len('in.('):-1].split(',')}
            self.tables[table] = [row for row in rows if str(row.get(column)) not in values]
            return httpx.Response(204)

        return httpx.Response(405)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, notification):
        self.sent.append(notification)
        return True


@pytest.fixture
def db(tmp_path):
    return DatabaseManager(str(tmp_path / "studio.db"))


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def remote(fake_remote):
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(fake_remote.handler),
        base_url=f"{REMOTE_URL}/rest/v1",
    )
    return SupabaseManager(url=REMOTE_URL, key="test-key", client=client)


@pytest.fixture
def gateway(db, remote):
    return PersistenceGateway(db, remote)


@pytest.fixture
def offline_gateway(db):
    return PersistenceGateway(db, None)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(offline_gateway, notifier):
    return StudioStore(gateway=offline_gateway, notifier=notifier)


@pytest.fixture
def admin():
    return Caller(role=UserRole.ADMIN, name="Ana")


@pytest.fixture
def alice():
    return Caller(role=UserRole.CLIENT, student_id="s1", name="Alice")


@pytest.fixture
def bob():
    return Caller(role=UserRole.CLIENT, student_id="s2", name="Bob")


@pytest.fixture
def pilates():
    return Service(id="S1", name="Pilates", price=25)


@pytest.fixture
def open_slot():
    return ClassSlot(
        date="2024-06-03",
        hour="09:00",
        service_id="S1",
        capacity=2,
        enrollments=[Enrollment(price=25), Enrollment(price=25)],
    )
