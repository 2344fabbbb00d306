import pytest

from app import create_app
from leave_system import LeaveSystem
from storage import MemoryStorage


class FakeClock:
    """Returns a fixed time so leave ids are predictable"""
    def __init__(self, start=1704067200.0):
        self.now = start

    def __call__(self):
        return self.now


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def system(storage, clock):
    return LeaveSystem(storage, clock=clock)


@pytest.fixture
def accounts(system):
    """alice the student, bob the teacher, carol the admin"""
    return {
        'alice': system.register('alice', 'pw-alice', 'student'),
        'bob': system.register('bob', 'pw-bob', 'teacher'),
        'carol': system.register('carol', 'pw-carol', 'admin'),
    }


@pytest.fixture
def client(system):
    app = create_app(state=system)
    app.config['TESTING'] = True
    return app.test_client()
