import pytest

from schoolbell import create_app
from schoolbell.extensions import db
from schoolbell.messaging import CredentialStore, SessionSupervisor, Transport, TransportEvent
from schoolbell.models import GuardianLink, Student


# ==================== Pytest Markers ====================
def pytest_configure(config):
    """Register custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (database, API)")


# ==================== Fakes ====================
class FakeTransport(Transport):
    """In-memory connection handle that records what the supervisor asks of it."""

    def __init__(self, credentials, emit, fail_connect=False):
        super().__init__(credentials, emit)
        self.fail_connect = fail_connect
        self.fail_send = None
        self.channels = {'120363416896007690@g.us': '1°A Primaria'}
        self.connected = False
        self.closed = False
        self.sent = []

    def connect(self):
        if self.fail_connect:
            raise ConnectionError('cannot reach WhatsApp')
        self.connected = True

    def send_text(self, channel_id, body):
        if self.fail_send is not None:
            raise self.fail_send
        self.sent.append((channel_id, body))
        return {'status': 'sent'}

    def fetch_participating_channels(self):
        return dict(self.channels)

    def close(self):
        self.closed = True


class FakeTransportFactory:
    """Builds FakeTransport handles and keeps every one it built."""

    def __init__(self):
        self.handles = []
        self.failures_left = 0

    def __call__(self, credentials, emit):
        fail = self.failures_left > 0
        if fail:
            self.failures_left -= 1
        handle = FakeTransport(credentials, emit, fail_connect=fail)
        self.handles.append(handle)
        return handle

    @property
    def latest(self):
        return self.handles[-1]


class FakeTimer:
    """Stands in for threading.Timer; fires only when the test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False

    def start(self):
        self.started = True

    def fire(self):
        return self.function()


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer


def emit(supervisor, handle, event):
    """Deliver one transport event and let the supervisor consume it."""
    handle.emit(event)
    supervisor.process_pending()


def connect(supervisor, factory):
    """Drive a supervisor from OFFLINE to READY."""
    supervisor.start()
    handle = factory.latest
    emit(supervisor, handle, TransportEvent.connection_open())
    return handle


# ==================== Fixtures ====================
@pytest.fixture()
def transport_factory():
    return FakeTransportFactory()


@pytest.fixture()
def timers():
    return TimerRecorder()


@pytest.fixture()
def credential_store(tmp_path):
    return CredentialStore(str(tmp_path / 'auth_info'))


@pytest.fixture()
def supervisor(credential_store, transport_factory, timers):
    """A supervisor wired to fakes, driven synchronously through process_pending()."""
    supervisor = SessionSupervisor()
    supervisor.credential_store = credential_store
    supervisor.transport_factory = transport_factory
    supervisor.timer_factory = timers
    supervisor.restart_delay = 5.0
    return supervisor


@pytest.fixture()
def app(credential_store, transport_factory, timers):
    """Create application for testing."""
    app = create_app('testing')

    supervisor = app.extensions['session_supervisor']
    supervisor.credential_store = credential_store
    supervisor.transport_factory = transport_factory
    supervisor.timer_factory = timers

    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def app_supervisor(app):
    return app.extensions['session_supervisor']


@pytest.fixture()
def enrolled(app):
    """One student with a guardian whose notices go to a dedicated group."""
    student = Student(
        enrollment_id='S1',
        full_name='Ana López',
        grade='3',
        group='B',
        level='Primaria'
    )
    guardian = GuardianLink(
        qr_code='PADRE-001',
        student_enrollment_id='S1',
        full_name='María López',
        address='Calle 5 #12',
        phone='5512345678',
        channel_id='120363000000000001@g.us'
    )
    db.session.add(student)
    db.session.add(guardian)
    db.session.commit()
    return student, guardian
