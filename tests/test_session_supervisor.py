import os
import threading
import time

import pytest
from flask import Flask

from conftest import connect, emit
from schoolbell.errors import ConfigurationError, NotConnected
from schoolbell.messaging import DisconnectReason, SessionState, SessionSupervisor, TransportEvent

pytestmark = pytest.mark.unit


def test_start_opens_handle_and_bootstraps(supervisor, transport_factory):
    assert supervisor.start() is True

    handle = transport_factory.latest
    assert handle.connected
    assert supervisor.state is SessionState.BOOTSTRAPPING
    # Guard holds until the new handle's first callback
    assert supervisor.restart_pending()
    assert supervisor.start() is False
    assert len(transport_factory.handles) == 1


def test_challenge_then_open_reaches_ready(supervisor, transport_factory):
    supervisor.start()
    handle = transport_factory.latest

    emit(supervisor, handle, TransportEvent.challenge('2@abc,def'))
    assert supervisor.state is SessionState.AWAITING_CHALLENGE
    assert supervisor.challenges.get_challenge() == '2@abc,def'
    assert not supervisor.restart_pending()

    emit(supervisor, handle, TransportEvent.connection_open())
    assert supervisor.state is SessionState.READY
    assert supervisor.is_ready()
    assert supervisor.challenges.get_challenge() is None
    assert supervisor.connected_handle() is handle


def test_challenge_while_ready_is_recorded_only(supervisor, transport_factory):
    handle = connect(supervisor, transport_factory)

    emit(supervisor, handle, TransportEvent.challenge('late-qr'))

    assert supervisor.state is SessionState.READY
    assert supervisor.challenges.get_challenge() == 'late-qr'


def test_credentials_rotation_is_persisted(supervisor, transport_factory, credential_store):
    handle = connect(supervisor, transport_factory)

    emit(supervisor, handle, TransportEvent.credentials_rotated({'creds': {'me': '5215500000000'}}))
    emit(supervisor, handle, TransportEvent.credentials_rotated({'app-state-sync-key-1': {'k': 'v'}}))

    stored = credential_store.load()
    assert stored.material == {
        'creds': {'me': '5215500000000'},
        'app-state-sync-key-1': {'k': 'v'},
    }
    assert stored.rotation == 2
    assert supervisor.state is SessionState.READY


def test_bootstrap_hands_stored_credentials_to_transport(supervisor, transport_factory, credential_store):
    credential_store.save({'creds': {'me': '5215500000000'}})

    supervisor.start()

    credentials = transport_factory.latest.credentials
    assert credentials.is_registered
    assert credentials.material['creds'] == {'me': '5215500000000'}


def test_connection_lost_schedules_one_restart(supervisor, transport_factory, timers):
    handle = connect(supervisor, transport_factory)

    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.CONNECTION_LOST))

    assert supervisor.state is SessionState.OFFLINE
    assert handle.closed
    assert len(timers.timers) == 1
    assert timers.timers[0].interval == 5.0
    assert timers.timers[0].started
    assert supervisor.restart_pending()
    with pytest.raises(NotConnected):
        supervisor.connected_handle()


def test_overlapping_disconnects_coalesce(supervisor, transport_factory, timers):
    handle = connect(supervisor, transport_factory)

    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.CONNECTION_LOST))
    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.TIMED_OUT))
    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.CONNECTION_REPLACED))
    assert supervisor.start() is False

    assert len(timers.timers) == 1
    assert supervisor.scheduled_restarts == 1
    assert len(transport_factory.handles) == 1


def test_restart_timer_builds_fresh_handle(supervisor, transport_factory, timers):
    first = connect(supervisor, transport_factory)
    emit(supervisor, first, TransportEvent.connection_closed(DisconnectReason.RESTART_REQUIRED))

    assert timers.timers[0].fire() is True

    second = transport_factory.latest
    assert second is not first
    assert supervisor.state is SessionState.BOOTSTRAPPING
    assert supervisor.status()['generation'] == 2

    emit(supervisor, second, TransportEvent.connection_open())
    assert supervisor.connected_handle() is second
    assert not supervisor.restart_pending()


def test_events_from_stale_handle_are_dropped(supervisor, transport_factory, timers):
    first = connect(supervisor, transport_factory)
    emit(supervisor, first, TransportEvent.connection_closed(DisconnectReason.CONNECTION_LOST))
    timers.timers[0].fire()

    emit(supervisor, first, TransportEvent.connection_open())
    emit(supervisor, first, TransportEvent.connection_closed(DisconnectReason.CONNECTION_LOST))

    assert supervisor.state is SessionState.BOOTSTRAPPING
    assert len(timers.timers) == 1


def test_logout_erases_credentials_before_next_start(supervisor, transport_factory, timers, credential_store):
    handle = connect(supervisor, transport_factory)
    emit(supervisor, handle, TransportEvent.credentials_rotated({'creds': {'me': '5215500000000'}}))
    assert credential_store.exists()

    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.LOGGED_OUT))

    assert not credential_store.exists()
    assert supervisor.state is SessionState.OFFLINE
    assert len(timers.timers) == 1

    timers.timers[0].fire()
    assert not transport_factory.latest.credentials.is_registered


def test_logout_while_restart_pending_still_erases(supervisor, transport_factory, timers, credential_store):
    handle = connect(supervisor, transport_factory)
    emit(supervisor, handle, TransportEvent.credentials_rotated({'creds': {'me': '5215500000000'}}))

    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.CONNECTION_LOST))
    emit(supervisor, handle, TransportEvent.connection_closed(DisconnectReason.LOGGED_OUT))

    assert not credential_store.exists()
    assert len(timers.timers) == 1


def test_bootstrap_failure_is_retried(supervisor, transport_factory, timers):
    transport_factory.failures_left = 1

    assert supervisor.start() is False

    assert supervisor.state is SessionState.OFFLINE
    assert len(timers.timers) == 1
    assert supervisor.restart_pending()

    assert timers.timers[0].fire() is True
    assert supervisor.state is SessionState.BOOTSTRAPPING
    assert transport_factory.latest.connected


def test_missing_transport_is_retried_not_fatal(supervisor, timers):
    supervisor.transport_factory = None

    assert supervisor.start() is False
    assert len(timers.timers) == 1


def test_auto_reply_to_trigger_text(supervisor, transport_factory):
    handle = connect(supervisor, transport_factory)

    emit(supervisor, handle, TransportEvent.message_received('5215511112222@s.whatsapp.net', '  Hola '))
    emit(supervisor, handle, TransportEvent.message_received('5215511112222@s.whatsapp.net', 'buenos días'))

    assert handle.sent == [('5215511112222@s.whatsapp.net', 'Hola, estoy activo 🤖')]


def test_no_auto_reply_before_ready(supervisor, transport_factory):
    supervisor.start()
    handle = transport_factory.latest

    emit(supervisor, handle, TransportEvent.message_received('5215511112222@s.whatsapp.net', 'hola'))

    assert handle.sent == []


def test_channel_enumeration_failure_is_not_fatal(supervisor, transport_factory):
    supervisor.start()
    handle = transport_factory.latest

    def broken():
        raise RuntimeError('groups unavailable')

    handle.fetch_participating_channels = broken
    emit(supervisor, handle, TransportEvent.connection_open())

    assert supervisor.is_ready()


def test_stop_worker_releases_handle(supervisor, transport_factory):
    handle = connect(supervisor, transport_factory)

    supervisor.stop_worker()

    assert handle.closed
    assert supervisor.state is SessionState.OFFLINE


def test_worker_thread_consumes_events(supervisor, transport_factory):
    supervisor.start_worker()
    try:
        supervisor.start()
        transport_factory.latest.emit(TransportEvent.connection_open())

        deadline = time.time() + 3
        while not supervisor.is_ready() and time.time() < deadline:
            time.sleep(0.01)

        assert supervisor.is_ready()
    finally:
        supervisor.stop_worker()


def test_status_reports_session(supervisor, transport_factory):
    connect(supervisor, transport_factory)

    status = supervisor.status()

    assert status['state'] == 'ready'
    assert status['ready'] is True
    assert status['challenge_available'] is False
    assert status['transport_configured'] is True


def test_init_app_requires_auth_dir():
    app = Flask(__name__)
    app.config['WHATSAPP_AUTH_DIR'] = ''

    with pytest.raises(ConfigurationError):
        SessionSupervisor().init_app(app)


def test_init_app_autostarts_with_transport(tmp_path, transport_factory):
    app = Flask(__name__)
    app.config.update(
        WHATSAPP_AUTH_DIR=str(tmp_path / 'auth'),
        WHATSAPP_TRANSPORT=transport_factory,
        WHATSAPP_AUTOSTART=True,
        WHATSAPP_RESTART_DELAY=0,
    )

    supervisor = SessionSupervisor(app)
    try:
        assert app.extensions['session_supervisor'] is supervisor
        assert supervisor.state is SessionState.BOOTSTRAPPING
        assert transport_factory.latest.connected
    finally:
        supervisor.stop_worker()


def test_readiness_queries_do_not_wait_for_connect(supervisor, transport_factory):
    entered = threading.Event()
    release = threading.Event()

    def blocking_factory(credentials, emit):
        handle = transport_factory(credentials, emit)

        def connect():
            entered.set()
            release.wait(timeout=5)
            handle.connected = True

        handle.connect = connect
        return handle

    supervisor.transport_factory = blocking_factory
    starter = threading.Thread(target=supervisor.start)
    starter.start()
    try:
        assert entered.wait(timeout=5)

        began = time.monotonic()
        assert supervisor.is_ready() is False
        status = supervisor.status()
        waited = time.monotonic() - began

        assert waited < 0.5
        assert status['state'] == 'bootstrapping'
    finally:
        release.set()
        starter.join(timeout=5)

    assert transport_factory.latest.connected


def test_unreadable_credentials_schedule_retry(supervisor, transport_factory, timers, credential_store):
    os.makedirs(credential_store.auth_dir, exist_ok=True)
    with open(os.path.join(credential_store.auth_dir, 'creds.json'), 'w', encoding='utf-8') as f:
        f.write('{not json')

    assert supervisor.start() is False

    assert supervisor.state is SessionState.OFFLINE
    assert transport_factory.handles == []
    assert len(timers.timers) == 1
    assert supervisor.restart_pending()
