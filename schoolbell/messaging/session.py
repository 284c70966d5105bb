# messaging/session.py
"""
WhatsApp session supervisor.

Owns the single long-lived connection handle and its lifecycle:

    OFFLINE -> BOOTSTRAPPING -> AWAITING_CHALLENGE -> READY
                     ^                                  |
                     +---- restart after delay <--------+  (connection closed)

Transport callbacks never touch state directly. They are queued and consumed by
one worker thread, and every state change happens under ``self._lock``. Restarts
are coalesced: while one is scheduled or in flight, further disconnects do not
arm another timer.
"""

import atexit
import enum
import logging
import queue
import threading

from schoolbell.errors import ConfigurationError, NotConnected
from schoolbell.messaging.challenge import ChallengeRelay
from schoolbell.messaging.credentials import CredentialStore
from schoolbell.messaging.transport import (
    DisconnectReason,
    EventKind,
    load_transport_factory,
)


class SessionState(enum.Enum):
    OFFLINE = 'offline'
    BOOTSTRAPPING = 'bootstrapping'
    AWAITING_CHALLENGE = 'awaiting_challenge'
    READY = 'ready'
    LOGGED_OUT = 'logged_out'


class SessionSupervisor:
    def __init__(self, app=None):
        self.app = None
        self.logger = logging.getLogger('session_supervisor')
        self.challenges = ChallengeRelay()
        self.credential_store = None
        self.transport_factory = None
        self.restart_delay = 5.0
        self.auto_reply_trigger = 'hola'
        self.auto_reply_text = 'Hola, estoy activo 🤖'
        self.timer_factory = threading.Timer

        self.worker_thread = None
        self.running = False
        self._shutdown_event = threading.Event()
        self._events = queue.Queue()
        self._lock = threading.RLock()

        self._state = SessionState.OFFLINE
        self._handle = None
        self._generation = 0
        self._restart_in_progress = False
        self._awaiting_first_callback = False
        self.scheduled_restarts = 0

        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        """Bind configuration; start the session when autostart is enabled."""
        auth_dir = app.config.get('WHATSAPP_AUTH_DIR')
        if not auth_dir:
            raise ConfigurationError("WHATSAPP_AUTH_DIR must be configured to store the WhatsApp session")

        self.app = app
        self.credential_store = CredentialStore(auth_dir)
        self.transport_factory = load_transport_factory(app.config.get('WHATSAPP_TRANSPORT'))
        self.restart_delay = float(app.config.get('WHATSAPP_RESTART_DELAY', 5))
        self.auto_reply_trigger = (app.config.get('WHATSAPP_AUTO_REPLY_TRIGGER') or 'hola').lower()
        self.auto_reply_text = app.config.get('WHATSAPP_AUTO_REPLY_TEXT', self.auto_reply_text)
        app.extensions['session_supervisor'] = self

        if not app.config.get('WHATSAPP_AUTOSTART', False):
            self.logger.info("WhatsApp session autostart disabled")
            return

        if self.transport_factory is None:
            self.logger.warning("WHATSAPP_TRANSPORT not set; WhatsApp notifications are disabled")
            return

        self.start_worker()
        self.start()
        atexit.register(self.stop_worker)

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def start_worker(self):
        """Start the event consumer thread."""
        if self.worker_thread is None or not self.worker_thread.is_alive():
            self.running = True
            self._shutdown_event.clear()
            self.worker_thread = threading.Thread(
                target=self._process_events,
                daemon=True,
                name="WhatsAppSession"
            )
            self.worker_thread.start()
            self.logger.info("WhatsApp session worker started")

    def stop_worker(self):
        """Stop consuming events and release the connection."""
        self.running = False
        self._shutdown_event.set()

        if self.worker_thread and self.worker_thread.is_alive():
            self.worker_thread.join(timeout=5)
            if self.worker_thread.is_alive():
                self.logger.warning("WhatsApp session worker did not shut down gracefully")

        with self._lock:
            handle = self._detach_handle()
            self._state = SessionState.OFFLINE
        self._close_handle(handle)
        self.logger.info("WhatsApp session stopped")

    def _process_events(self):
        while self.running and not self._shutdown_event.is_set():
            try:
                event = self._events.get(timeout=1.0)
            except queue.Empty:
                continue

            try:
                self.handle_event(event)
            except Exception as e:
                self.logger.error(f"Error handling {event.kind.value} event: {e}", exc_info=True)

    def process_pending(self):
        """Drain queued events on the calling thread. Returns how many were handled."""
        handled = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                return handled
            self.handle_event(event)
            handled += 1

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """
        Open a new connection unless a restart is already in progress.

        Returns True when a handle was opened, False when the call was ignored or
        bootstrapping failed (a retry is then scheduled).
        """
        with self._lock:
            if self._restart_in_progress:
                self.logger.info("Start ignored: a WhatsApp restart is already in progress")
                return False
            self._restart_in_progress = True
        return self._bootstrap()

    def _restart(self):
        """Timer target for a scheduled restart; the guard flag is already held."""
        if self._shutdown_event.is_set():
            with self._lock:
                self._restart_in_progress = False
            return False
        self.logger.info("Restarting WhatsApp session")
        return self._bootstrap()

    def _bootstrap(self):
        # Only bookkeeping happens under the lock; disk reads, connect() and
        # close() run outside it so readiness queries never wait on the network.
        with self._lock:
            stale = self._detach_handle()
            self._generation += 1
            generation = self._generation
            self._state = SessionState.BOOTSTRAPPING
            self._awaiting_first_callback = True
        self._close_handle(stale)

        handle = None
        try:
            if self.transport_factory is None:
                raise ConfigurationError("No WhatsApp transport configured")

            credentials = self.credential_store.load()
            handle = self.transport_factory(credentials, self._emitter(generation))

            with self._lock:
                if generation != self._generation:
                    self.logger.info(f"Bootstrap generation {generation} superseded; discarding handle")
                    superseded = True
                else:
                    self._handle = handle
                    superseded = False
            if superseded:
                self._close_handle(handle)
                return False

            handle.connect()
        except Exception as e:
            self.logger.error(f"Error starting WhatsApp session: {e}", exc_info=True)
            with self._lock:
                # Once the handle has called back, its events drive recovery instead
                current = generation == self._generation and self._awaiting_first_callback
                if self._handle is handle:
                    self._handle = None
                if current:
                    self._state = SessionState.OFFLINE
                    self._awaiting_first_callback = False
                    self._restart_in_progress = False
            self._close_handle(handle)
            if current:
                self._schedule_restart('bootstrap failed')
            return False

        self.logger.info(
            f"WhatsApp session bootstrapping (generation {generation}, "
            f"{'stored' if credentials.is_registered else 'new'} credentials)"
        )
        return True

    def _schedule_restart(self, reason):
        """Arm one restart timer unless a restart is already pending."""
        with self._lock:
            if self._restart_in_progress:
                self.logger.debug(f"Restart already pending; coalescing ({reason})")
                return False
            if self._shutdown_event.is_set():
                return False

            self._restart_in_progress = True
            self.scheduled_restarts += 1
            timer = self.timer_factory(self.restart_delay, self._restart)
            timer.daemon = True
            timer.start()

        self.logger.info(f"🔁 Reconnecting WhatsApp in {self.restart_delay:g}s ({reason})")
        return True

    def _emitter(self, generation):
        def emit(event):
            event.generation = generation
            self._events.put(event)

        return emit

    def _detach_handle(self):
        """Forget the current handle; the caller closes it after releasing the lock."""
        handle, self._handle = self._handle, None
        return handle

    def _close_handle(self, handle):
        if handle is None:
            return
        try:
            handle.close()
        except Exception as e:
            self.logger.warning(f"Error closing WhatsApp handle: {e}")

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def handle_event(self, event):
        """Apply one transport event to the state machine."""
        followup = None

        with self._lock:
            if event.generation != self._generation:
                self.logger.debug(
                    f"Dropping {event.kind.value} from stale handle "
                    f"(generation {event.generation}, current {self._generation})"
                )
                return

            if self._awaiting_first_callback:
                self._awaiting_first_callback = False
                self._restart_in_progress = False

            if event.kind is EventKind.CHALLENGE:
                self._on_challenge(event.value)
            elif event.kind is EventKind.CREDENTIALS_ROTATED:
                self._on_credentials_rotated(event.value)
            elif event.kind is EventKind.CONNECTION_OPEN:
                followup = self._on_connection_open()
            elif event.kind is EventKind.CONNECTION_CLOSED:
                followup = self._on_connection_closed(event.value, event.error)
            elif event.kind is EventKind.MESSAGE_RECEIVED:
                followup = self._on_message(event.value)

        if followup is not None:
            followup()

    def _on_challenge(self, qr):
        self.challenges.set_challenge(qr)
        if self._state is SessionState.READY:
            self.logger.info("QR challenge received while connected; recorded only")
            return
        self._state = SessionState.AWAITING_CHALLENGE
        self.logger.info("📱 New WhatsApp QR challenge available")

    def _on_credentials_rotated(self, material):
        try:
            self.credential_store.save(material or {})
        except (OSError, ValueError, TypeError) as e:
            self.logger.error(f"Failed to persist rotated credentials: {e}", exc_info=True)

    def _on_connection_open(self):
        self._state = SessionState.READY
        self.challenges.clear()
        self.logger.info("✅ WhatsApp session connected")

        handle = self._handle
        return lambda: self._log_participating_channels(handle)

    def _on_connection_closed(self, reason, error=None):
        reason = reason or DisconnectReason.UNKNOWN
        handle = self._detach_handle()
        self.logger.error(f"❌ WhatsApp connection closed ({reason.value}): {error or 'no error detail'}")

        if reason is DisconnectReason.LOGGED_OUT:
            self._state = SessionState.LOGGED_OUT
            self.logger.warning("🚫 Session logged out; erasing stored credentials")
            try:
                self.credential_store.erase()
            except OSError as e:
                self.logger.error(f"Failed to erase credentials: {e}", exc_info=True)

        self._state = SessionState.OFFLINE
        self._schedule_restart(reason.value)
        return lambda: self._close_handle(handle)

    def _on_message(self, message):
        if message is None or not message.text:
            return None
        if message.text.strip().lower() != self.auto_reply_trigger:
            return None
        if self._state is not SessionState.READY or self._handle is None:
            return None

        handle = self._handle

        def reply():
            try:
                handle.send_text(message.sender, self.auto_reply_text)
            except Exception as e:
                self.logger.error(f"Auto-reply to {message.sender} failed: {e}")

        return reply

    def _log_participating_channels(self, handle):
        if handle is None:
            return
        try:
            channels = handle.fetch_participating_channels() or {}
        except Exception as e:
            self.logger.error(f"❌ Error fetching groups: {e}")
            return

        self.logger.info(f"🔍 {len(channels)} groups found")
        for channel_id, name in channels.items():
            self.logger.info(f"Group ID: {channel_id}, Name: {name}")

    # ------------------------------------------------------------------
    # Queries used by the rest of the application
    # ------------------------------------------------------------------

    @property
    def state(self):
        with self._lock:
            return self._state

    def is_ready(self):
        with self._lock:
            return self._state is SessionState.READY

    def restart_pending(self):
        with self._lock:
            return self._restart_in_progress

    def connected_handle(self):
        """Return the live handle, or raise NotConnected when the session is not READY."""
        with self._lock:
            if self._state is not SessionState.READY or self._handle is None:
                raise NotConnected()
            return self._handle

    def status(self):
        with self._lock:
            return {
                'state': self._state.value,
                'ready': self._state is SessionState.READY,
                'challenge_available': self.challenges.get_challenge() is not None,
                'restart_in_progress': self._restart_in_progress,
                'generation': self._generation,
                'scheduled_restarts': self.scheduled_restarts,
                'transport_configured': self.transport_factory is not None,
            }
