# messaging/transport.py
"""
Boundary to the WhatsApp client library.

The wire protocol lives in an external library. An adapter subclasses Transport,
is constructed with the stored credentials and an ``emit`` callback, and reports
everything that happens on the connection as TransportEvent objects.
"""

import abc
import enum
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from werkzeug.utils import import_string


class EventKind(enum.Enum):
    CHALLENGE = 'challenge'
    CREDENTIALS_ROTATED = 'credentials_rotated'
    CONNECTION_OPEN = 'connection_open'
    CONNECTION_CLOSED = 'connection_closed'
    MESSAGE_RECEIVED = 'message_received'


class DisconnectReason(enum.Enum):
    LOGGED_OUT = 'logged_out'
    CONNECTION_LOST = 'connection_lost'
    CONNECTION_REPLACED = 'connection_replaced'
    TIMED_OUT = 'timed_out'
    RESTART_REQUIRED = 'restart_required'
    UNKNOWN = 'unknown'


@dataclass
class IncomingMessage:
    sender: str
    text: Optional[str] = None


@dataclass
class TransportEvent:
    """
    One callback from the transport.

    ``generation`` identifies the handle that produced the event; the supervisor
    stamps it through the emitter it hands to each new handle.
    """
    kind: EventKind
    value: Any = None
    generation: int = 0
    error: Optional[BaseException] = field(default=None, repr=False)

    @classmethod
    def challenge(cls, qr):
        return cls(EventKind.CHALLENGE, qr)

    @classmethod
    def credentials_rotated(cls, material):
        return cls(EventKind.CREDENTIALS_ROTATED, material)

    @classmethod
    def connection_open(cls):
        return cls(EventKind.CONNECTION_OPEN)

    @classmethod
    def connection_closed(cls, reason=DisconnectReason.UNKNOWN, error=None):
        return cls(EventKind.CONNECTION_CLOSED, reason, error=error)

    @classmethod
    def message_received(cls, sender, text):
        return cls(EventKind.MESSAGE_RECEIVED, IncomingMessage(sender=sender, text=text))


Emitter = Callable[[TransportEvent], None]


class Transport(abc.ABC):
    """A single connection handle owned by the session supervisor."""

    def __init__(self, credentials, emit: Emitter):
        self.credentials = credentials
        self.emit = emit

    @abc.abstractmethod
    def connect(self) -> None:
        """Open the connection; outcomes arrive later through ``emit``."""

    @abc.abstractmethod
    def send_text(self, channel_id: str, body: str) -> Any:
        """Send one text message, raising on failure."""

    @abc.abstractmethod
    def fetch_participating_channels(self) -> dict:
        """Return ``{channel_id: display_name}`` for every group the account is in."""

    def close(self) -> None:
        """Release the connection. Adapters override when they hold resources."""


def load_transport_factory(import_path):
    """Resolve ``package.module:Class`` (or dotted form) to a transport factory."""
    if not import_path:
        return None
    if callable(import_path):
        return import_path
    return import_string(import_path)
