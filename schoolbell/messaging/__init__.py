# messaging/__init__.py
from .challenge import ChallengeRelay
from .credentials import Credentials, CredentialStore
from .dispatcher import NotificationDispatcher, format_pickup_message, is_group_channel
from .session import SessionState, SessionSupervisor
from .transport import DisconnectReason, EventKind, IncomingMessage, Transport, TransportEvent

__all__ = [
    'ChallengeRelay',
    'Credentials',
    'CredentialStore',
    'NotificationDispatcher',
    'format_pickup_message',
    'is_group_channel',
    'SessionState',
    'SessionSupervisor',
    'DisconnectReason',
    'EventKind',
    'IncomingMessage',
    'Transport',
    'TransportEvent',
]
