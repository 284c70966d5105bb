# messaging/dispatcher.py
"""
Outbound pickup notifications.

One call sends at most one message. Nothing is queued or retried here: a retry
could notify a guardian group twice, so that decision stays with the caller.
"""

import logging

from schoolbell.errors import InvalidInput, NotConnected, TransportError

GROUP_SUFFIX = '@g.us'

MESSAGE_TEMPLATE = (
    "📚 Han llegado por:\n"
    "👦 Nombre: {full_name}\n"
    "📘 Grado: {grade}°\n"
    "👥 Grupo: {group}"
)


def is_group_channel(channel_id, suffix=GROUP_SUFFIX):
    """True for ``<local-part><suffix>`` with a non-empty local part."""
    if not channel_id or not isinstance(channel_id, str):
        return False
    return channel_id.endswith(suffix) and len(channel_id) > len(suffix)


def format_pickup_message(subject):
    """Render the notification body for a student (model instance or mapping)."""

    def field(name):
        if isinstance(subject, dict):
            return subject.get(name, '')
        return getattr(subject, name, '')

    return MESSAGE_TEMPLATE.format(
        full_name=field('full_name'),
        grade=field('grade'),
        group=field('group'),
    )


class NotificationDispatcher:
    """Sends pickup notices through the supervisor's connected handle."""

    def __init__(self, supervisor, group_suffix=GROUP_SUFFIX):
        self.supervisor = supervisor
        self.group_suffix = group_suffix
        self.logger = logging.getLogger('notification_dispatcher')

    def send(self, channel_id, subject):
        """
        Send the pickup notice for ``subject`` to the group ``channel_id``.

        Raises:
            InvalidInput: channel id is not a group address or subject is missing
            NotConnected: session is not READY; no transport call is made
            TransportError: the transport failed the send
        """
        if not is_group_channel(channel_id, self.group_suffix):
            raise InvalidInput('ID de grupo inválido', channel_id=channel_id)
        if subject is None:
            raise InvalidInput('Estudiante requerido')

        if not self.supervisor.is_ready():
            self.logger.warning(f"Notification to {channel_id} refused: session not ready")
            raise NotConnected()

        handle = self.supervisor.connected_handle()
        body = format_pickup_message(subject)

        try:
            result = handle.send_text(channel_id, body)
        except NotConnected:
            raise
        except Exception as e:
            self.logger.error(f"❌ Error sending message to group {channel_id}: {e}")
            raise TransportError(e) from e

        self.logger.info(f"✅ Message sent to group {channel_id}")
        return result
