# messaging/challenge.py
import threading


class ChallengeRelay:
    """Single slot holding the latest QR challenge; last write wins."""

    def __init__(self):
        self._value = None
        self._lock = threading.Lock()

    def set_challenge(self, value):
        with self._lock:
            self._value = value

    def get_challenge(self):
        """Return the current challenge or None when there is none."""
        with self._lock:
            return self._value

    def clear(self):
        self.set_challenge(None)
