# messaging/credentials.py
"""
Durable store for the WhatsApp session material.

Layout under the auth directory: one ``<name>.json`` file per credential entry
and ``rotation.json`` holding the rotation counter. Writes go through a temporary
file and ``os.replace`` so a crash leaves either the old or the new entry.
"""

import json
import logging
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass, field

ROTATION_FILE = 'rotation.json'


@dataclass
class Credentials:
    material: dict = field(default_factory=dict)
    rotation: int = 0

    @property
    def is_registered(self):
        """True once a previous session has stored any material."""
        return bool(self.material)


class CredentialStore:
    """Single-writer store for session credentials."""

    def __init__(self, auth_dir):
        self.auth_dir = os.path.abspath(auth_dir)
        self.logger = logging.getLogger('credential_store')
        self._lock = threading.Lock()

    def load(self):
        """Read every stored entry. Raises OSError/ValueError on unreadable files."""
        with self._lock:
            os.makedirs(self.auth_dir, exist_ok=True)
            material = {}
            rotation = 0
            for filename in sorted(os.listdir(self.auth_dir)):
                if not filename.endswith('.json'):
                    continue
                path = os.path.join(self.auth_dir, filename)
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if filename == ROTATION_FILE:
                    rotation = int(data.get('rotation', 0))
                else:
                    material[filename[:-len('.json')]] = data

            self.logger.info(f"Loaded {len(material)} credential entries (rotation {rotation})")
            return Credentials(material=material, rotation=rotation)

    def save(self, material):
        """
        Persist the entries of a rotation event and bump the counter.

        Entries not named in ``material`` are kept; an entry whose value is None
        is removed.
        """
        with self._lock:
            os.makedirs(self.auth_dir, exist_ok=True)
            for name, value in material.items():
                path = self._entry_path(name)
                if value is None:
                    if os.path.exists(path):
                        os.remove(path)
                    continue
                self._write_json(path, value)

            rotation = self._read_rotation() + 1
            self._write_json(os.path.join(self.auth_dir, ROTATION_FILE), {'rotation': rotation})
            self.logger.debug(f"Persisted {len(material)} credential entries, rotation {rotation}")
            return rotation

    def erase(self):
        """Remove every stored entry. Safe to call when nothing is stored."""
        with self._lock:
            shutil.rmtree(self.auth_dir, ignore_errors=True)
            self.logger.warning(f"Credentials erased from {self.auth_dir}")

    def exists(self):
        with self._lock:
            return os.path.isdir(self.auth_dir) and any(
                name.endswith('.json') and name != ROTATION_FILE
                for name in os.listdir(self.auth_dir)
            )

    def _entry_path(self, name):
        safe_name = os.path.basename(str(name))
        if not safe_name or safe_name in ('.', '..') or safe_name != str(name):
            raise ValueError(f"Invalid credential entry name: {name!r}")
        return os.path.join(self.auth_dir, f'{safe_name}.json')

    def _read_rotation(self):
        path = os.path.join(self.auth_dir, ROTATION_FILE)
        if not os.path.exists(path):
            return 0
        with open(path, 'r', encoding='utf-8') as f:
            return int(json.load(f).get('rotation', 0))

    def _write_json(self, path, data):
        fd, tmp_path = tempfile.mkstemp(dir=self.auth_dir, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
