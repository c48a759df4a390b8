"""
Persistence Module

A key/value substrate holding serialized collections, and the collection
accessors used by the workflows. Collections are stored as whole JSON
documents; appends read the collection, append and write it back.
"""

import json
import logging
import os
import tempfile
from typing import Any, Callable, Dict, List, Optional

from .errors import StorageParseError
from .models import AttendanceRecord, Identity, Session, now_ms

logger = logging.getLogger(__name__)

KEY_IDENTITIES = 'identities'
KEY_SESSIONS = 'sessions'
KEY_ATTENDANCE = 'attendance'
KEY_FACE_DESCRIPTORS = 'face_descriptors'

ALL_KEYS = (KEY_IDENTITIES, KEY_SESSIONS, KEY_ATTENDANCE, KEY_FACE_DESCRIPTORS)


class KeyValueStore:
    """Minimal string key/value storage contract."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def remove(self, key: str):
        raise NotImplementedError


class MemoryKeyValueStore(KeyValueStore):
    """Process-local storage, mostly useful for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str):
        self._data[key] = value

    def remove(self, key: str):
        self._data.pop(key, None)


class FileKeyValueStore(KeyValueStore):
    """One ``<key>.json`` file per key inside a directory."""

    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)

    def _path(self, key: str) -> str:
        return os.path.join(self.directory, f"{key}.json")

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not os.path.exists(path):
            return None
        with open(path, 'rb') as f:
            data = f.read()
        try:
            return data.decode('utf-8')
        except UnicodeDecodeError as e:
            raise StorageParseError(f"{path} is not valid UTF-8: {e}")

    def set(self, key: str, value: str):
        # Write to a sibling temp file first so readers never see half a document
        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.replace(tmp_path, self._path(key))
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def remove(self, key: str):
        path = self._path(key)
        if os.path.exists(path):
            os.remove(path)


def create_key_value_store(config: Dict[str, Any]) -> KeyValueStore:
    """Build the storage backend named in the ``storage`` config section."""
    storage_config = config.get('storage', {})
    backend = storage_config.get('backend', 'file')

    if backend == 'memory':
        return MemoryKeyValueStore()
    if backend == 'file':
        return FileKeyValueStore(storage_config.get('path', 'data/store'))

    raise ValueError(f"Unsupported storage backend: {backend}")


class AttendanceDatabase:
    """Collection accessors for identities, sessions, attendance and face data."""

    def __init__(self, store: KeyValueStore):
        self.store = store
        self._last_record_id = None

    # Collections

    def get_collection(self, key: str) -> List[Dict[str, Any]]:
        """
        Read a whole collection.

        Absent keys and unparseable content both yield an empty list; the
        latter is logged as a storage parse error since data is discarded.
        """
        try:
            raw = self.store.get(key)
            if raw is None:
                logger.debug(f"Collection '{key}' not found, treating as empty")
                return []
            items = json.loads(raw)
            if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
                raise ValueError("expected a JSON array of objects")
        except (StorageParseError, ValueError) as e:
            error = StorageParseError(f"Collection '{key}' is corrupted: {e}")
            logger.error(f"{error.reason}: {error.detail}")
            return []

        return items

    def set_collection(self, key: str, items: List[Dict[str, Any]]):
        """Replace a whole collection. Last write wins."""
        self.store.set(key, json.dumps(items))

    def _load_entities(self, key: str, factory: Callable[[Dict[str, Any]], Any]) -> List[Any]:
        items = self.get_collection(key)
        try:
            return [factory(item) for item in items]
        except (KeyError, TypeError, ValueError, OverflowError) as e:
            error = StorageParseError(f"Collection '{key}' holds an invalid record: {e}")
            logger.error(f"{error.reason}: {error.detail}")
            return []

    def _upsert(self, key: str, entity_dict: Dict[str, Any]):
        items = self.get_collection(key)
        for idx, item in enumerate(items):
            if item.get('id') == entity_dict['id']:
                items[idx] = entity_dict
                break
        else:
            items.append(entity_dict)
        self.set_collection(key, items)

    def _delete(self, key: str, entity_id: str) -> bool:
        items = self.get_collection(key)
        remaining = [item for item in items if item.get('id') != entity_id]
        if len(remaining) == len(items):
            return False
        self.set_collection(key, remaining)
        return True

    # Identities

    def save_identity(self, identity: Identity):
        self._upsert(KEY_IDENTITIES, identity.to_dict())

    def get_identity(self, identity_id: str) -> Optional[Identity]:
        for identity in self.get_all_identities():
            if identity.id == identity_id:
                return identity
        return None

    def get_all_identities(self) -> List[Identity]:
        return self._load_entities(KEY_IDENTITIES, Identity.from_dict)

    def delete_identity(self, identity_id: str) -> bool:
        return self._delete(KEY_IDENTITIES, identity_id)

    # Sessions

    def save_session(self, session: Session):
        self._upsert(KEY_SESSIONS, session.to_dict())

    def get_session(self, session_id: str) -> Optional[Session]:
        for session in self.get_all_sessions():
            if session.id == session_id:
                return session
        return None

    def get_all_sessions(self) -> List[Session]:
        return self._load_entities(KEY_SESSIONS, Session.from_dict)

    def delete_session(self, session_id: str) -> bool:
        return self._delete(KEY_SESSIONS, session_id)

    # Attendance records

    def save_attendance(self, record: AttendanceRecord):
        """Append one record."""
        items = self.get_collection(KEY_ATTENDANCE)
        items.append(record.to_dict())
        self.set_collection(KEY_ATTENDANCE, items)

    def get_session_attendance(self, session_id: str) -> List[AttendanceRecord]:
        return [r for r in self.get_all_attendance() if r.session_id == session_id]

    def get_all_attendance(self) -> List[AttendanceRecord]:
        return self._load_entities(KEY_ATTENDANCE, AttendanceRecord.from_dict)

    def delete_attendance(self, record_id: str) -> bool:
        return self._delete(KEY_ATTENDANCE, record_id)

    def next_attendance_id(self, timestamp: Optional[int] = None) -> str:
        """
        Generate a record id from the millisecond clock.

        Ids strictly increase within the process and start above any
        numeric id already persisted.
        """
        if self._last_record_id is None:
            self._last_record_id = 0
            for item in self.get_collection(KEY_ATTENDANCE):
                try:
                    self._last_record_id = max(self._last_record_id, int(item.get('id')))
                except (TypeError, ValueError, OverflowError):
                    continue

        candidate = now_ms() if timestamp is None else int(timestamp)
        self._last_record_id = max(candidate, self._last_record_id + 1)
        return str(self._last_record_id)

    # Face descriptors

    def save_face_data(self, blob: str):
        self.store.set(KEY_FACE_DESCRIPTORS, blob)

    def get_face_data(self) -> Optional[str]:
        """The descriptor export blob, or None when absent or unreadable."""
        try:
            return self.store.get(KEY_FACE_DESCRIPTORS)
        except StorageParseError as e:
            logger.error(f"{e.reason}: face data is unreadable: {e.detail}")
            return None

    # Utility

    def export_all_data(self) -> Dict[str, Any]:
        return {
            'identities': self.get_collection(KEY_IDENTITIES),
            'sessions': self.get_collection(KEY_SESSIONS),
            'attendance': self.get_collection(KEY_ATTENDANCE),
            'faces': self.get_face_data(),
        }

    @staticmethod
    def validate_export(data: Any):
        """
        Check the shape of an ``export_all_data`` document.

        Raises:
            StorageParseError: if any part of the document is malformed
        """
        if not isinstance(data, dict):
            raise StorageParseError("expected a JSON object")

        for key in (KEY_IDENTITIES, KEY_SESSIONS, KEY_ATTENDANCE):
            items = data.get(key)
            if items is None:
                continue
            if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
                raise StorageParseError(f"'{key}' must be an array of objects")

        faces = data.get('faces')
        if faces is not None and not isinstance(faces, str):
            raise StorageParseError("'faces' must be an export blob string")

    def import_all_data(self, data: Dict[str, Any]):
        """
        Replace every collection present in ``data``.

        The document is validated first; nothing is written if it is malformed.
        """
        self.validate_export(data)
        if data.get('identities') is not None:
            self.set_collection(KEY_IDENTITIES, data['identities'])
        if data.get('sessions') is not None:
            self.set_collection(KEY_SESSIONS, data['sessions'])
        if data.get('attendance') is not None:
            self.set_collection(KEY_ATTENDANCE, data['attendance'])
            self._last_record_id = None
        if data.get('faces') is not None:
            self.save_face_data(data['faces'])

    def clear_all(self):
        for key in ALL_KEYS:
            self.store.remove(key)
        self._last_record_id = None
        logger.info("All stored data cleared")
