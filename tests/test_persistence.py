"""
Unit tests for the persistence module.
"""

import json
import os
import shutil
import tempfile
import unittest

from face_attendance.errors import StorageParseError
from face_attendance.models import AttendanceRecord, Identity, Session
from face_attendance.persistence import (KEY_ATTENDANCE, KEY_FACE_DESCRIPTORS, KEY_IDENTITIES,
                                         KEY_SESSIONS, AttendanceDatabase,
                                         FileKeyValueStore, MemoryKeyValueStore,
                                         create_key_value_store)


def make_record(record_id, session_id='SESS1', subject_id='S1', observed_at=1000):
    return AttendanceRecord(id=record_id, session_id=session_id, subject_id=subject_id,
                            observed_at=observed_at, confidence=0.9)


class TestAttendanceDatabase(unittest.TestCase):
    """Test cases for AttendanceDatabase class."""

    def setUp(self):
        self.store = MemoryKeyValueStore()
        self.db = AttendanceDatabase(self.store)

    def test_absent_collection_is_empty(self):
        self.assertEqual(self.db.get_collection(KEY_IDENTITIES), [])
        self.assertEqual(self.db.get_all_identities(), [])
        self.assertIsNone(self.db.get_face_data())

    def test_corrupted_collection_is_empty_and_logged(self):
        self.store.set(KEY_IDENTITIES, '{not json')
        with self.assertLogs('face_attendance.persistence', level='ERROR') as logs:
            self.assertEqual(self.db.get_collection(KEY_IDENTITIES), [])
        self.assertIn('StorageParseError', logs.output[0])

    def test_wrong_shape_collection_is_empty(self):
        self.store.set(KEY_IDENTITIES, json.dumps({'id': 'S1'}))
        with self.assertLogs('face_attendance.persistence', level='ERROR'):
            self.assertEqual(self.db.get_all_identities(), [])

    def test_invalid_record_in_collection(self):
        self.store.set(KEY_IDENTITIES, json.dumps([{'id': 'S1'}]))
        with self.assertLogs('face_attendance.persistence', level='ERROR') as logs:
            self.assertEqual(self.db.get_all_identities(), [])
        self.assertIn('StorageParseError', logs.output[0])

    def test_save_identity_upserts(self):
        self.db.save_identity(Identity('S1', 'Alice', 'R1'))
        self.db.save_identity(Identity('S2', 'Bob', 'R2', 'bob@example.com'))
        self.db.save_identity(Identity('S1', 'Alice Smith', 'R1'))

        identities = self.db.get_all_identities()
        self.assertEqual([i.id for i in identities], ['S1', 'S2'])
        self.assertEqual(self.db.get_identity('S1').display_name, 'Alice Smith')
        self.assertEqual(self.db.get_identity('S2').email, 'bob@example.com')
        self.assertIsNone(self.db.get_identity('S3'))

    def test_delete_identity(self):
        self.db.save_identity(Identity('S1', 'Alice', 'R1'))
        self.assertTrue(self.db.delete_identity('S1'))
        self.assertFalse(self.db.delete_identity('S1'))
        self.assertEqual(self.db.get_all_identities(), [])

    def test_sessions(self):
        session = Session('SESS1', 'Math', '2026-10-18', started_at=1000)
        self.db.save_session(session)
        session.ended_at = 2000
        self.db.save_session(session)

        sessions = self.db.get_all_sessions()
        self.assertEqual(len(sessions), 1)
        self.assertEqual(self.db.get_session('SESS1').ended_at, 2000)
        self.assertTrue(self.db.delete_session('SESS1'))
        self.assertIsNone(self.db.get_session('SESS1'))

    def test_attendance_is_append_only(self):
        self.db.save_attendance(make_record('1'))
        self.db.save_attendance(make_record('2'))
        self.db.save_attendance(make_record('3', session_id='SESS2'))

        self.assertEqual(len(self.db.get_all_attendance()), 3)
        session_records = self.db.get_session_attendance('SESS1')
        self.assertEqual([r.id for r in session_records], ['1', '2'])
        self.assertTrue(all(r.subject_id == 'S1' for r in session_records))

        self.assertTrue(self.db.delete_attendance('2'))
        self.assertEqual([r.id for r in self.db.get_all_attendance()], ['1', '3'])

    def test_next_attendance_id_strictly_increases(self):
        ids = [self.db.next_attendance_id(5000) for _ in range(3)]
        self.assertEqual(ids, ['5000', '5001', '5002'])
        self.assertEqual(self.db.next_attendance_id(9000), '9000')
        self.assertEqual(self.db.next_attendance_id(100), '9001')

    def test_next_attendance_id_starts_above_persisted_ids(self):
        self.db.save_attendance(make_record('7000'))
        self.db.save_attendance(make_record('legacy-id'))

        fresh = AttendanceDatabase(self.store)
        self.assertEqual(fresh.next_attendance_id(10), '7001')

    def test_face_data(self):
        self.db.save_face_data('[]')
        self.assertEqual(self.db.get_face_data(), '[]')

    def test_export_import_and_clear(self):
        self.db.save_identity(Identity('S1', 'Alice', 'R1'))
        self.db.save_session(Session('SESS1', 'Math', '2026-10-18', started_at=1000))
        self.db.save_attendance(make_record('1'))
        self.db.save_face_data('[]')

        exported = self.db.export_all_data()
        self.db.clear_all()
        self.assertEqual(self.db.get_all_identities(), [])
        self.assertIsNone(self.db.get_face_data())

        self.db.import_all_data(exported)
        self.assertEqual(self.db.get_identity('S1').display_name, 'Alice')
        self.assertEqual(len(self.db.get_session_attendance('SESS1')), 1)
        self.assertEqual(self.db.get_face_data(), '[]')

    def test_import_keeps_missing_collections(self):
        self.db.save_identity(Identity('S1', 'Alice', 'R1'))
        self.db.import_all_data({'attendance': [make_record('1').to_dict()]})

        self.assertEqual(len(self.db.get_all_identities()), 1)
        self.assertEqual(len(self.db.get_all_attendance()), 1)

    def test_non_finite_values_in_records(self):
        self.store.set(KEY_ATTENDANCE, '[{"id": Infinity}, {"id": NaN}, {"id": "12"}]')
        self.assertEqual(self.db.next_attendance_id(5), '13')

        self.store.set(KEY_SESSIONS, '[{"id": "SESS1", "label": "Math", "date": "2026-10-18", '
                                     '"started_at": Infinity}]')
        with self.assertLogs('face_attendance.persistence', level='ERROR') as logs:
            self.assertEqual(self.db.get_all_sessions(), [])
        self.assertIn('StorageParseError', logs.output[0])

        record = make_record('1').to_dict()
        self.store.set(KEY_ATTENDANCE, json.dumps([dict(record, observed_at=float('inf'))]))
        with self.assertLogs('face_attendance.persistence', level='ERROR'):
            self.assertEqual(self.db.get_all_attendance(), [])

    def test_malformed_import_writes_nothing(self):
        self.db.save_identity(Identity('S1', 'Alice', 'R1'))

        for document in ([], {'identities': 'S2'}, {'sessions': [1]},
                         {'identities': [], 'faces': [1, 2]}):
            with self.assertRaises(StorageParseError):
                self.db.import_all_data(document)

        self.assertEqual(len(self.db.get_all_identities()), 1)
        self.assertIsNone(self.db.get_face_data())


class TestFileKeyValueStore(unittest.TestCase):
    """Test cases for FileKeyValueStore class."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.path = os.path.join(self.test_dir, 'store')

    def tearDown(self):
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    def test_round_trip(self):
        store = FileKeyValueStore(self.path)
        self.assertIsNone(store.get('identities'))

        store.set('identities', '[1, 2]')
        self.assertEqual(store.get('identities'), '[1, 2]')
        self.assertTrue(os.path.exists(os.path.join(self.path, 'identities.json')))

        store.set('identities', '[3]')
        self.assertEqual(FileKeyValueStore(self.path).get('identities'), '[3]')
        self.assertEqual(os.listdir(self.path), ['identities.json'])

        store.remove('identities')
        store.remove('identities')
        self.assertIsNone(store.get('identities'))

    def test_database_over_files(self):
        db = AttendanceDatabase(FileKeyValueStore(self.path))
        db.save_identity(Identity('S1', 'Alice', 'R1'))

        reopened = AttendanceDatabase(FileKeyValueStore(self.path))
        self.assertEqual(reopened.get_identity('S1').roll_number, 'R1')

    def test_undecodable_file_is_read_as_empty(self):
        db = AttendanceDatabase(FileKeyValueStore(self.path))
        db.save_attendance(make_record('4000'))
        with open(os.path.join(self.path, 'attendance.json'), 'wb') as f:
            f.write(b'[{"id": "\xff\xfe"}]')

        with self.assertLogs('face_attendance.persistence', level='ERROR') as logs:
            self.assertEqual(db.get_collection(KEY_ATTENDANCE), [])
            self.assertEqual(db.get_all_attendance(), [])
            self.assertEqual(db.next_attendance_id(10), '10')
        self.assertIn('StorageParseError', logs.output[0])

        # The next append replaces the unreadable document
        db.save_attendance(make_record('10'))
        self.assertEqual(len(db.get_all_attendance()), 1)

    def test_undecodable_face_data_is_absent(self):
        store = FileKeyValueStore(self.path)
        with open(os.path.join(self.path, KEY_FACE_DESCRIPTORS + '.json'), 'wb') as f:
            f.write(b'\xff\xfe garbage')

        with self.assertRaises(StorageParseError):
            store.get(KEY_FACE_DESCRIPTORS)
        with self.assertLogs('face_attendance.persistence', level='ERROR') as logs:
            self.assertIsNone(AttendanceDatabase(store).get_face_data())
        self.assertIn('StorageParseError', logs.output[0])

    def test_create_key_value_store(self):
        self.assertIsInstance(create_key_value_store({'storage': {'backend': 'memory'}}),
                              MemoryKeyValueStore)
        store = create_key_value_store({'storage': {'backend': 'file', 'path': self.path}})
        self.assertIsInstance(store, FileKeyValueStore)
        self.assertEqual(store.directory, self.path)
        with self.assertRaises(ValueError):
            create_key_value_store({'storage': {'backend': 'redis'}})


class TestModels(unittest.TestCase):

    def test_attendance_record_validation(self):
        with self.assertRaises(ValueError):
            AttendanceRecord('1', 'SESS1', 'S1', 0, confidence=1.5)
        with self.assertRaises(ValueError):
            AttendanceRecord('1', 'SESS1', 'S1', 0, confidence=0.5, status='unknown')

    def test_round_trip_dicts(self):
        record = make_record('1')
        self.assertEqual(AttendanceRecord.from_dict(record.to_dict()), record)
        session = Session('SESS1', 'Math', '2026-10-18', 1000, 2000, 'Algebra')
        self.assertEqual(Session.from_dict(session.to_dict()), session)
        identity = Identity('S1', 'Alice', 'R1')
        self.assertEqual(Identity.from_dict(identity.to_dict()), identity)


if __name__ == '__main__':
    unittest.main()
