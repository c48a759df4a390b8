"""
Test cases for Reports Module
"""

import pytest

from face_attendance.descriptor_store import DescriptorStore
from face_attendance.models import AttendanceRecord, Identity, Session
from face_attendance.persistence import AttendanceDatabase, MemoryKeyValueStore
from face_attendance.reports import (absent_subjects, attendance_logs, dashboard_statistics,
                                     format_timestamp, session_summary)


def record(record_id, subject_id, observed_at, confidence=0.8, session_id='SESS1', status='present'):
    return AttendanceRecord(id=record_id, session_id=session_id, subject_id=subject_id,
                            observed_at=observed_at, confidence=confidence, status=status)


class TestReports:
    """Test cases for report helpers."""

    @pytest.fixture
    def database(self):
        db = AttendanceDatabase(MemoryKeyValueStore())
        db.save_identity(Identity('S1', 'Alice', 'R1'))
        db.save_identity(Identity('S2', 'Bob', 'R2'))
        db.save_identity(Identity('S3', 'Carol', 'R3'))
        db.save_session(Session('SESS1', 'Math', '2026-10-18', started_at=1000, ended_at=9000))
        db.save_attendance(record('1', 'S1', 2000, 0.7))
        db.save_attendance(record('2', 'S2', 2500))
        db.save_attendance(record('3', 'S1', 6000, 0.9))
        db.save_attendance(record('4', 'S3', 3000, session_id='SESS2', status='absent'))
        return db

    def test_attendance_logs_collapse_repeats(self, database):
        logs = attendance_logs(database.get_session_attendance('SESS1'),
                               database.get_all_identities())

        assert [log['subject_id'] for log in logs] == ['S1', 'S2']
        alice = logs[0]
        assert alice['name'] == 'Alice'
        assert alice['entry_time'] == 2000
        assert alice['exit_time'] == 6000
        assert alice['duration_ms'] == 4000
        assert alice['captures'] == 2
        assert alice['best_confidence'] == 0.9
        assert logs[1]['duration_ms'] == 0

    def test_attendance_logs_unknown_subject(self):
        logs = attendance_logs([record('1', 'GHOST', 10)], [])
        assert logs[0]['name'] is None

    def test_absent_subjects(self, database):
        absent = absent_subjects(database, 'SESS1')
        assert [identity.id for identity in absent] == ['S3']

    def test_session_summary(self, database):
        summary = session_summary(database, 'SESS1')

        assert summary['session'].label == 'Math'
        assert summary['total_records'] == 3
        assert summary['present'] == 2
        assert summary['absent'] == ['S3']
        assert len(summary['logs']) == 2

    def test_session_summary_unknown_session(self, database):
        assert session_summary(database, 'NOPE') is None

    def test_dashboard_statistics(self, database):
        store = DescriptorStore({})
        store.enroll('S1', [0.0, 1.0])

        stats = dashboard_statistics(database, store)
        assert stats['enrolled'] == 3
        assert stats['sessions'] == 1
        assert stats['total_records'] == 4
        assert stats['present_records'] == 3
        assert stats['absent_records'] == 1
        assert stats['unique_subjects_seen'] == 3
        assert stats['descriptors'] == 1
        assert stats['identities_without_descriptor'] == ['S2', 'S3']

    def test_dashboard_statistics_without_store(self, database):
        assert 'descriptors' not in dashboard_statistics(database)

    def test_format_timestamp(self):
        assert format_timestamp(None) == '-'
        assert len(format_timestamp(1700000000000)) == 19
