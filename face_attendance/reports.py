"""
Reports Module

Read-only views over persisted attendance: session summaries, per-person
entry/exit logs and dashboard statistics. Attendance records are never
deduplicated on write, so "first entry" style answers are derived here.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .models import STATUS_ABSENT, STATUS_PRESENT, AttendanceRecord, Identity
from .persistence import AttendanceDatabase


def format_timestamp(timestamp_ms: Optional[int]) -> str:
    if timestamp_ms is None:
        return '-'
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime('%Y-%m-%d %H:%M:%S')


def attendance_logs(records: Iterable[AttendanceRecord],
                    identities: Iterable[Identity]) -> List[Dict[str, Any]]:
    """
    Collapse records to one row per subject.

    Each row carries the first and last observation (entry and exit) and the
    number of captures. Rows keep the order of each subject's first record.
    """
    names = {identity.id: identity.display_name for identity in identities}
    logs: Dict[str, Dict[str, Any]] = {}

    for record in records:
        log = logs.get(record.subject_id)
        if log is None:
            logs[record.subject_id] = {
                'subject_id': record.subject_id,
                'name': names.get(record.subject_id),
                'entry_time': record.observed_at,
                'exit_time': record.observed_at,
                'captures': 1,
                'best_confidence': record.confidence,
                'status': record.status,
            }
            continue

        log['entry_time'] = min(log['entry_time'], record.observed_at)
        log['exit_time'] = max(log['exit_time'], record.observed_at)
        log['captures'] += 1
        log['best_confidence'] = max(log['best_confidence'], record.confidence)

    for log in logs.values():
        log['duration_ms'] = log['exit_time'] - log['entry_time']

    return list(logs.values())


def absent_subjects(database: AttendanceDatabase, session_id: str) -> List[Identity]:
    """Enrolled identities with no record in the session."""
    seen = {record.subject_id for record in database.get_session_attendance(session_id)}
    return [identity for identity in database.get_all_identities() if identity.id not in seen]


def session_summary(database: AttendanceDatabase, session_id: str) -> Optional[Dict[str, Any]]:
    """Totals and per-subject logs for one session, or None if it doesn't exist."""
    session = database.get_session(session_id)
    if session is None:
        return None

    records = database.get_session_attendance(session_id)
    identities = database.get_all_identities()
    logs = attendance_logs(records, identities)

    return {
        'session': session,
        'total_records': len(records),
        'present': len(logs),
        'absent': [identity.id for identity in absent_subjects(database, session_id)],
        'logs': logs,
    }


def dashboard_statistics(database: AttendanceDatabase, descriptor_store=None) -> Dict[str, Any]:
    """Headline numbers across all sessions."""
    records = database.get_all_attendance()
    identities = database.get_all_identities()

    stats = {
        'enrolled': len(identities),
        'sessions': len(database.get_all_sessions()),
        'total_records': len(records),
        'present_records': sum(1 for r in records if r.status == STATUS_PRESENT),
        'absent_records': sum(1 for r in records if r.status == STATUS_ABSENT),
        'unique_subjects_seen': len({r.subject_id for r in records}),
    }

    if descriptor_store is not None:
        enrolled_ids = {identity.id for identity in identities}
        stats['descriptors'] = len(descriptor_store)
        # Identities left behind by an interrupted enrollment
        stats['identities_without_descriptor'] = sorted(
            owner for owner in enrolled_ids if owner not in descriptor_store)

    return stats
