"""
Main Application Module

Command-line front end: enroll people, run attendance sessions from a camera
or video file, and inspect or move stored data.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from .capture import CaptureSource, ImageFileSource, OpenCVCaptureSource
from .config import DEFAULT_CONFIG_PATH, load_config
from .errors import CaptureError, StorageParseError
from .reports import dashboard_statistics, format_timestamp, session_summary
from .system import AttendanceSystem

logger = logging.getLogger(__name__)


def configure_logging(config: Dict[str, Any]):
    """Log to the configured file and to stdout."""
    logging_config = config.get('logging', {})
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if logging_config.get('file'):
        handlers.insert(0, logging.FileHandler(logging_config['file']))

    logging.basicConfig(
        level=getattr(logging, str(logging_config.get('level', 'INFO')).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True,
    )


def _make_source(config: Dict[str, Any], args) -> CaptureSource:
    if getattr(args, 'image', None):
        return ImageFileSource(args.image)
    if getattr(args, 'video', None):
        return OpenCVCaptureSource(config, args.video)
    return OpenCVCaptureSource(config, args.camera)


async def _enroll(system: AttendanceSystem, args) -> int:
    if not await system.initialize():
        print(f"Enrollment unavailable: {system.model_error.message}")
        return 1

    workflow = system.new_enrollment()
    result = workflow.submit_info(args.id, args.name, args.roll, args.email)
    if not result['success']:
        print(result['message'])
        return 1

    source = _make_source(system.config, args)
    stream = source.start()
    try:
        for _ in range(args.attempts):
            frame = source.capture_frame(stream)
            if frame is None:
                break
            result = await workflow.capture(frame, source.token)
            print(result['message'])
            if result['success']:
                return 0
    finally:
        source.stop()

    print("Enrollment failed")
    return 1


async def _attend(system: AttendanceSystem, args) -> int:
    if not await system.initialize():
        print(f"Attendance unavailable: {system.model_error.message}")
        return 1

    workflow = system.new_session()
    result = workflow.start_session(args.session, args.label, args.subject)
    if not result['success']:
        print(result['message'])
        return 1

    def show(capture_result):
        if capture_result['success']:
            print(f"  {capture_result['message']} "
                  f"({capture_result['confidence'] * 100:.1f}%, marked: {capture_result['marked']})")
        elif capture_result['error'] not in ('NoFaceDetected', 'StaleResult'):
            print(f"  {capture_result['message']}")

    source = _make_source(system.config, args)
    print(f"Session {args.label} started. Press Ctrl+C to end.")
    try:
        await workflow.run(source, max_frames=args.frames, on_result=show)
    except asyncio.CancelledError:
        logger.info("Capture interrupted by user")

    summary = workflow.end_session()['summary']
    print(f"Summary: {summary['total_records']} record(s), "
          f"{len(summary['unique_subjects'])} person(s) present")
    return 0


def _list(system: AttendanceSystem, args) -> int:
    identities = system.database.get_all_identities()
    print(f"Enrolled people ({len(identities)}):")
    for identity in identities:
        marker = '' if identity.id in system.descriptor_store else '  [no face data]'
        print(f"  {identity.id}: {identity.display_name} "
              f"(roll {identity.roll_number}){marker}")

    stats = dashboard_statistics(system.database, system.descriptor_store)
    print(f"Sessions: {stats['sessions']}, attendance records: {stats['total_records']}")
    return 0


def _report(system: AttendanceSystem, args) -> int:
    summary = session_summary(system.database, args.session)
    if summary is None:
        print(f"Unknown session: {args.session}")
        return 1

    session = summary['session']
    print(f"Session {session.id} - {session.label} ({session.date})")
    print(f"Started: {format_timestamp(session.started_at)}  Ended: {format_timestamp(session.ended_at)}")
    print(f"Records: {summary['total_records']}  Present: {summary['present']}  "
          f"Absent: {len(summary['absent'])}")
    for log in summary['logs']:
        print(f"  {log['subject_id']} {log['name'] or '-'}: "
              f"entry {format_timestamp(log['entry_time'])}, "
              f"exit {format_timestamp(log['exit_time'])}, {log['captures']} capture(s)")
    return 0


def _export(system: AttendanceSystem, args) -> int:
    with open(args.file, 'w', encoding='utf-8') as f:
        if args.all:
            json.dump(system.database.export_all_data(), f)
        else:
            f.write(system.descriptor_store.export_all())
    print(f"Exported to {args.file}")
    return 0


def _import(system: AttendanceSystem, args) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        blob = f.read()

    if args.all:
        try:
            system.restore_all(json.loads(blob))
        except ValueError as e:
            print(f"Import failed: invalid JSON ({e})")
            return 1
        except StorageParseError as e:
            print(f"Import failed: {e.detail or e.message}")
            return 1
        print(f"Restored all data; {len(system.descriptor_store)} descriptor(s) enrolled")
        return 0

    if not system.descriptor_store.import_all(blob):
        print(f"Import failed: {system.descriptor_store.last_error.message}")
        return 1

    system.descriptor_store.save()
    print(f"Imported face data; {len(system.descriptor_store)} descriptor(s) enrolled")
    return 0


def _remove(system: AttendanceSystem, args) -> int:
    if system.remove_identity(args.id):
        print(f"Removed {args.id}")
        return 0
    print(f"Unknown identity: {args.id}")
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Face Attendance System')
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_PATH,
                        help='Configuration file path')
    subparsers = parser.add_subparsers(dest='command', required=True)

    enroll = subparsers.add_parser('enroll', help='Enroll a person')
    enroll.add_argument('--id', required=True, help='Unique identity ID')
    enroll.add_argument('--name', required=True, help='Full name')
    enroll.add_argument('--roll', required=True, help='Roll number')
    enroll.add_argument('--email', help='Email (optional)')
    enroll.add_argument('--image', nargs='+', help='Image file(s) instead of the camera')
    enroll.add_argument('--camera', type=int, help='Camera device ID')
    enroll.add_argument('--attempts', type=int, default=10,
                        help='Frames to try before giving up')
    enroll.set_defaults(handler=_enroll, is_async=True)

    attend = subparsers.add_parser('attend', help='Run an attendance session')
    attend.add_argument('--session', required=True, help='New session ID')
    attend.add_argument('--label', required=True, help='Class name')
    attend.add_argument('--subject', help='Subject (optional)')
    attend.add_argument('--video', '-v', help='Video file path (instead of camera)')
    attend.add_argument('--camera', type=int, help='Camera device ID')
    attend.add_argument('--frames', type=int, help='Stop after this many frames')
    attend.set_defaults(handler=_attend, is_async=True)

    listing = subparsers.add_parser('list', help='List enrolled people')
    listing.set_defaults(handler=_list, is_async=False)

    report = subparsers.add_parser('report', help='Show a session report')
    report.add_argument('--session', required=True, help='Session ID')
    report.set_defaults(handler=_report, is_async=False)

    export = subparsers.add_parser('export', help='Export face data')
    export.add_argument('file', help='Output file')
    export.add_argument('--all', action='store_true',
                        help='Export every collection, not just face data')
    export.set_defaults(handler=_export, is_async=False)

    importer = subparsers.add_parser('import', help='Import exported face data')
    importer.add_argument('file', help='Input file')
    importer.add_argument('--all', action='store_true',
                          help='Restore every collection from an export --all file')
    importer.set_defaults(handler=_import, is_async=False)

    remove = subparsers.add_parser('remove', help='Remove a person and their face data')
    remove.add_argument('id', help='Identity ID')
    remove.set_defaults(handler=_remove, is_async=False)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    configure_logging(config)

    try:
        system = AttendanceSystem(config)
        if args.is_async:
            return asyncio.run(args.handler(system, args))
        return args.handler(system, args)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except CaptureError as e:
        logger.error(f"Capture error: {e}")
        print(e.message)
        return 1


if __name__ == '__main__':
    sys.exit(main())
