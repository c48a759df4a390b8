#!/usr/bin/env python3
"""
Face Attendance System - Main Entry Point

Run this file to enroll people and take attendance from the command line.
"""

import sys

from face_attendance.main import main

if __name__ == '__main__':
    sys.exit(main())
