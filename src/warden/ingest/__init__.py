"""
Warden Ingest Module

Credential loading and result export.
"""

from warden.ingest.loader import load_credentials, parse_lines, entries_from_frame
from warden.ingest.export import alerts_path, check_writable, export_alerts, export_outcomes, outcomes_frame

__all__ = [
    "load_credentials",
    "parse_lines",
    "entries_from_frame",
    "check_writable",
    "export_outcomes",
    "export_alerts",
    "alerts_path",
    "outcomes_frame",
]
