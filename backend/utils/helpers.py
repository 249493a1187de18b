"""
Utility helpers for the assessment system

Simple utility functions for ID, filename and percentage generation.
"""

import uuid
from datetime import datetime


def generate_session_id(short=True):
    """
    Generate unique assessment session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'

        >>> generate_session_id(short=False)
        'a3f7e2b9c1d2e3f4a5b6c7d8e9f0a1b2'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def generate_report_filename(prefix="assessment", extension="json"):
    """
    Generate timestamped filename with unique ID

    Format: {prefix}_{YYYYMMDD_HHMMSS}_{short_uuid}.{extension}

    Examples:
        >>> generate_report_filename()
        'assessment_20251126_153045_a3f7e2b9.json'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_id = generate_session_id(short=True)
    return f"{prefix}_{timestamp}_{short_id}.{extension}"


def turn_filename(session_id: str, turn_count: int) -> str:
    """
    Per-turn snapshot filename.

    Examples:
        >>> turn_filename('a3f7e2b9', 4)
        'SESSION-a3f7e2b9_TURN-004.json'
    """
    return f"SESSION-{session_id}_TURN-{turn_count:03d}.json"


def percent(part: int, whole: int) -> int:
    """
    Integer percentage of part/whole, halves rounded up.

    Examples:
        >>> percent(1, 8)
        13
        >>> percent(1, 3)
        33
    """
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)
