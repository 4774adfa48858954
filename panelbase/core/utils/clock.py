"""UTC timestamps in RFC 3339 form"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    """Current UTC time, e.g. ``2024-05-01T10:00:00Z``"""
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")
