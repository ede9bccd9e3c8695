"""
ISO-8601 timestamp helpers.

Every stored timestamp is a UTC ISO-8601 string. Older rows written by the
JavaScript client use a trailing "Z"; naive values are read as UTC.
"""
from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat()


def now_iso() -> str:
    return to_iso(utc_now())


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a stored timestamp into an aware UTC datetime.

    Returns:
        The datetime, or None if the value is empty or unparseable
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
