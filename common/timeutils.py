from datetime import datetime, timezone, tzinfo

from dateutil import tz


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """
    Normalize a datetime to naive UTC.

    Aware values are converted to UTC and stripped of tzinfo; naive values
    are assumed to already be UTC and returned unchanged.
    """
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_local(value: datetime, zone: tzinfo) -> datetime:
    """Express a datetime in ``zone``; naive values are read as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(zone)


def resolve_timezone(name: str) -> tzinfo:
    """
    Look up an IANA zone name such as 'America/Sao_Paulo'.

    Raises
    ------
    ValueError
        If the name is blank or unknown.
    """
    zone = tz.gettz(name) if name and name.strip() else None
    if zone is None:
        raise ValueError(f"Unknown timezone: {name!r}")
    return zone
