from datetime import date, datetime, time, timedelta, timezone


def to_local_datetime(dt, tz_name: str | None = None):
    """Convert a datetime from source tz (assume UTC if naive) to local or given tz.

    - If `tz_name` is 'local' or None: use system local timezone.
    - If `tz_name` is IANA tz name (e.g., 'America/New_York'): use that.
    - If `dt` has no tzinfo, assume UTC.
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    if tz_name and tz_name != "local":
        from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
        try:
            return dt.astimezone(ZoneInfo(tz_name))
        except ZoneInfoNotFoundError:
            return dt.astimezone()
    return dt.astimezone()


def local_day(dt, tz_name: str | None = None) -> date:
    """Calendar day of `dt` in the configured timezone. Dates pass through."""
    if isinstance(dt, datetime):
        return to_local_datetime(dt, tz_name).date()
    return dt


def days_between(earlier, later, tz_name: str | None = None) -> int:
    """Whole calendar days from `earlier` to `later` (negative if reversed)."""
    return (local_day(later, tz_name) - local_day(earlier, tz_name)).days


def next_weekly_reset(now: datetime, weekday: int = 0, hour: int = 0) -> datetime:
    """First `weekday` at `hour`:00 strictly after `now`, in now's timezone.

    Example: now=Wed 2025-01-08 10:00, weekday=0 -> Mon 2025-01-13 00:00
    """
    days_ahead = (weekday - now.weekday()) % 7
    candidate = datetime.combine(
        now.date() + timedelta(days=days_ahead), time(hour=hour), tzinfo=now.tzinfo
    )
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


def seconds_to_mmss(total_seconds: float) -> str:
    """
    Convert seconds -> 'M:SS' for sprint read-outs.
    Example: 37.4 -> '0:37'
    """
    whole = max(0, int(total_seconds))
    return f"{whole // 60}:{whole % 60:02d}"
