import re
from datetime import UTC, datetime, time, timedelta

from fastapi import HTTPException, status

from gatekeeper.utils.errors import ConfigurationError

DURATION_PATTERN = re.compile(r"(\d+)([mh])")
DURATION_UNITS = {"m": "minutes", "h": "hours"}


def parse_duration(value: str) -> timedelta:
    """
    Parse a duration string such as ``15m`` or ``2h``.

    Only minutes and hours are accepted. Anything else is a configuration
    error, so this is meant to run while settings are loaded.
    """
    match = DURATION_PATTERN.fullmatch(value) if isinstance(value, str) else None
    if not match:
        raise ConfigurationError(
            f"Invalid duration {value!r}. Expected <integer><unit> with unit m or h."
        )
    amount, unit = match.groups()
    return timedelta(**{DURATION_UNITS[unit]: int(amount)})


def ensure_utc(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo on the way back out
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def convert_dates_to_range(
    start_date: str | None, end_date: str | None
) -> tuple[datetime | None, datetime | None]:
    """
    Turn ``YYYY-MM-DD`` bounds into an inclusive UTC range.

    A start date without an end date covers that whole day.
    """
    start_datetime = None
    end_datetime = None
    try:
        if start_date:
            min_date = datetime.strptime(start_date, "%Y-%m-%d").replace(tzinfo=UTC)
            start_datetime = datetime.combine(min_date, time.min, tzinfo=UTC)
            if not end_date:
                end_datetime = datetime.combine(min_date, time.max, tzinfo=UTC)
        if end_date:
            max_date = datetime.strptime(end_date, "%Y-%m-%d").replace(tzinfo=UTC)
            end_datetime = datetime.combine(max_date, time.max, tzinfo=UTC)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid date format. Use YYYY-MM-DD.",
        )
    return start_datetime, end_datetime
