"""
Period id and boundary stamp decoding.

A period id is a 14-digit token YYYYMMDDHHMMSS, always UTC. The boundary stamp
trailing an announcement is a free-form ISO-like date-time that may carry a
fraction and a zone offset. It is written as two tokens or as one joined by
"T", and is parsed separately and normalized to UTC.
"""

import re
from datetime import UTC, datetime

from rounds.logic.exceptions import MalformedFrameError, MalformedPeriodIdError

PERIOD_ID_LENGTH = 14
PERIOD_ID_FORMAT = "%Y%m%d%H%M%S"

_PERIOD_ID_PATTERN = re.compile(r"[0-9]{14}")
_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
_TIME_PATTERN = re.compile(r"[0-9]{2}:[0-9]{2}:[0-9]{2}(\.[0-9]{1,6})?(Z|[+-][0-9]{2}:?[0-9]{2})?")


def is_period_id(token: str) -> bool:
    return _PERIOD_ID_PATTERN.fullmatch(token) is not None


def decode_period_id(token: str) -> datetime:
    """Decode a period id to the aware UTC instant it encodes."""
    if not is_period_id(token):
        raise MalformedPeriodIdError(token, f"expected {PERIOD_ID_LENGTH} digits")
    try:
        return datetime(
            int(token[0:4]),
            int(token[4:6]),
            int(token[6:8]),
            int(token[8:10]),
            int(token[10:12]),
            int(token[12:14]),
            tzinfo=UTC,
        )
    except ValueError as e:
        raise MalformedPeriodIdError(token, str(e)) from e


def encode_period_id(instant: datetime) -> str:
    """Format an aware instant as a period id (UTC, whole seconds)."""
    if instant.tzinfo is None:
        raise ValueError("period instants must be timezone-aware")
    return instant.astimezone(UTC).strftime(PERIOD_ID_FORMAT)


def is_date_token(token: str) -> bool:
    return _DATE_PATTERN.fullmatch(token) is not None


def is_stamp_start(token: str) -> bool:
    """True for a bare date token or a combined DATE'T'TIME token."""
    date_token, _, _ = token.partition("T")
    return is_date_token(date_token)


def parse_boundary_stamp(date_token: str, time_token: str | None = None) -> datetime:
    """
    Parse the trailing date-time of a frame to a UTC instant without sub-second precision.

    The stamp is either two tokens (date, then time) or one ISO token joined by
    "T". A stamp without an offset is taken as UTC.
    """
    if time_token is None:
        date_token, separator, time_token = date_token.partition("T")
        if not separator:
            raise MalformedFrameError(f"bad boundary stamp {date_token!r}: no time part")
    if not is_date_token(date_token) or _TIME_PATTERN.fullmatch(time_token) is None:
        raise MalformedFrameError(f"bad boundary stamp {date_token!r} {time_token!r}")
    try:
        parsed = datetime.fromisoformat(f"{date_token}T{time_token}")
    except ValueError as e:
        raise MalformedFrameError(f"bad boundary stamp {date_token!r} {time_token!r}: {e}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC).replace(microsecond=0)
