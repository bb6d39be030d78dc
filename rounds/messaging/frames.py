"""
Classify raw text frames from the round feed.

Grammar (tokens separated by whitespace):

    announcement := PERIOD VARIANT STAMP
    result       := PERIOD VARIANT DIGIT [STAMP]
    STAMP        := DATE TIME | DATE"T"TIME

PERIOD is a 14-digit period id, VARIANT a catalogue code, DATE is YYYY-MM-DD and
TIME is HH:MM:SS with an optional fraction and zone offset. The stamp is either
two tokens or one ISO token. Anything else is Unrecognized; classify_frame
never raises.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict

from rounds.logic.exceptions import MalformedFrameError, MalformedPeriodIdError
from rounds.logic.period import decode_period_id, is_stamp_start, parse_boundary_stamp
from rounds.logic.types import RoundAnnouncement, RoundResult

if TYPE_CHECKING:
    from rounds.logic.variants import VariantCatalogue

_HEADER_TOKENS = 2
_MAX_STAMP_TOKENS = 2
_DIGITS = "0123456789"


class FrameKind(StrEnum):
    ANNOUNCEMENT = "announcement"
    RESULT = "result"
    UNRECOGNIZED = "unrecognized"


class UnrecognizedReason(StrEnum):
    EMPTY = "empty"
    BAD_SHAPE = "bad_shape"
    MALFORMED_PERIOD = "malformed_period"
    UNKNOWN_VARIANT = "unknown_variant"
    BAD_OUTCOME = "bad_outcome"
    BAD_TIMESTAMP = "bad_timestamp"


class Announcement(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FrameKind.ANNOUNCEMENT] = FrameKind.ANNOUNCEMENT
    announcement: RoundAnnouncement


class Result(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FrameKind.RESULT] = FrameKind.RESULT
    result: RoundResult


class Unrecognized(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal[FrameKind.UNRECOGNIZED] = FrameKind.UNRECOGNIZED
    reason: UnrecognizedReason
    raw: str = ""


Frame = Announcement | Result | Unrecognized


def _is_outcome_token(token: str) -> bool:
    return len(token) == 1 and token in _DIGITS


def classify_frame(raw: str, catalogue: VariantCatalogue, received_at: datetime) -> Frame:
    """Label one raw frame and decode its fields.

    received_at stands in for the result instant when a result frame carries no
    trailing stamp, so that value is implementation-defined rather than exact.
    """
    tokens = raw.split()
    if not tokens:
        return Unrecognized(reason=UnrecognizedReason.EMPTY, raw=raw)
    if len(tokens) < _HEADER_TOKENS + 1:
        return Unrecognized(reason=UnrecognizedReason.BAD_SHAPE, raw=raw)

    period_id, variant_code, *rest = tokens
    try:
        anchor = decode_period_id(period_id)
    except MalformedPeriodIdError:
        return Unrecognized(reason=UnrecognizedReason.MALFORMED_PERIOD, raw=raw)
    if variant_code not in catalogue:
        return Unrecognized(reason=UnrecognizedReason.UNKNOWN_VARIANT, raw=raw)

    if is_stamp_start(rest[0]):
        if len(rest) > _MAX_STAMP_TOKENS:
            return Unrecognized(reason=UnrecognizedReason.BAD_SHAPE, raw=raw)
        return _announcement(raw, period_id, variant_code, anchor, rest)

    if len(rest) > _MAX_STAMP_TOKENS + 1:
        return Unrecognized(reason=UnrecognizedReason.BAD_SHAPE, raw=raw)
    return _result(raw, period_id, variant_code, rest, received_at)


def _announcement(
    raw: str,
    period_id: str,
    variant_code: str,
    anchor: datetime,
    stamp: list[str],
) -> Frame:
    try:
        boundary = parse_boundary_stamp(*stamp)
    except MalformedFrameError:
        return Unrecognized(reason=UnrecognizedReason.BAD_TIMESTAMP, raw=raw)
    return Announcement(
        announcement=RoundAnnouncement(
            period_id=period_id,
            variant_code=variant_code,
            anchor_instant=anchor,
            boundary_instant=boundary,
        ),
    )


def _result(raw: str, period_id: str, variant_code: str, rest: list[str], received_at: datetime) -> Frame:
    outcome_token, *stamp = rest
    if not _is_outcome_token(outcome_token):
        return Unrecognized(reason=UnrecognizedReason.BAD_OUTCOME, raw=raw)

    if stamp:
        try:
            result_instant = parse_boundary_stamp(*stamp)
        except MalformedFrameError:
            return Unrecognized(reason=UnrecognizedReason.BAD_TIMESTAMP, raw=raw)
        fallback = False
    else:
        result_instant = received_at
        fallback = True

    return Result(
        result=RoundResult(
            period_id=period_id,
            variant_code=variant_code,
            outcome_number=int(outcome_token),
            result_instant=result_instant,
            received_at_fallback=fallback,
        ),
    )
