"""Typed exceptions for the round feed.

Frame-level problems (MalformedFrameError and its subclasses, UnknownVariantError)
never escape the frame classifier: they are converted to Unrecognized frames and
dropped. HistoryUnavailableError is raised by the HTTP history client and handled
by the engine, which carries on without pre-populated history.
"""


class RoundFeedError(Exception):
    """Base exception for round feed errors."""


class MalformedFrameError(RoundFeedError):
    """A frame or one of its tokens has the wrong shape."""


class MalformedPeriodIdError(MalformedFrameError):
    """Token is not 14 digits or encodes an impossible calendar date."""

    def __init__(self, token: str, reason: str) -> None:
        self.token = token
        self.reason = reason
        super().__init__(f"malformed period id {token!r}: {reason}")


class UnknownVariantError(RoundFeedError):
    """Variant code is not in the catalogue."""

    def __init__(self, code: str) -> None:
        self.code = code
        super().__init__(f"unknown variant code {code!r}")


class HistoryUnavailableError(RoundFeedError):
    """The round history endpoint could not be reached or returned unusable data."""
