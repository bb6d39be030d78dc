"""Frozen domain records shared by the classifier, the store and the server."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field

from rounds.logic.outcome import MAX_OUTCOME, MIN_OUTCOME, Color, Size, derive_color_and_size


class RoundAnnouncement(BaseModel):
    """A round boundary announced by the server.

    anchor_instant is the end of the round, decoded from the period id.
    boundary_instant is the server's own wall-clock stamp from the frame.
    """

    model_config = ConfigDict(frozen=True)

    period_id: str
    variant_code: str
    anchor_instant: datetime
    boundary_instant: datetime | None = None


class RoundResult(BaseModel):
    """The settled outcome of one round. Colour and size are always derived, never received."""

    model_config = ConfigDict(frozen=True)

    period_id: str
    variant_code: str
    outcome_number: int = Field(ge=MIN_OUTCOME, le=MAX_OUTCOME)
    result_instant: datetime
    # True when the frame carried no stamp and result_instant is the local receipt time.
    received_at_fallback: bool = False

    @computed_field  # type: ignore[prop-decorator]
    @property
    def color(self) -> Color:
        return derive_color_and_size(self.outcome_number)[0]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def size(self) -> Size:
        return derive_color_and_size(self.outcome_number)[1]


class VariantState(BaseModel):
    """Presentation state for one variant. Replaced wholesale on every change."""

    model_config = ConfigDict(frozen=True)

    variant_code: str
    current_period_id: str = ""
    previous_period_id: str = ""
    anchor_instant: datetime | None = None
    remaining_seconds: int = 0
    pending_result: RoundResult | None = None


class FeedSnapshot(BaseModel):
    """Everything a consumer needs at once: connectivity plus every variant's state."""

    model_config = ConfigDict(frozen=True)

    ready: bool
    connectivity_error: bool
    variants: list[VariantState]
