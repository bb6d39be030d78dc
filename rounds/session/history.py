"""HTTP client for recently settled rounds."""

from __future__ import annotations

from http import HTTPStatus
from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from rounds.logic.exceptions import HistoryUnavailableError, MalformedPeriodIdError
from rounds.logic.outcome import MAX_OUTCOME
from rounds.logic.period import decode_period_id
from rounds.logic.types import RoundResult

if TYPE_CHECKING:
    from types import TracebackType

logger = structlog.get_logger()

# The history endpoint reports the round still in progress with this outcome.
PENDING_OUTCOME = -1


class HistoryEntry(BaseModel):
    """One row of the history endpoint: a period and its outcome digit (-1 while pending)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    period_id: str = Field(validation_alias=AliasChoices("period", "period_id"), pattern=r"^\d{14}$")
    outcome_number: int = Field(
        validation_alias=AliasChoices("number", "outcome_number"),
        ge=PENDING_OUTCOME,
        le=MAX_OUTCOME,
    )

    @property
    def is_pending(self) -> bool:
        return self.outcome_number == PENDING_OUTCOME

    def to_result(self, variant_code: str) -> RoundResult | None:
        """Convert a settled entry to a RoundResult stamped at the period's end instant."""
        if self.is_pending:
            return None
        try:
            instant = decode_period_id(self.period_id)
        except MalformedPeriodIdError:
            return None
        return RoundResult(
            period_id=self.period_id,
            variant_code=variant_code,
            outcome_number=self.outcome_number,
            result_instant=instant,
        )


_ENTRIES = TypeAdapter(list[HistoryEntry])


class HistoryClient:
    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def fetch_recent(self, variant_code: str) -> list[HistoryEntry]:
        """Recent rounds for a variant, as returned by GET /results?type=<code>."""
        response = await self._get("/results", params={"type": variant_code})
        if response is None:
            return []
        try:
            return _ENTRIES.validate_json(response.content)
        except ValidationError as e:
            raise HistoryUnavailableError(f"unexpected history payload for {variant_code}: {e}") from e

    async def fetch_result(self, period_id: str) -> HistoryEntry | None:
        """Settled outcome for one period, or None when unknown or still pending."""
        response = await self._get(f"/results/{period_id}")
        if response is None:
            return None
        try:
            entry = HistoryEntry.model_validate_json(response.content)
        except ValidationError as e:
            raise HistoryUnavailableError(f"unexpected result payload for {period_id}: {e}") from e
        return None if entry.is_pending else entry

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HistoryClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def _get(self, path: str, params: dict[str, str] | None = None) -> httpx.Response | None:
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as e:
            raise HistoryUnavailableError(f"history request {path} failed: {e}") from e
        if response.status_code == HTTPStatus.NOT_FOUND:
            return None
        if response.status_code != HTTPStatus.OK:
            raise HistoryUnavailableError(f"history request {path} returned {response.status_code}")
        return response
