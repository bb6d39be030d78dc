"""The upstream feed as seen by the supervisor: a closable source of text frames."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


class ConnectionProtocol(ABC):
    """
    One open feed connection.

    Implementations raise ConnectionError from receive_text() once the
    connection is closed or lost; frames() turns that into the end of
    iteration. The supervisor and engine only ever see this interface, so
    tests drive them with an in-memory connection.
    """

    @property
    @abstractmethod
    def connection_id(self) -> str: ...

    @abstractmethod
    async def receive_text(self) -> str:
        """Wait for the next text frame."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    async def frames(self) -> AsyncIterator[str]:
        """Yield frames until the connection goes away."""
        while True:
            try:
                frame = await self.receive_text()
            except (ConnectionError, OSError):  # fmt: skip
                return
            yield frame
