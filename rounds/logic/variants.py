"""Static catalogue of game variants."""

from collections.abc import Iterable, Iterator

from pydantic import BaseModel, ConfigDict, Field

from rounds.logic.exceptions import UnknownVariantError


class GameVariant(BaseModel):
    """One fixed-duration game mode."""

    model_config = ConfigDict(frozen=True)

    display_label: str = Field(min_length=1)
    code: str = Field(min_length=1, pattern=r"^\S+$")
    round_duration_seconds: int = Field(gt=0)


class VariantCatalogue:
    """Ordered, immutable set of variants keyed by code."""

    def __init__(self, variants: Iterable[GameVariant]) -> None:
        self._variants: dict[str, GameVariant] = {}
        for variant in variants:
            if variant.code in self._variants:
                raise ValueError(f"duplicate variant code {variant.code!r}")
            self._variants[variant.code] = variant
        if not self._variants:
            raise ValueError("variant catalogue must not be empty")

    @property
    def codes(self) -> tuple[str, ...]:
        return tuple(self._variants)

    def get(self, code: str) -> GameVariant | None:
        return self._variants.get(code)

    def require(self, code: str) -> GameVariant:
        """Return the variant for code, raising UnknownVariantError if absent."""
        variant = self._variants.get(code)
        if variant is None:
            raise UnknownVariantError(code)
        return variant

    def __contains__(self, code: object) -> bool:
        return code in self._variants

    def __iter__(self) -> Iterator[GameVariant]:
        return iter(self._variants.values())

    def __len__(self) -> int:
        return len(self._variants)


DEFAULT_CATALOGUE = VariantCatalogue(
    [
        GameVariant(display_label="Win Go 30Sec", code="30S", round_duration_seconds=30),
        GameVariant(display_label="Win Go 1Min", code="1M", round_duration_seconds=60),
        GameVariant(display_label="Win Go 3Min", code="3M", round_duration_seconds=180),
        GameVariant(display_label="Win Go 5Min", code="5M", round_duration_seconds=300),
    ],
)
