from __future__ import annotations

from dataclasses import dataclass, field
from typing import Final, Literal


DEFAULT_MAX_RELATION_DEPTH: Final[int] = 1
DEFAULT_CONNECTIVE: Final[Literal["AND"]] = "AND"
CONNECTIVES: Final[frozenset[str]] = frozenset({"AND", "OR"})


@dataclass(slots=True, frozen=True)
class Config:
    """Settings shared by every mapper created from one :class:`~sqla_entities.Locator`.

    Attributes:
        max_relation_depth: Hydration depth at which relation proxies stop being
            registered automatically. ``1`` means top-level entities get their
            relations registered and the entities those relations load do not.
        strict: Raise ``ValueError`` for unknown keys in insert/update data.
            When ``False`` such keys are dropped with a warning.
    """

    max_relation_depth: int = field(default=DEFAULT_MAX_RELATION_DEPTH)
    strict: bool = field(default=True)

    def __post_init__(self) -> None:
        if self.max_relation_depth < 0:
            raise ValueError("max_relation_depth must be >= 0")
