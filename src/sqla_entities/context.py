from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from .config import DEFAULT_MAX_RELATION_DEPTH


@dataclass(slots=True)
class LoadContext:
    """Per-call hydration state.

    Threaded through hydration and relation registration so that cyclic
    entity graphs stop registering relations once ``depth`` reaches
    ``max_depth``. ``auto_loading`` is true while relations are being
    registered automatically; relation proxies created then ignore query
    modifier calls.
    """

    max_depth: int = field(default=DEFAULT_MAX_RELATION_DEPTH)
    depth: int = field(default=0)
    auto_loading: bool = field(default=False)

    @property
    def exhausted(self) -> bool:
        return self.depth >= self.max_depth

    @contextmanager
    def registering(self) -> Iterator[LoadContext]:
        """Enter one level of automatic relation registration.

        Depth and flag are restored on exit, exceptions included. The flag is
        cleared only by the outermost registration.
        """
        outermost = not self.auto_loading
        self.depth += 1
        self.auto_loading = True
        try:
            yield self
        finally:
            self.depth -= 1
            if outermost:
                self.auto_loading = False

    def at_depth(self, depth: int) -> LoadContext:
        """Fresh, not auto-loading context sharing ``max_depth``."""
        return LoadContext(max_depth=self.max_depth, depth=depth)
