"""Runtime context for a single Orderwatch process.

Encapsulates user-selected operating modes that alter behaviour without
changing configuration values.  One :class:`RunContext` is created in
:mod:`orderwatch.__main__` and threaded through the layers that care.

Current flags
-------------
dry_run
    Run the full engine (login, verification, polling, liveness) but
    **log** new-order notifications instead of delivering them.

once
    Perform a single login + order check and exit instead of running the
    continuous engine.

    >>> RunContext(dry_run=True).should_notify
    False
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

__all__ = ["RunContext"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunContext:
    """Immutable container for per-process operating-mode flags.

    Attributes:
        dry_run: Log notifications instead of sending them.
        once: Single check, then exit.
    """

    dry_run: bool = field(default=False)
    once: bool = field(default=False)

    @property
    def should_notify(self) -> bool:
        """``True`` when notifications must really be delivered."""
        return not self.dry_run

    @property
    def mode_label(self) -> str:
        """``"dry-run"`` or ``"live"``, suffixed with ``"/once"`` if set."""
        label = "dry-run" if self.dry_run else "live"
        return f"{label}/once" if self.once else label

    def __str__(self) -> str:
        return f"RunContext(mode={self.mode_label}, should_notify={self.should_notify})"
