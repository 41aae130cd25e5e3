"""Per-client process state bundle."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from pyelevator.config import ElevatorConfig
from pyelevator.state.dedup import RecentRequestIds
from pyelevator.state.rerender import RerenderScheduler
from pyelevator.state.store import OptimisticLevelCache


@dataclass
class ElevatorRuntimeState:
    """Optimistic cache, seen request ids and rerender timers of one client.

    Constructed once per client and passed to the components that need it.
    """

    optimistic: OptimisticLevelCache = field(default_factory=OptimisticLevelCache)
    seen: RecentRequestIds = field(default_factory=RecentRequestIds)
    rerender: RerenderScheduler = field(default_factory=RerenderScheduler)

    @classmethod
    def from_config(cls, config: ElevatorConfig, *, logger: logging.Logger | None = None) -> ElevatorRuntimeState:
        return cls(
            optimistic=OptimisticLevelCache(),
            seen=RecentRequestIds(
                window_seconds=config.dedup_window_seconds,
                max_entries=config.dedup_max_entries,
            ),
            rerender=RerenderScheduler(delay_seconds=config.rerender_delay_seconds, logger=logger),
        )

    def close(self) -> None:
        self.rerender.cancel_all()
