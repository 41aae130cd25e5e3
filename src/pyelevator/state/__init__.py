"""State layer.

Holds the persisted current-level store (single writer: the authority) and
the per-client process state: the optimistic cache, the recently-seen
request ids and the pending rerender timers.
"""

from pyelevator.state.dedup import RecentRequestIds
from pyelevator.state.rerender import RerenderScheduler
from pyelevator.state.runtime import ElevatorRuntimeState
from pyelevator.state.store import CurrentLevelStore, LevelSnapshot, LevelSource, OptimisticLevelCache

__all__ = [
    "CurrentLevelStore",
    "ElevatorRuntimeState",
    "LevelSnapshot",
    "LevelSource",
    "OptimisticLevelCache",
    "RecentRequestIds",
    "RerenderScheduler",
]
