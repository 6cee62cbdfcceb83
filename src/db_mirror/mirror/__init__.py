"""Mirror runs: table replication, atomic swap, status and the service facade.

Usage:
    from db_mirror.mirror import MirrorService, AtomicSwapCoordinator, TableReplicator
"""

from db_mirror.mirror.models import (
    Direction,
    HealthReport,
    MirrorStatus,
    RunPhase,
    SwapReport,
)
from db_mirror.mirror.replicator import TableReplicator
from db_mirror.mirror.service import MirrorService
from db_mirror.mirror.status import MirrorStatusStore
from db_mirror.mirror.swap import AtomicSwapCoordinator

__all__ = [
    "AtomicSwapCoordinator",
    "Direction",
    "HealthReport",
    "MirrorService",
    "MirrorStatus",
    "MirrorStatusStore",
    "RunPhase",
    "SwapReport",
    "TableReplicator",
]
