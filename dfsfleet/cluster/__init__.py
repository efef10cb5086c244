"""
Cluster-manager message model consumed by the scheduler.
"""

from dfsfleet.cluster.builders import OfferBuilder, ResourceBuilder, TaskStatusBuilder
from dfsfleet.cluster.protos import (
    TERMINAL_STATES,
    CommandInfo,
    DiskInfo,
    ExecutorInfo,
    FrameworkID,
    Label,
    Offer,
    Resource,
    TaskState,
    TaskStatus,
)

__all__ = [
    # Model
    "TaskState",
    "TERMINAL_STATES",
    "TaskStatus",
    "Label",
    "FrameworkID",
    "DiskInfo",
    "Resource",
    "Offer",
    "CommandInfo",
    "ExecutorInfo",
    # Builders
    "ResourceBuilder",
    "OfferBuilder",
    "TaskStatusBuilder",
]
