"""
dfsfleet - Scheduler that deploys and maintains a distributed file system
on a cluster resource manager.

The package implements:
- Durable task and volume registries over a versioned key/value store
- Status merging that preserves durable status labels
- Orphaned volume detection
- Phased acquisition of journal nodes, name nodes and data nodes
- Per-role resource, reservation and volume constraints over offers
"""

__version__ = "0.1.0"

from dfsfleet import cluster, scheduler, state

__all__ = [
    "cluster",
    "scheduler",
    "state",
]
