"""
Offer, resource and task status model consumed from the cluster manager.

Mirrors the subset of the resource manager's messages the scheduler reads.
Every type converts to and from plain dictionaries so records holding them
can be persisted.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from dfsfleet.utils.constants import UNRESERVED_ROLE


class TaskState(str, Enum):
    """Task lifecycle states reported by the cluster manager."""
    
    STAGING = "TASK_STAGING"
    STARTING = "TASK_STARTING"
    RUNNING = "TASK_RUNNING"
    KILLING = "TASK_KILLING"
    FINISHED = "TASK_FINISHED"
    FAILED = "TASK_FAILED"
    KILLED = "TASK_KILLED"
    LOST = "TASK_LOST"
    ERROR = "TASK_ERROR"
    
    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    TaskState.FAILED,
    TaskState.FINISHED,
    TaskState.KILLED,
    TaskState.LOST,
    TaskState.ERROR,
})


@dataclass(frozen=True)
class FrameworkID:
    """Durable identity the cluster manager assigned to the scheduler."""
    value: str
    
    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FrameworkID":
        return cls(value=data["value"])


@dataclass(frozen=True)
class Label:
    """Key/value annotation on a task status."""
    key: str
    value: str


@dataclass(frozen=True)
class TaskStatus:
    """
    Status update for a task.
    
    Attributes:
        task_id: Task the update refers to
        state: Lifecycle state
        labels: Durable out-of-band facts about the task
        slave_id: Agent running the task
        message: Human-readable detail
    """
    task_id: str
    state: TaskState
    labels: List[Label] = field(default_factory=list)
    slave_id: str = ""
    message: str = ""
    
    def has_labels(self) -> bool:
        return bool(self.labels)
    
    def with_labels(self, labels: List[Label]) -> "TaskStatus":
        """Copy of this status carrying the given labels."""
        return replace(self, labels=list(labels))
    
    def label_value(self, key: str) -> Optional[str]:
        for label in self.labels:
            if label.key == key:
                return label.value
        return None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "state": self.state.value,
            "labels": [{"key": l.key, "value": l.value} for l in self.labels],
            "slave_id": self.slave_id,
            "message": self.message,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskStatus":
        return cls(
            task_id=data["task_id"],
            state=TaskState(data["state"]),
            labels=[Label(l["key"], l["value"]) for l in data.get("labels", [])],
            slave_id=data.get("slave_id", ""),
            message=data.get("message", ""),
        )


@dataclass(frozen=True)
class DiskInfo:
    """
    Disk descriptor of a resource.
    
    A disk with a persistence id is a persistent volume that survives the
    task it was created for.
    """
    persistence_id: Optional[str] = None
    container_path: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "persistence_id": self.persistence_id,
            "container_path": self.container_path,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiskInfo":
        return cls(
            persistence_id=data.get("persistence_id"),
            container_path=data.get("container_path"),
        )


@dataclass(frozen=True)
class Resource:
    """
    Scalar resource carried by an offer or consumed by a task.
    
    Attributes:
        name: Resource kind (cpus, mem, disk)
        scalar: Magnitude
        role: Role the resource is allocated to ("*" when unreserved)
        principal: Principal holding a dynamic reservation, if any
        disk: Disk descriptor, for disk resources backed by a volume
    """
    name: str
    scalar: float
    role: str = UNRESERVED_ROLE
    principal: Optional[str] = None
    disk: Optional[DiskInfo] = None
    
    def is_unreserved(self) -> bool:
        return self.role == UNRESERVED_ROLE and self.principal is None
    
    def is_reserved_for(self, role: str, principal: str) -> bool:
        return self.role == role and self.principal == principal
    
    @property
    def persistence_id(self) -> Optional[str]:
        return self.disk.persistence_id if self.disk else None
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "scalar": self.scalar,
            "role": self.role,
            "principal": self.principal,
            "disk": self.disk.to_dict() if self.disk else None,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Resource":
        disk = data.get("disk")
        return cls(
            name=data["name"],
            scalar=data["scalar"],
            role=data.get("role", UNRESERVED_ROLE),
            principal=data.get("principal"),
            disk=DiskInfo.from_dict(disk) if disk else None,
        )


@dataclass(frozen=True)
class Offer:
    """Resources on one agent proposed to the scheduler."""
    id: str
    framework_id: str
    slave_id: str
    hostname: str
    resources: List[Resource] = field(default_factory=list)


@dataclass(frozen=True)
class CommandInfo:
    """Command an executor runs, plus URIs fetched into its sandbox."""
    value: str = ""
    uris: List[str] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "uris": list(self.uris)}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CommandInfo":
        return cls(value=data.get("value", ""), uris=list(data.get("uris", [])))


@dataclass(frozen=True)
class ExecutorInfo:
    """Executor descriptor attached to a task."""
    executor_id: str
    name: str
    command: Optional[CommandInfo] = None
    resources: List[Resource] = field(default_factory=list)
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "executor_id": self.executor_id,
            "name": self.name,
            "command": self.command.to_dict() if self.command else None,
            "resources": [r.to_dict() for r in self.resources],
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutorInfo":
        command = data.get("command")
        return cls(
            executor_id=data["executor_id"],
            name=data.get("name", ""),
            command=CommandInfo.from_dict(command) if command else None,
            resources=[Resource.from_dict(r) for r in data.get("resources", [])],
        )
