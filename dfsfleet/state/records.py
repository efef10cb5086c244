"""
Task and volume records persisted by the state registry.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from dfsfleet.cluster.protos import DiskInfo, ExecutorInfo, Offer, Resource, TaskStatus
from dfsfleet.utils.constants import DATA_NODE_ID, JOURNAL_NODE_ID, NAME_NODE_ID


class NodeRole(str, Enum):
    """Storage roles the scheduler places."""
    
    JOURNAL = JOURNAL_NODE_ID
    NAME = NAME_NODE_ID
    DATA = DATA_NODE_ID


def role_id(role: str) -> str:
    """Plain role id for a NodeRole or a role string."""
    return role.value if isinstance(role, NodeRole) else role


@dataclass
class TaskRecord:
    """
    A launched storage task.
    
    Attributes:
        id: Task id
        role: Role id of the task (journalnode, namenode, datanode)
        name: Task name, prefixed with the role id
        hostname: Host the task was placed on
        slave_id: Agent the task was placed on
        resources: Resources consumed by the task
        executor: Executor running the task
        status: Last known status, None until the first update
    """
    id: str
    role: str
    name: str
    hostname: str
    slave_id: str = ""
    resources: List[Resource] = field(default_factory=list)
    executor: Optional[ExecutorInfo] = None
    status: Optional[TaskStatus] = None
    
    @classmethod
    def from_offer(
        cls,
        offer: Offer,
        task_id: str,
        role: str,
        name: str,
        resources: List[Resource],
        executor: Optional[ExecutorInfo] = None,
    ) -> "TaskRecord":
        """Record for a task launched on the given offer."""
        return cls(
            id=task_id,
            role=role_id(role),
            name=name,
            hostname=offer.hostname,
            slave_id=offer.slave_id,
            resources=list(resources),
            executor=executor,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "name": self.name,
            "hostname": self.hostname,
            "slave_id": self.slave_id,
            "resources": [r.to_dict() for r in self.resources],
            "executor": self.executor.to_dict() if self.executor else None,
            "status": self.status.to_dict() if self.status else None,
        }
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TaskRecord":
        executor = data.get("executor")
        status = data.get("status")
        return cls(
            id=data["id"],
            role=data["role"],
            name=data.get("name", data["role"]),
            hostname=data["hostname"],
            slave_id=data.get("slave_id", ""),
            resources=[Resource.from_dict(r) for r in data.get("resources", [])],
            executor=ExecutorInfo.from_dict(executor) if executor else None,
            status=TaskStatus.from_dict(status) if status else None,
        )


@dataclass
class VolumeRecord:
    """
    A persistent volume reserved for a task.
    
    The task id is a weak reference: the task record may be gone, in which
    case the volume is orphaned and can be handed to a replacement task.
    """
    info: DiskInfo
    task_id: str
    
    @property
    def persistence_id(self) -> str:
        return self.info.persistence_id
    
    def to_dict(self) -> Dict[str, Any]:
        return {"info": self.info.to_dict(), "task_id": self.task_id}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VolumeRecord":
        return cls(info=DiskInfo.from_dict(data["info"]), task_id=data["task_id"])
