"""
Builders for cluster-manager messages.

Used when the scheduler asks for reservations and volumes, and by the
status adapter that turns cluster-manager updates into TaskStatus events.
"""

from typing import List, Optional

from dfsfleet.cluster.protos import DiskInfo, Label, Offer, Resource, TaskState, TaskStatus
from dfsfleet.utils.constants import CPUS, DISK, MEM, UNRESERVED_ROLE


class ResourceBuilder:
    """Creates scalar resources, reserved or not, for one role."""
    
    def __init__(self, role: str, principal: Optional[str] = None):
        self.role = role
        self.principal = principal
    
    @staticmethod
    def create_scalar_resource(name: str, value: float, role: str = UNRESERVED_ROLE) -> Resource:
        return Resource(name=name, scalar=value, role=role)
    
    def create_cpu_resource(self, value: float) -> Resource:
        return self.create_scalar_resource(CPUS, value)
    
    def create_mem_resource(self, value: float) -> Resource:
        return self.create_scalar_resource(MEM, value)
    
    def create_disk_resource(self, value: float) -> Resource:
        return self.create_scalar_resource(DISK, value)
    
    def reserved_cpus(self, value: float, role: Optional[str] = None, principal: Optional[str] = None) -> Resource:
        return self._reserved(CPUS, value, role, principal)
    
    def reserved_mem(self, value: float, role: Optional[str] = None, principal: Optional[str] = None) -> Resource:
        return self._reserved(MEM, value, role, principal)
    
    def reserved_disk(self, value: float, role: Optional[str] = None, principal: Optional[str] = None) -> Resource:
        return self._reserved(DISK, value, role, principal)
    
    def volume_disk(
        self,
        value: float,
        persistence_id: str,
        container_path: str,
        role: Optional[str] = None,
        principal: Optional[str] = None,
    ) -> Resource:
        """Reserved disk backed by a persistent volume."""
        disk = self.reserved_disk(value, role, principal)
        return Resource(
            name=disk.name,
            scalar=disk.scalar,
            role=disk.role,
            principal=disk.principal,
            disk=DiskInfo(persistence_id=persistence_id, container_path=container_path),
        )
    
    def _reserved(self, name: str, value: float, role: Optional[str], principal: Optional[str]) -> Resource:
        return Resource(
            name=name,
            scalar=value,
            role=role or self.role,
            principal=principal or self.principal,
        )


class OfferBuilder:
    """Accumulates resources into an Offer."""
    
    def __init__(self, offer_id: str, framework_id: str, slave_id: str, hostname: str):
        self._offer_id = offer_id
        self._framework_id = framework_id
        self._slave_id = slave_id
        self._hostname = hostname
        self._resources: List[Resource] = []
    
    def add_resource(self, resource: Resource) -> "OfferBuilder":
        self._resources.append(resource)
        return self
    
    def add_resources(self, resources: List[Resource]) -> "OfferBuilder":
        self._resources.extend(resources)
        return self
    
    def build(self) -> Offer:
        return Offer(
            id=self._offer_id,
            framework_id=self._framework_id,
            slave_id=self._slave_id,
            hostname=self._hostname,
            resources=list(self._resources),
        )


class TaskStatusBuilder:
    """Creates TaskStatus events."""
    
    @staticmethod
    def create_task_status(
        task_id: str,
        slave_id: str,
        state: TaskState,
        message: str = "",
        labels: Optional[List[Label]] = None,
    ) -> TaskStatus:
        return TaskStatus(
            task_id=task_id,
            state=state,
            labels=list(labels or []),
            slave_id=slave_id,
            message=message,
        )
