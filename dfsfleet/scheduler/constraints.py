"""
Placement constraints over single offers.

One Constraint type serves every role; its thresholds come from the role's
NodeConfig. Callers test an offer in increasing strictness:

1. can_be_satisfied: enough unreserved resources to request a reservation
2. is_satisfied_for_reservations: enough resources already reserved for
   this scheduler to request a persistent volume
3. is_satisfied_for_volumes: the expected volume exists on the offer, so
   the task can be launched
"""

from dataclasses import dataclass
from typing import Callable, Dict, Optional

from dfsfleet.cluster.protos import Offer, Resource
from dfsfleet.state.phase import AcquisitionPhase
from dfsfleet.state.records import VolumeRecord, role_id
from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.constants import CPUS, DISK, MEM


@dataclass(frozen=True)
class Constraint:
    """
    Resource and volume requirements for placing one task of a role.
    
    Attributes:
        role: Role id being placed
        phase: Acquisition phase that produced the constraint
        cpus: CPUs needed, executor included
        mem: Memory in MB needed, executor and JVM overhead included
        disk: Disk in MB needed for the volume
        reservation_role: Role the scheduler reserves resources under
        principal: Principal the scheduler reserves resources with
        expected_volume: Volume the task must run on
    """
    role: str
    phase: AcquisitionPhase
    cpus: float
    mem: float
    disk: float
    reservation_role: str
    principal: str
    expected_volume: Optional[VolumeRecord] = None
    
    @classmethod
    def for_role(
        cls,
        role: str,
        phase: AcquisitionPhase,
        config: FrameworkConfig,
        expected_volume: Optional[VolumeRecord] = None,
    ) -> "Constraint":
        node = config.get_node_config(role_id(role))
        return cls(
            role=node.node_type,
            phase=phase,
            cpus=config.needed_cpus(node.cpus),
            mem=config.needed_mem(node.max_heap),
            disk=node.disk_size,
            reservation_role=config.role,
            principal=config.principal,
            expected_volume=expected_volume,
        )
    
    @property
    def expected_persistence_id(self) -> Optional[str]:
        return self.expected_volume.persistence_id if self.expected_volume else None
    
    def can_be_satisfied(self, offer: Offer) -> bool:
        """Whether the offer's unreserved resources cover every threshold."""
        totals = _sum_resources(offer, Resource.is_unreserved)
        return self._sufficient(totals)
    
    def is_satisfied_for_reservations(self, offer: Offer) -> bool:
        """
        Whether resources reserved for this scheduler cover every threshold.
        
        Reserved disk backing a volume other than the expected one belongs to
        another task and does not count.
        """
        totals = _sum_resources(offer, self._reserved_for_this_task)
        return self._sufficient(totals)
    
    def is_satisfied_for_volumes(self, offer: Offer) -> bool:
        """Whether the offer carries the expected volume with enough reserved resources."""
        expected_id = self.expected_persistence_id
        if expected_id is None:
            return False
        
        volume_disk = sum(
            r.scalar for r in offer.resources
            if r.name == DISK
            and self._reserved(r)
            and r.persistence_id == expected_id
        )
        if volume_disk < self.disk:
            return False
        
        totals = _sum_resources(offer, self._reserved)
        return totals[CPUS] >= self.cpus and totals[MEM] >= self.mem
    
    def _reserved(self, resource: Resource) -> bool:
        return resource.is_reserved_for(self.reservation_role, self.principal)
    
    def _reserved_for_this_task(self, resource: Resource) -> bool:
        if not self._reserved(resource):
            return False
        volume_id = resource.persistence_id
        return volume_id is None or volume_id == self.expected_persistence_id
    
    def _sufficient(self, totals: Dict[str, float]) -> bool:
        return (
            totals[CPUS] >= self.cpus
            and totals[MEM] >= self.mem
            and totals[DISK] >= self.disk
        )


def _sum_resources(offer: Offer, predicate: Callable[[Resource], bool]) -> Dict[str, float]:
    totals = {CPUS: 0.0, MEM: 0.0, DISK: 0.0}
    for resource in offer.resources:
        if resource.name in totals and predicate(resource):
            totals[resource.name] += resource.scalar
    return totals
