"""
Chooses the next placement constraint from the acquisition phase.
"""

import uuid
from typing import Optional

from dfsfleet.cluster.protos import DiskInfo
from dfsfleet.scheduler.constraints import Constraint
from dfsfleet.state.phase import AcquisitionPhase
from dfsfleet.state.records import NodeRole, VolumeRecord
from dfsfleet.state.registry import StateRegistry
from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.constants import TOTAL_NAME_NODES
from dfsfleet.utils.logging import get_logger

logger = get_logger(__name__)

_PHASE_ROLES = {
    AcquisitionPhase.JOURNAL_NODES: NodeRole.JOURNAL,
    AcquisitionPhase.NAME_NODES: NodeRole.NAME,
    AcquisitionPhase.DATA_NODES: NodeRole.DATA,
}


class ConstraintProvider:
    """
    Walks the acquisition phases and yields a constraint for the role being filled.
    
    The phase only moves forward. get_next_constraint() returns None once the
    topology is satisfied, and also while waiting for the name nodes to
    initialize; the phase attribute tells the two apart.
    """
    
    def __init__(
        self,
        state: StateRegistry,
        config: FrameworkConfig,
        phase: AcquisitionPhase = AcquisitionPhase.JOURNAL_NODES,
        expected_volume: Optional[VolumeRecord] = None,
    ):
        """
        Initialize the provider.
        
        Args:
            state: State registry supplying live counts and volumes
            config: Framework configuration
            phase: Phase to start from
            expected_volume: Volume to place the next task on; the first
                orphaned volume of the role is used when omitted
        """
        self.state = state
        self.config = config
        self.phase = phase
        self._expected_volume = expected_volume
    
    def target_count(self, role: NodeRole) -> int:
        if role == NodeRole.JOURNAL:
            return self.config.journal_node_count
        if role == NodeRole.NAME:
            return TOTAL_NAME_NODES
        return self.config.data_node_count
    
    def get_next_constraint(self) -> Optional[Constraint]:
        """
        Constraint for the next task to place, or None if nothing should be placed.
        """
        while True:
            if self.phase == AcquisitionPhase.STEADY_STATE:
                return None
            
            if self.phase == AcquisitionPhase.FORMAT_NAME_NODES:
                if not self.state.name_nodes_initialized():
                    logger.debug("Waiting for name nodes to initialize")
                    return None
                self._advance()
                continue
            
            role = _PHASE_ROLES[self.phase]
            count = self.state.live_count(role)
            target = self.target_count(role)
            
            if count < target:
                logger.debug(
                    "Role below target",
                    phase=self.phase.value,
                    role=role.value,
                    count=count,
                    target=target,
                )
                return Constraint.for_role(role, self.phase, self.config, self._volume_for(role))
            
            self._advance()
    
    def new_volume(self, role: NodeRole) -> VolumeRecord:
        """Fresh volume identity for a task of the role not yet launched."""
        suffix = uuid.uuid4().hex
        return VolumeRecord(
            info=DiskInfo(
                persistence_id=f"{role.value}-{suffix}",
                container_path=self.config.volume_path,
            ),
            task_id=f"{role.value}.{suffix}",
        )
    
    def _advance(self) -> None:
        previous = self.phase
        self.phase = self.phase.next()
        
        logger.info(
            "Advanced acquisition phase",
            previous=previous.value,
            phase=self.phase.value,
        )
    
    def _volume_for(self, role: NodeRole) -> Optional[VolumeRecord]:
        if self._expected_volume is not None:
            return self._expected_volume
        
        orphans = self.state.orphaned_volumes(role.value)
        if orphans:
            return min(orphans, key=lambda v: v.persistence_id)
        return None
