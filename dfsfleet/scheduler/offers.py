"""
Offer evaluation for the offer-matching loop.

The loop that talks to the cluster manager hands every offer to
OfferEvaluator.evaluate() and carries out the returned decision: decline,
reserve resources, create a persistent volume, or launch the task.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional

from dfsfleet.cluster.builders import ResourceBuilder
from dfsfleet.cluster.protos import Offer, Resource
from dfsfleet.scheduler.constraints import Constraint
from dfsfleet.scheduler.provider import ConstraintProvider
from dfsfleet.state.records import NodeRole, TaskRecord, VolumeRecord
from dfsfleet.state.registry import StateRegistry
from dfsfleet.utils.logging import get_logger, offer_context

logger = get_logger(__name__)


class OfferAction(str, Enum):
    """What the offer-matching loop should do with an offer."""
    
    DECLINE = "decline"
    RESERVE = "reserve"
    CREATE_VOLUME = "create_volume"
    LAUNCH = "launch"


@dataclass
class OfferDecision:
    """
    Outcome of evaluating one offer.
    
    Attributes:
        action: Action to take
        offer: Evaluated offer
        reason: Why the action was chosen
        constraint: Constraint the offer was evaluated against
        resources: Resources to reserve, to turn into a volume, or to launch with
        volume: Volume being created or launched on
        task: Task to launch, for LAUNCH decisions
    """
    action: OfferAction
    offer: Offer
    reason: str
    constraint: Optional[Constraint] = None
    resources: List[Resource] = field(default_factory=list)
    volume: Optional[VolumeRecord] = None
    task: Optional[TaskRecord] = None


class OfferEvaluator:
    """
    Applies the current constraint to offers.
    
    Volumes are recorded in the state registry when their creation is
    requested. Task records are left to the caller, which records them once
    the launch has been sent.
    """
    
    def __init__(self, state: StateRegistry, provider: ConstraintProvider):
        self.state = state
        self.provider = provider
        self.resource_builder = ResourceBuilder(
            provider.config.role,
            provider.config.principal,
        )
    
    def evaluate(self, offer: Offer) -> OfferDecision:
        """
        Decide what to do with an offer.
        
        Args:
            offer: Offer from the cluster manager
        
        Returns:
            Decision for the offer
        """
        with offer_context(offer.id, offer.hostname):
            return self._evaluate(offer)
    
    def _evaluate(self, offer: Offer) -> OfferDecision:
        constraint = self.provider.get_next_constraint()
        if constraint is None:
            return self._decline(offer, f"nothing to place in phase {self.provider.phase.value}")
        
        if self.state.host_occupied(offer.hostname, constraint.role):
            return self._decline(offer, f"host already runs a {constraint.role}", constraint)
        
        volume = self._volume_on_offer(constraint, offer)
        if volume is not None:
            constraint = replace(constraint, expected_volume=volume)
            if constraint.is_satisfied_for_volumes(offer):
                return self._launch(offer, constraint, volume)
            return self._decline(offer, "volume present but reserved resources are short", constraint)
        
        if constraint.is_satisfied_for_reservations(offer):
            return self._create_volume(offer, constraint)
        
        if constraint.can_be_satisfied(offer):
            return self._decide(OfferDecision(
                action=OfferAction.RESERVE,
                offer=offer,
                reason="unreserved resources sufficient",
                constraint=constraint,
                resources=[
                    self.resource_builder.reserved_cpus(constraint.cpus),
                    self.resource_builder.reserved_mem(constraint.mem),
                    self.resource_builder.reserved_disk(constraint.disk),
                ],
            ))
        
        return self._decline(offer, "insufficient resources", constraint)
    
    def _volume_on_offer(self, constraint: Constraint, offer: Offer) -> Optional[VolumeRecord]:
        """Volume of the constraint's role, not owned by a live task, present on the offer."""
        offered_ids = {r.persistence_id for r in offer.resources if r.persistence_id}
        if not offered_ids:
            return None
        
        candidates = self.state.orphaned_volumes(constraint.role)
        if constraint.expected_volume is not None:
            candidates.insert(0, constraint.expected_volume)
        
        for volume in candidates:
            if volume.persistence_id in offered_ids:
                return volume
        return None
    
    def _create_volume(self, offer: Offer, constraint: Constraint) -> OfferDecision:
        volume = self.provider.new_volume(NodeRole(constraint.role))
        self.state.record_volume(volume)
        
        return self._decide(OfferDecision(
            action=OfferAction.CREATE_VOLUME,
            offer=offer,
            reason="reserved resources sufficient",
            constraint=constraint,
            resources=[
                self.resource_builder.volume_disk(
                    constraint.disk,
                    volume.persistence_id,
                    volume.info.container_path,
                ),
            ],
            volume=volume,
        ))
    
    def _launch(self, offer: Offer, constraint: Constraint, volume: VolumeRecord) -> OfferDecision:
        resources = [
            self.resource_builder.reserved_cpus(constraint.cpus),
            self.resource_builder.reserved_mem(constraint.mem),
            self.resource_builder.volume_disk(
                constraint.disk,
                volume.persistence_id,
                volume.info.container_path,
            ),
        ]
        task = TaskRecord.from_offer(
            offer,
            task_id=volume.task_id,
            role=constraint.role,
            name=f"{constraint.role}{self.state.live_count(constraint.role) + 1}",
            resources=resources,
        )
        
        return self._decide(OfferDecision(
            action=OfferAction.LAUNCH,
            offer=offer,
            reason="volume and reservations present",
            constraint=constraint,
            resources=resources,
            volume=volume,
            task=task,
        ))
    
    def _decline(self, offer: Offer, reason: str, constraint: Optional[Constraint] = None) -> OfferDecision:
        return self._decide(OfferDecision(
            action=OfferAction.DECLINE,
            offer=offer,
            reason=reason,
            constraint=constraint,
        ))
    
    def _decide(self, decision: OfferDecision) -> OfferDecision:
        logger.info(
            "Evaluated offer",
            action=decision.action.value,
            role=decision.constraint.role if decision.constraint else None,
            reason=decision.reason,
        )
        return decision
