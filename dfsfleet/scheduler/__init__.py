"""
Offer-matching constraint engine.
"""

from dfsfleet.scheduler.constraints import Constraint
from dfsfleet.scheduler.offers import OfferAction, OfferDecision, OfferEvaluator
from dfsfleet.scheduler.provider import ConstraintProvider
from dfsfleet.scheduler.status import TaskStatusFactory

__all__ = [
    "Constraint",
    "ConstraintProvider",
    "OfferAction",
    "OfferDecision",
    "OfferEvaluator",
    "TaskStatusFactory",
]
