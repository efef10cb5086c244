"""
Acquisition phases of cluster bootstrap.

The scheduler fills one role at a time, in this order. A phase is only
ever left for a later one.
"""

from enum import Enum
from typing import Optional


class AcquisitionPhase(str, Enum):
    """Ordered bootstrap stages."""
    
    JOURNAL_NODES = "journal_nodes"          # Acquire the journal quorum
    NAME_NODES = "name_nodes"                # Acquire the name node pair
    FORMAT_NAME_NODES = "format_name_nodes"  # Wait for both name nodes to initialize
    DATA_NODES = "data_nodes"                # Acquire data nodes
    STEADY_STATE = "steady_state"            # Topology satisfied
    
    def next(self) -> Optional["AcquisitionPhase"]:
        """The phase after this one, or None for the last."""
        phases = list(AcquisitionPhase)
        index = phases.index(self)
        if index + 1 < len(phases):
            return phases[index + 1]
        return None
