"""Status events carrying name node initialization labels."""

from dfsfleet.cluster.builders import TaskStatusBuilder
from dfsfleet.cluster.protos import Label, TaskState, TaskStatus
from dfsfleet.utils.constants import NN_STATUS_INIT_VAL, NN_STATUS_KEY, NN_STATUS_UNINIT_VAL


class TaskStatusFactory:
    """Builds the status events name node executors report."""
    
    @staticmethod
    def create_name_node_status(task_id: str, initialized: bool, slave_id: str = "") -> TaskStatus:
        """
        Running status labelled with the name node's initialization state.
        
        Args:
            task_id: Name node task id
            initialized: Whether the name node has been formatted or bootstrapped
            slave_id: Agent running the task
        
        Returns:
            Task status
        """
        value = NN_STATUS_INIT_VAL if initialized else NN_STATUS_UNINIT_VAL
        return TaskStatusBuilder.create_task_status(
            task_id=task_id,
            slave_id=slave_id,
            state=TaskState.RUNNING,
            message="name node status",
            labels=[Label(NN_STATUS_KEY, value)],
        )
