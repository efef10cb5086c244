"""
Reads and writes the persisted state of the storage framework.

The registry owns three store namespaces rooted under the framework name:
tasks (TaskRecord by task id), volumes (VolumeRecord by persistence id) and
scheduler (the framework id slot).
"""

from dataclasses import replace
from typing import Iterable, List, Optional, Set

from dfsfleet.cluster.protos import FrameworkID, TaskStatus
from dfsfleet.state.records import NodeRole, TaskRecord, VolumeRecord, role_id
from dfsfleet.state.serializer import SerializationError, deserialize, serialize
from dfsfleet.state.store import (
    CorruptEntryError,
    NamespaceNotFoundError,
    StateFactory,
    StateStore,
    StoreError,
    Variable,
)
from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.constants import (
    FRAMEWORK_ID_KEY,
    NN_STATUS_INIT_VAL,
    NN_STATUS_KEY,
    SCHEDULER_NAMESPACE,
    STATE_ROOT,
    TASK_STATE_INIT_KEY,
    TASKS_NAMESPACE,
    TOTAL_NAME_NODES,
    VOLUMES_NAMESPACE,
)
from dfsfleet.utils.logging import get_logger

logger = get_logger(__name__)


def merge_statuses(curr: Optional[TaskStatus], new: Optional[TaskStatus]) -> Optional[TaskStatus]:
    """
    Merge an incoming status into the stored one.
    
    Labels record durable facts (such as name node initialization) that
    routine status updates do not repeat, so an incoming status without
    labels inherits the stored labels. An incoming status with labels
    replaces them.
    
    Args:
        curr: Stored status, if any
        new: Incoming status
    
    Returns:
        Status to persist
    """
    if curr is None or new is None or new.has_labels():
        return new
    
    if curr.has_labels():
        return new.with_labels(curr.labels)
    
    return new


class StateRegistry:
    """
    Persistent task and volume registries of the scheduler.
    
    All writes are fetch -> mutate -> store against the backing store.
    StoreConflictError from a concurrent writer propagates to the caller,
    which owns the retry policy.
    """
    
    def __init__(self, config: FrameworkConfig, state_factory: StateFactory):
        """
        Initialize the registry.
        
        Args:
            config: Framework configuration
            state_factory: Creates the backing namespaces
        """
        root = f"{STATE_ROOT}/{config.framework_name}"
        self._task_state: StateStore = state_factory.create(f"{root}/{TASKS_NAMESPACE}")
        self._vol_state: StateStore = state_factory.create(f"{root}/{VOLUMES_NAMESPACE}")
        self._scheduler_state: StateStore = state_factory.create(f"{root}/{SCHEDULER_NAMESPACE}")
        
        self._initialize_task_state()
        
        logger.info("StateRegistry initialized", root=root)
    
    def _task_state_initialized(self) -> bool:
        try:
            self._task_state.names()
            return True
        except StoreError:
            return False
    
    def _initialize_task_state(self) -> None:
        """Create the task namespace so that listing it never fails."""
        if self._task_state_initialized():
            return
        
        try:
            var = self._task_state.fetch(TASK_STATE_INIT_KEY)
            var = self._task_state.store(var.mutate(b"\x00"))
            self._task_state.expunge(var)
        except StoreError as e:
            logger.error("Failed to initialize task state", error=str(e))
    
    # Framework id
    
    def set_framework_id(self, framework_id: FrameworkID) -> None:
        var = self._scheduler_state.fetch(FRAMEWORK_ID_KEY)
        self._scheduler_state.store(var.mutate(serialize(framework_id)))
        
        logger.info("Recorded framework id", framework_id=framework_id.value)
    
    def get_framework_id(self) -> Optional[FrameworkID]:
        """Stored framework id, or None if the slot is empty or unreadable."""
        var = self._scheduler_state.fetch(FRAMEWORK_ID_KEY)
        if not var.value:
            return None
        try:
            return deserialize(var.value, FrameworkID)
        except SerializationError as e:
            logger.error("Unreadable framework id", error=str(e))
            return None
    
    def remove_framework_id(self) -> None:
        var = self._scheduler_state.fetch(FRAMEWORK_ID_KEY)
        self._scheduler_state.expunge(var)
        
        logger.info("Removed framework id")
    
    # Writes
    
    def record_task(self, task: TaskRecord) -> None:
        """
        Persist a task, keeping labels of its previously stored status.
        
        The caller's task is left untouched; a copy carrying the merged
        status is stored.
        
        Args:
            task: Task to record
        """
        try:
            var = self._task_state.fetch(task.id)
        except CorruptEntryError as e:
            var = self._discard_task_entry(task.id, e)
        
        curr_status = None
        try:
            curr_status = deserialize(var.value, TaskRecord).status
            logger.debug("Retrieved old status", task_id=task.id, status=curr_status)
        except SerializationError as e:
            logger.debug("No previous status", task_id=task.id, reason=str(e))
        
        record = replace(task, status=merge_statuses(curr_status, task.status))
        self._task_state.store(var.mutate(serialize(record)))
        
        logger.info(
            "Recorded task",
            task_id=record.id,
            role=record.role,
            hostname=record.hostname,
            state=record.status.state.value if record.status else None,
        )
    
    def record_volume(self, volume: VolumeRecord) -> None:
        var = self._vol_state.fetch(volume.persistence_id)
        self._vol_state.store(var.mutate(serialize(volume)))
        
        logger.info(
            "Recorded volume",
            persistence_id=volume.persistence_id,
            task_id=volume.task_id,
        )
    
    def apply(self, status: TaskStatus) -> None:
        """
        Apply a status update to the task registry.
        
        A terminal status removes the task record. Any other status is
        merged into the stored record. Updates for unknown tasks are ignored.
        
        Args:
            status: Status event from the cluster manager
        """
        try:
            var = self._task_state.fetch(status.task_id)
        except CorruptEntryError as e:
            if status.state.is_terminal:
                self._discard_task_entry(status.task_id, e)
            else:
                logger.warning(
                    "Ignoring status for unreadable task",
                    task_id=status.task_id,
                    state=status.state.value,
                    reason=str(e),
                )
            return
        
        if status.state.is_terminal:
            if self._task_state.expunge(var):
                logger.info(
                    "Removed task on terminal status",
                    task_id=status.task_id,
                    state=status.state.value,
                )
            else:
                logger.debug("Terminal status for unknown task", task_id=status.task_id)
            return
        
        try:
            task = deserialize(var.value, TaskRecord)
        except SerializationError as e:
            logger.warning(
                "Ignoring status for unknown task",
                task_id=status.task_id,
                state=status.state.value,
                reason=str(e),
            )
            return
        
        task.status = merge_statuses(task.status, status)
        self._task_state.store(var.mutate(serialize(task)))
        
        logger.info(
            "Updated task status",
            task_id=status.task_id,
            state=status.state.value,
        )
    
    def _discard_task_entry(self, task_id: str, error: StoreError) -> Variable:
        logger.error("Discarding unreadable task entry", task_id=task_id, error=str(error))
        self._task_state.discard(task_id)
        return self._task_state.fetch(task_id)
    
    # Reads
    
    def list_task_ids(self) -> Set[str]:
        return set(self._task_state.names())
    
    def list_persistence_ids(self) -> Set[str]:
        try:
            return set(self._vol_state.names())
        except NamespaceNotFoundError:
            return set()
    
    def list_tasks(self, role_filter: Optional[str] = None) -> List[TaskRecord]:
        """
        All stored tasks, optionally those whose role contains role_filter.
        
        Records that cannot be decoded are logged and skipped.
        """
        tasks = self._load_all(self._task_state, self.list_task_ids(), TaskRecord)
        if role_filter is None:
            return tasks
        
        role_filter = role_id(role_filter)
        return [task for task in tasks if role_filter in task.role]
    
    def list_volumes(self) -> List[VolumeRecord]:
        return self._load_all(self._vol_state, self.list_persistence_ids(), VolumeRecord)
    
    def _load_all(self, store: StateStore, names: Iterable[str], record_type):
        records = []
        for name in names:
            try:
                records.append(deserialize(store.fetch(name).value, record_type))
            except (CorruptEntryError, SerializationError) as e:
                logger.error(
                    "Skipping unreadable record",
                    namespace=store.path,
                    name=name,
                    error=str(e),
                )
        return records
    
    def journal_nodes(self) -> List[TaskRecord]:
        return self.list_tasks(NodeRole.JOURNAL)
    
    def name_nodes(self) -> List[TaskRecord]:
        return self.list_tasks(NodeRole.NAME)
    
    def data_nodes(self) -> List[TaskRecord]:
        return self.list_tasks(NodeRole.DATA)
    
    def live_count(self, role: str) -> int:
        """Number of live tasks of a role."""
        return len(self.list_tasks(role))
    
    def host_occupied(self, hostname: str, role: str) -> bool:
        """
        Whether a live task of the given role is placed on the host.
        
        Returns False when the registry cannot be read.
        """
        role = role_id(role)
        try:
            return any(
                task.hostname == hostname and task.role == role
                for task in self.list_tasks()
            )
        except StoreError as e:
            # TODO: revisit fail-open once operators settle the duplicate placement risk.
            logger.error(
                "Failed to determine whether host is occupied",
                hostname=hostname,
                role=role,
                error=str(e),
            )
            return False
    
    def name_nodes_initialized(self) -> bool:
        """
        Whether both name nodes carry the initialized label.
        
        Returns False when the registry cannot be read.
        """
        try:
            tasks = self.name_nodes()
        except StoreError as e:
            logger.error("Failed to determine whether name nodes are initialized", error=str(e))
            return False
        
        init_count = sum(
            1 for task in tasks
            if task.status is not None
            and task.status.label_value(NN_STATUS_KEY) == NN_STATUS_INIT_VAL
        )
        
        logger.info(
            "Name node initialization",
            initialized=init_count,
            total=TOTAL_NAME_NODES,
        )
        return init_count == TOTAL_NAME_NODES
    
    def orphaned_volumes(self, prefix: Optional[str] = None) -> List[VolumeRecord]:
        """
        Volumes whose owning task is no longer registered.
        
        The task and volume listings are separate reads, so a volume recorded
        for a task that is about to be recorded can show up here briefly.
        
        Args:
            prefix: Only volumes whose persistence id starts with this
        
        Returns:
            Orphaned volume records
        """
        task_ids = self.list_task_ids()
        orphans = [vol for vol in self.list_volumes() if vol.task_id not in task_ids]
        
        if prefix is not None:
            prefix = role_id(prefix)
            orphans = [vol for vol in orphans if vol.persistence_id.startswith(prefix)]
        
        return orphans
