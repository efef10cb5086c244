"""
Tests for the state registry.
"""

import json
import tempfile
import uuid
from pathlib import Path

import pytest

from dfsfleet.cluster.builders import OfferBuilder, ResourceBuilder, TaskStatusBuilder
from dfsfleet.cluster.protos import (
    CommandInfo,
    DiskInfo,
    ExecutorInfo,
    FrameworkID,
    Label,
    TaskState,
)
from dfsfleet.scheduler.offers import OfferAction, OfferEvaluator
from dfsfleet.scheduler.provider import ConstraintProvider
from dfsfleet.scheduler.status import TaskStatusFactory
from dfsfleet.state.records import NodeRole, TaskRecord, VolumeRecord
from dfsfleet.state.registry import StateRegistry, merge_statuses
from dfsfleet.state.store import InMemoryStateStore, StateFactory, StoreError
from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.constants import NN_STATUS_INIT_VAL, NN_STATUS_KEY

TEST_HOST = "host"
TEST_TYPE = "type"
TASKS_PATH = "/dfs-fleet/hdfs/tasks"
SCHEDULER_PATH = "/dfs-fleet/hdfs/scheduler"


class FailingStore(InMemoryStateStore):
    """Namespace whose listing always fails."""
    
    def _list(self):
        raise StoreError("store unreachable")


class FailingTaskStateFactory(StateFactory):
    """Factory handing out a failing task namespace."""
    
    def create(self, path):
        if path.endswith("/tasks"):
            if path not in self._stores:
                self._stores[path] = FailingStore(path)
            return self._stores[path]
        return super().create(path)


def create_task(role=TEST_TYPE, hostname=TEST_HOST, task_id=None):
    """Create a task record placed on an offer."""
    offer = OfferBuilder("offer1", "framework", "slave", hostname).build()
    executor = ExecutorInfo(
        executor_id="executor",
        name="executor",
        command=CommandInfo(uris=["http://test_url/"]),
    )
    return TaskRecord.from_offer(
        offer,
        task_id=task_id or f"task_{uuid.uuid4().hex}",
        role=role,
        name=f"{role}1",
        resources=[ResourceBuilder.create_scalar_resource("name", 1, "role")],
        executor=executor,
    )


def create_volume(persistence_id, task_id):
    """Create a volume record."""
    return VolumeRecord(DiskInfo(persistence_id=persistence_id), task_id)


def create_status(task_id, state, labels=None):
    """Create a status event."""
    return TaskStatusBuilder.create_task_status(task_id, "slave", state, "From Test", labels)


class TestMergeStatuses:
    """Test merge_statuses."""
    
    def test_no_current(self):
        """Test the incoming status wins without a stored one."""
        new = create_status("t", TaskState.RUNNING)
        
        assert merge_statuses(None, new) is new
    
    def test_no_incoming(self):
        """Test a missing incoming status stays missing."""
        curr = create_status("t", TaskState.RUNNING, [Label("k", "v")])
        
        assert merge_statuses(curr, None) is None
    
    def test_keeps_labels(self):
        """Test labels survive an update without labels."""
        curr = create_status("t", TaskState.STAGING, [Label("k", "v")])
        new = create_status("t", TaskState.RUNNING)
        
        merged = merge_statuses(curr, new)
        
        assert merged.state == TaskState.RUNNING
        assert merged.labels == [Label("k", "v")]
    
    def test_new_labels_replace(self):
        """Test an update with labels replaces stored labels."""
        curr = create_status("t", TaskState.RUNNING, [Label("k", "old")])
        new = create_status("t", TaskState.RUNNING, [Label("k", "new")])
        
        assert merge_statuses(curr, new) is new
    
    def test_neither_labelled(self):
        """Test unlabelled statuses pass through."""
        curr = create_status("t", TaskState.STAGING)
        new = create_status("t", TaskState.RUNNING)
        
        assert merge_statuses(curr, new) is new


class TestStateRegistry:
    """Test StateRegistry."""
    
    @pytest.fixture
    def config(self):
        return FrameworkConfig()
    
    @pytest.fixture
    def factory(self, config):
        return StateFactory(config)
    
    @pytest.fixture
    def state(self, config, factory):
        """Create a registry over fresh in-memory stores."""
        return StateRegistry(config, factory)
    
    def test_empty_registry_lists_empty(self, state):
        """Test a fresh registry lists no tasks rather than failing."""
        assert state.list_tasks() == []
        assert state.list_task_ids() == set()
        assert state.list_volumes() == []
        assert state.orphaned_volumes() == []
    
    def test_record_task(self, state):
        """Test a recorded task is listed."""
        task = create_task()
        state.record_task(task)
        
        tasks = state.list_tasks()
        
        assert len(tasks) == 1
        assert tasks[0].id == task.id
        assert tasks[0].role == TEST_TYPE
        assert tasks[0].hostname == TEST_HOST
        assert tasks[0].executor.command.uris == ["http://test_url/"]
    
    def test_record_task_keeps_labels(self, state):
        """Test re-recording a task keeps labels of its stored status."""
        task = create_task(role=NodeRole.NAME)
        task.status = TaskStatusFactory.create_name_node_status(task.id, True)
        state.record_task(task)
        
        task.status = create_status(task.id, TaskState.RUNNING)
        state.record_task(task)
        
        stored = state.list_tasks()[0]
        assert stored.status.label_value(NN_STATUS_KEY) == NN_STATUS_INIT_VAL
    
    def test_unreadable_framework_id(self, state, factory):
        """Test garbage in the framework id slot reads as no id."""
        store = factory.create(SCHEDULER_PATH)
        store.store(store.fetch("FrameworkID").mutate(b"garbage"))
        
        assert state.get_framework_id() is None
    
    def test_framework_id(self, state):
        """Test the framework id slot."""
        assert state.get_framework_id() is None
        
        state.set_framework_id(FrameworkID("framework-1"))
        assert state.get_framework_id() == FrameworkID("framework-1")
        
        state.set_framework_id(FrameworkID("framework-2"))
        assert state.get_framework_id() == FrameworkID("framework-2")
        
        state.remove_framework_id()
        assert state.get_framework_id() is None
    
    def test_terminal_status_update(self, state):
        """Test a terminal status removes the task."""
        task = create_task()
        state.record_task(task)
        
        state.apply(create_status(task.id, TaskState.FAILED))
        
        assert state.list_tasks() == []
    
    @pytest.mark.parametrize("terminal", [
        TaskState.FAILED,
        TaskState.FINISHED,
        TaskState.KILLED,
        TaskState.LOST,
        TaskState.ERROR,
    ])
    def test_every_terminal_state_frees_host(self, state, terminal):
        """Test each terminal state releases the host."""
        task = create_task()
        state.record_task(task)
        
        state.apply(create_status(task.id, terminal))
        
        assert not state.host_occupied(TEST_HOST, TEST_TYPE)
    
    def test_repeated_terminal_status(self, state):
        """Test statuses after removal are no-ops."""
        task = create_task()
        state.record_task(task)
        
        state.apply(create_status(task.id, TaskState.KILLED))
        state.apply(create_status(task.id, TaskState.KILLED))
        state.apply(create_status(task.id, TaskState.RUNNING))
        
        assert state.list_tasks() == []
    
    def test_status_for_unknown_task(self, state):
        """Test a status for a task never recorded is ignored."""
        state.apply(create_status("unknown", TaskState.RUNNING))
        
        assert state.list_task_ids() == set()
    
    def test_non_terminal_status_update(self, state):
        """Test a non-terminal status is stored on the task."""
        task = create_task()
        state.record_task(task)
        
        status = create_status(task.id, TaskState.RUNNING)
        state.apply(status)
        
        tasks = state.list_tasks()
        assert len(tasks) == 1
        assert tasks[0].status == status
    
    def test_status_update_keeps_labels(self, state):
        """Test a label-less update keeps stored labels, a labelled one replaces them."""
        task = create_task()
        state.record_task(task)
        
        state.apply(create_status(task.id, TaskState.RUNNING, [Label("k", "v1")]))
        state.apply(create_status(task.id, TaskState.RUNNING))
        assert state.list_tasks()[0].status.labels == [Label("k", "v1")]
        
        state.apply(create_status(task.id, TaskState.RUNNING, [Label("k", "v2")]))
        assert state.list_tasks()[0].status.labels == [Label("k", "v2")]
    
    def test_store_volume_record(self, state):
        """Test a recorded volume is listed."""
        state.record_volume(create_volume("store-test-persistence-id", "store-test-task-id"))
        
        volumes = state.list_volumes()
        
        assert len(volumes) == 1
        assert state.list_persistence_ids() == {"store-test-persistence-id"}
    
    def test_volume_last_write_wins(self, state):
        """Test re-recording a persistence id replaces the volume."""
        state.record_volume(create_volume("pid", "task-1"))
        state.record_volume(create_volume("pid", "task-2"))
        
        volumes = state.list_volumes()
        
        assert len(volumes) == 1
        assert volumes[0].task_id == "task-2"
    
    def test_find_orphaned_volume(self, state):
        """Test a volume of an unknown task is orphaned."""
        state.record_task(create_task())
        volume = create_volume("orphan-test-persistence-id", "bad-task-id")
        state.record_volume(volume)
        
        orphans = state.orphaned_volumes()
        
        assert len(orphans) == 1
        assert orphans[0].info == volume.info
        assert orphans[0].task_id == volume.task_id
    
    def test_not_find_orphaned_volume(self, state):
        """Test a volume of a recorded task is not orphaned."""
        task = create_task()
        state.record_task(task)
        state.record_volume(create_volume("orphan-test-persistence-id", task.id))
        
        assert state.orphaned_volumes() == []
    
    def test_orphan_adopted_by_recorded_task(self, state):
        """Test an orphan stops being one once its task is recorded."""
        state.record_volume(create_volume("pid", "late-task"))
        assert len(state.orphaned_volumes()) == 1
        
        state.record_task(create_task(task_id="late-task"))
        
        assert state.orphaned_volumes() == []
    
    def test_orphaned_volumes_by_prefix(self, state):
        """Test filtering orphans by persistence id prefix."""
        state.record_volume(create_volume("journalnode-1", "gone-1"))
        state.record_volume(create_volume("datanode-1", "gone-2"))
        
        orphans = state.orphaned_volumes(NodeRole.JOURNAL)
        
        assert [v.persistence_id for v in orphans] == ["journalnode-1"]
        assert len(state.orphaned_volumes("datanode")) == 1
        assert state.orphaned_volumes("namenode") == []
    
    def test_host_occupied(self, state):
        """Test host occupancy per role."""
        assert not state.host_occupied(TEST_HOST, TEST_TYPE)
        
        state.record_task(create_task())
        
        assert not state.host_occupied("wrong_host", TEST_TYPE)
        assert not state.host_occupied(TEST_HOST, "wrong_type")
        assert not state.host_occupied("wrong_host", "wrong_type")
        assert state.host_occupied(TEST_HOST, TEST_TYPE)
    
    def test_get_name_node_tasks(self, state):
        """Test filtering name node tasks."""
        state.record_task(create_task(role=NodeRole.NAME))
        
        assert len(state.name_nodes()) == 1
        assert len(state.journal_nodes()) == 0
        assert state.live_count(NodeRole.NAME) == 1
    
    def test_get_journal_node_tasks(self, state):
        """Test filtering journal node tasks."""
        state.record_task(create_task(role=NodeRole.JOURNAL))
        
        assert len(state.journal_nodes()) == 1
        assert len(state.name_nodes()) == 0
        assert len(state.list_tasks("journal")) == 1
    
    def test_name_nodes_initialized(self, state):
        """Test both name nodes must carry the init label."""
        assert not state.name_nodes_initialized()
        
        namenode1 = create_task(role=NodeRole.NAME)
        namenode2 = create_task(role=NodeRole.NAME, hostname="host2")
        state.record_task(namenode1)
        state.record_task(namenode2)
        assert not state.name_nodes_initialized()
        
        state.apply(TaskStatusFactory.create_name_node_status(namenode1.id, True))
        assert not state.name_nodes_initialized()
        
        state.apply(TaskStatusFactory.create_name_node_status(namenode2.id, False))
        assert not state.name_nodes_initialized()
        
        state.apply(TaskStatusFactory.create_name_node_status(namenode2.id, True))
        assert state.name_nodes_initialized()
        
        # Routine updates without labels keep the nodes initialized
        state.apply(create_status(namenode1.id, TaskState.RUNNING))
        assert state.name_nodes_initialized()
    
    def test_unreadable_record_skipped(self, state, factory):
        """Test a corrupt record does not abort a scan."""
        state.record_task(create_task())
        store = factory.create(TASKS_PATH)
        store.store(store.fetch("corrupt").mutate(b"not a record"))
        
        assert len(state.list_task_ids()) == 2
        assert len(state.list_tasks()) == 1
    
    def test_record_task_leaves_caller_status(self, state):
        """Test the merged status is stored without touching the caller's task."""
        task = create_task(role=NodeRole.NAME)
        task.status = TaskStatusFactory.create_name_node_status(task.id, True)
        state.record_task(task)
        
        update = create_status(task.id, TaskState.RUNNING)
        task.status = update
        state.record_task(task)
        
        assert task.status is update
        assert not task.status.has_labels()
        assert state.list_tasks()[0].status.label_value(NN_STATUS_KEY) == NN_STATUS_INIT_VAL
    
    def test_record_with_non_dict_payload_skipped(self, state, factory):
        """Test a well-formed envelope with a non-object payload is skipped."""
        state.record_task(create_task())
        store = factory.create(TASKS_PATH)
        payload = json.dumps({"type": "TaskRecord", "version": 1, "data": []}).encode()
        store.store(store.fetch("listed").mutate(payload))
        
        assert len(state.list_tasks()) == 1
    
    def test_record_task_over_corrupt_record(self, state, factory):
        """Test recording a task whose stored record is unreadable."""
        task = create_task()
        store = factory.create(TASKS_PATH)
        store.store(store.fetch(task.id).mutate(b"\xff"))
        
        state.record_task(task)
        
        assert state.list_tasks()[0].id == task.id
    
    def test_state_survives_restart(self, config, factory):
        """Test a new registry over the same stores sees prior state."""
        first = StateRegistry(config, factory)
        task = create_task()
        first.record_task(task)
        
        second = StateRegistry(config, factory)
        
        assert second.list_task_ids() == {task.id}


class TestStateRegistryFailOpen:
    """Test read paths that report False when the store fails."""
    
    @pytest.fixture
    def state(self):
        config = FrameworkConfig()
        return StateRegistry(config, FailingTaskStateFactory(config))
    
    def test_host_occupied(self, state):
        """Test host occupancy falls back to False."""
        assert state.host_occupied(TEST_HOST, TEST_TYPE) is False
    
    def test_name_nodes_initialized(self, state):
        """Test name node initialization falls back to False."""
        assert state.name_nodes_initialized() is False
    
    def test_list_tasks_raises(self, state):
        """Test plain listings propagate store errors."""
        with pytest.raises(StoreError):
            state.list_tasks()


class TestStateRegistryCorruptEntries:
    """Test file-backed registries holding entries that cannot be decoded."""
    
    @pytest.fixture
    def config(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            yield FrameworkConfig(state_backend="file", state_dir=tmpdir)
    
    @pytest.fixture
    def state(self, config):
        return StateRegistry(config, StateFactory(config))
    
    def write_corrupt_entry(self, config, name):
        path = Path(config.state_dir) / TASKS_PATH.strip("/") / f"{name}.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("{not json")
    
    def test_scan_skips_corrupt_entry(self, state, config):
        """Test a malformed entry file does not abort a scan."""
        task = create_task(role=NodeRole.JOURNAL)
        state.record_task(task)
        self.write_corrupt_entry(config, "corrupt")
        
        assert state.list_task_ids() == {task.id, "corrupt"}
        assert [t.id for t in state.list_tasks()] == [task.id]
        assert len(state.journal_nodes()) == 1
        assert state.host_occupied(TEST_HOST, NodeRole.JOURNAL)
    
    def test_offer_evaluated_despite_corrupt_entry(self, state, config):
        """Test offer evaluation keeps working next to a malformed entry."""
        state.record_task(create_task(role=NodeRole.JOURNAL))
        self.write_corrupt_entry(config, "corrupt")
        provider = ConstraintProvider(state, config)
        evaluator = OfferEvaluator(state, provider)
        builder = ResourceBuilder(config.role, config.principal)
        offer = (
            OfferBuilder("offer-1", "framework", "slave-2", "host2")
            .add_resources([
                builder.create_cpu_resource(100),
                builder.create_mem_resource(100000),
                builder.create_disk_resource(100000),
            ])
            .build()
        )
        
        decision = evaluator.evaluate(offer)
        
        assert decision.action == OfferAction.RESERVE
        assert decision.constraint.role == NodeRole.JOURNAL
    
    def test_record_task_over_corrupt_entry(self, state, config):
        """Test recording a task replaces its malformed entry."""
        task = create_task()
        self.write_corrupt_entry(config, task.id)
        
        state.record_task(task)
        
        assert [t.id for t in state.list_tasks()] == [task.id]
    
    def test_terminal_status_clears_corrupt_entry(self, state, config):
        """Test a terminal status removes a malformed entry."""
        task = create_task()
        self.write_corrupt_entry(config, task.id)
        
        state.apply(create_status(task.id, TaskState.KILLED))
        
        assert task.id not in state.list_task_ids()
    
    def test_running_status_for_corrupt_entry_ignored(self, state, config):
        """Test a non-terminal status for a malformed entry is a no-op."""
        task = create_task()
        self.write_corrupt_entry(config, task.id)
        
        state.apply(create_status(task.id, TaskState.RUNNING))
        
        assert state.list_task_ids() == {task.id}
        assert state.list_tasks() == []
