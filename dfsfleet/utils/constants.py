"""Identifiers shared by the state layer and the scheduler."""

# Role ids. Task names and persistence ids are prefixed with these.
JOURNAL_NODE_ID = "journalnode"
NAME_NODE_ID = "namenode"
DATA_NODE_ID = "datanode"

TOTAL_NAME_NODES = 2

# Label carried by name node statuses once the node has been formatted
# or bootstrapped from its peer.
NN_STATUS_KEY = "status"
NN_STATUS_INIT_VAL = "initialized"
NN_STATUS_UNINIT_VAL = "uninitialized"

# Persistent store layout
STATE_ROOT = "/dfs-fleet"
TASKS_NAMESPACE = "tasks"
VOLUMES_NAMESPACE = "volumes"
SCHEDULER_NAMESPACE = "scheduler"
FRAMEWORK_ID_KEY = "FrameworkID"
TASK_STATE_INIT_KEY = "init"

# Resource names as offered by the cluster manager
CPUS = "cpus"
MEM = "mem"
DISK = "disk"
UNRESERVED_ROLE = "*"
