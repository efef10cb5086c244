"""
Configuration management for dfsfleet.

Handles loading and merging configuration from:
- Default configuration file
- An operator-supplied configuration file
- Environment variables

The raw dot-notation view is wrapped by FrameworkConfig, the typed
settings the state layer and the constraint engine read.
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from dfsfleet.utils.constants import DATA_NODE_ID, JOURNAL_NODE_ID, NAME_NODE_ID


class ConfigError(Exception):
    """Raised when configuration is missing or invalid."""
    pass


class Config:
    """Configuration manager for dfsfleet."""
    
    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.
        
        Args:
            config_file: Path to configuration file. If None, uses defaults only.
        """
        self._config: Dict[str, Any] = {}
        self._load_default_config()
        
        if config_file:
            self._load_config_file(config_file)
        
        self._apply_env_overrides()
    
    def _load_default_config(self) -> None:
        """Load default configuration."""
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))
    
    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.
        
        Args:
            config_file: Path to YAML configuration file
        """
        try:
            with open(config_file, "r") as f:
                file_config = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot load configuration file {config_file}: {e}") from e
        
        if file_config is None:
            return
        if not isinstance(file_config, dict):
            raise ConfigError(f"Configuration file {config_file} must contain a mapping")
        
        self._merge_config(file_config)
    
    def _merge_config(self, new_config: Dict[str, Any]) -> None:
        """Deep merge new configuration into existing configuration."""
        self._config = self._deep_merge(self._config, new_config)
    
    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """
        Deep merge two dictionaries.
        
        Args:
            base: Base dictionary
            override: Override dictionary
        
        Returns:
            Merged dictionary
        """
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value
        return result
    
    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if framework_name := os.getenv("DFS_FRAMEWORK_NAME"):
            self.set("framework.name", framework_name)
        
        if role := os.getenv("DFS_ROLE"):
            self.set("framework.role", role)
        
        if principal := os.getenv("DFS_PRINCIPAL"):
            self.set("framework.principal", principal)
        
        if zk_address := os.getenv("DFS_ZK_ADDRESS"):
            self.set("framework.zk_address", zk_address)
        
        if state_dir := os.getenv("DFS_STATE_DIR"):
            self.set("state.backend", "file")
            self.set("state.dir", state_dir)
        
        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)
    
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.
        
        Args:
            key: Configuration key in dot notation (e.g., "nodes.journalnode.cpus")
            default: Default value if key not found
        
        Returns:
            Configuration value
        """
        keys = key.split(".")
        value = self._config
        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value
    
    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.
        
        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value
    
    def to_dict(self) -> Dict[str, Any]:
        """Get entire configuration as dictionary."""
        return self._config.copy()


@dataclass
class NodeConfig:
    """
    Sizing of one storage role.
    
    Attributes:
        node_type: Role id (journalnode, namenode, datanode)
        max_heap: JVM max heap in MB
        cpus: CPU share of the node process
        disk_size: Persistent volume size in MB
    """
    node_type: str
    max_heap: int
    cpus: float
    disk_size: int


_DEFAULT_NODES = {
    JOURNAL_NODE_ID: NodeConfig(JOURNAL_NODE_ID, max_heap=512, cpus=0.5, disk_size=2048),
    NAME_NODE_ID: NodeConfig(NAME_NODE_ID, max_heap=2048, cpus=1.0, disk_size=4096),
    DATA_NODE_ID: NodeConfig(DATA_NODE_ID, max_heap=1024, cpus=1.0, disk_size=10240),
}


@dataclass
class FrameworkConfig:
    """
    Typed scheduler settings, read once at startup.
    
    Attributes:
        framework_name: Name under which state is rooted
        role: Reservation role of the scheduler
        principal: Reservation principal of the scheduler
        zk_address: Coordination-service quorum address
        journal_node_count: Target journal quorum size
        data_node_count: Target number of data nodes
        executor_cpus: CPUs consumed by the executor next to each node
        executor_heap: Executor heap in MB
        jvm_overhead: Multiplier applied to heap sizes for off-heap memory
        volume_path: Container path persistent volumes are mounted at
        nodes: Per-role sizing
        state_backend: "memory" or "file"
        state_dir: Root directory of the file state backend
    """
    framework_name: str = "hdfs"
    role: str = "hdfs"
    principal: str = "hdfs-principal"
    zk_address: str = "localhost:2181"
    journal_node_count: int = 3
    data_node_count: int = 3
    executor_cpus: float = 0.5
    executor_heap: int = 256
    jvm_overhead: float = 1.35
    volume_path: str = "volume"
    nodes: Dict[str, NodeConfig] = field(
        default_factory=lambda: {k: NodeConfig(**vars(v)) for k, v in _DEFAULT_NODES.items()}
    )
    state_backend: str = "memory"
    state_dir: Optional[str] = None
    
    def __post_init__(self):
        self.validate()
    
    def validate(self) -> None:
        """
        Check invariants the scheduler relies on.
        
        Raises:
            ConfigError: If any setting is unusable
        """
        if not self.framework_name:
            raise ConfigError("framework.name must not be empty")
        if not self.role or self.role == "*":
            raise ConfigError("framework.role must name a reservation role")
        if self.journal_node_count < 1 or self.journal_node_count % 2 == 0:
            raise ConfigError(
                f"journal node count must be a positive odd number, got {self.journal_node_count}"
            )
        if self.data_node_count < 1:
            raise ConfigError(f"data node count must be positive, got {self.data_node_count}")
        if self.jvm_overhead < 1.0:
            raise ConfigError(f"jvm overhead must be >= 1.0, got {self.jvm_overhead}")
        if self.state_backend not in ("memory", "file"):
            raise ConfigError(f"unknown state backend: {self.state_backend}")
        if self.state_backend == "file" and not self.state_dir:
            raise ConfigError("state.dir is required for the file state backend")
        for node_type in (JOURNAL_NODE_ID, NAME_NODE_ID, DATA_NODE_ID):
            node = self.nodes.get(node_type)
            if node is None:
                raise ConfigError(f"missing sizing for {node_type}")
            if node.cpus <= 0 or node.max_heap <= 0 or node.disk_size <= 0:
                raise ConfigError(f"sizing for {node_type} must be positive")
    
    def get_node_config(self, node_type: str) -> NodeConfig:
        """Get sizing for a role."""
        try:
            return self.nodes[node_type]
        except KeyError:
            raise ConfigError(f"no node configuration for {node_type}") from None
    
    def needed_cpus(self, node_cpus: float) -> float:
        """CPUs an offer must carry for a node plus its executor."""
        return node_cpus + self.executor_cpus
    
    def needed_mem(self, node_heap: int) -> int:
        """Memory in MB an offer must carry for a node plus its executor."""
        return int(math.ceil(self.jvm_overhead * (node_heap + self.executor_heap)))
    
    @classmethod
    def from_config(cls, config: Config) -> "FrameworkConfig":
        """
        Build typed settings from a raw configuration.
        
        Args:
            config: Loaded configuration
        
        Returns:
            Framework configuration
        
        Raises:
            ConfigError: If a value has the wrong type or is invalid
        """
        defaults = cls()
        nodes = {}
        for node_type, default in defaults.nodes.items():
            prefix = f"nodes.{node_type}"
            nodes[node_type] = NodeConfig(
                node_type=node_type,
                max_heap=_typed(config, f"{prefix}.max_heap", int, default.max_heap),
                cpus=_typed(config, f"{prefix}.cpus", float, default.cpus),
                disk_size=_typed(config, f"{prefix}.disk_size", int, default.disk_size),
            )
        
        return cls(
            framework_name=_typed(config, "framework.name", str, defaults.framework_name),
            role=_typed(config, "framework.role", str, defaults.role),
            principal=_typed(config, "framework.principal", str, defaults.principal),
            zk_address=_typed(config, "framework.zk_address", str, defaults.zk_address),
            journal_node_count=_typed(
                config, "cluster.journal_nodes", int, defaults.journal_node_count
            ),
            data_node_count=_typed(config, "cluster.data_nodes", int, defaults.data_node_count),
            executor_cpus=_typed(config, "executor.cpus", float, defaults.executor_cpus),
            executor_heap=_typed(config, "executor.heap", int, defaults.executor_heap),
            jvm_overhead=_typed(config, "executor.jvm_overhead", float, defaults.jvm_overhead),
            volume_path=_typed(config, "cluster.volume_path", str, defaults.volume_path),
            nodes=nodes,
            state_backend=_typed(config, "state.backend", str, defaults.state_backend),
            state_dir=config.get("state.dir", defaults.state_dir),
        )


def _typed(config: Config, key: str, kind: type, default: Any) -> Any:
    value = config.get(key, default)
    try:
        return kind(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be {kind.__name__}, got {value!r}") from None
