"""
Versioned key/value store backing the scheduler's durable state.

Each namespace maps names to opaque byte values. Reads return a Variable
carrying the value and the version it was read at; writes are
compare-and-swap against that version, so a writer holding a stale
Variable gets StoreConflictError instead of overwriting a concurrent
update.

A name that was never written fetches as version 0 with an empty value.
Listing a namespace that has never been written to raises
NamespaceNotFoundError, which is distinct from an empty namespace.
"""

import base64
import json
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple
from urllib.parse import quote, unquote

from dfsfleet.utils.config import FrameworkConfig
from dfsfleet.utils.logging import get_logger
from dfsfleet.utils.retry import RetryableError

logger = get_logger(__name__)


class StoreError(Exception):
    """Raised when the backing store cannot serve a request."""
    pass


class NamespaceNotFoundError(StoreError):
    """Raised when listing a namespace nothing was ever written to."""
    pass


class StoreConflictError(StoreError, RetryableError):
    """Raised when a write is based on a stale version."""
    pass


class CorruptEntryError(StoreError):
    """Raised when a stored entry exists but cannot be decoded."""
    pass


@dataclass(frozen=True)
class Variable:
    """
    A value read from a namespace, with the version it was read at.
    
    Attributes:
        name: Key within the namespace
        value: Stored bytes (empty if never written)
        version: Store version at read time (0 if never written)
    """
    name: str
    value: bytes = b""
    version: int = 0
    
    def mutate(self, value: bytes) -> "Variable":
        """Return a copy holding a new value at the same base version."""
        return replace(self, value=value)
    
    def exists(self) -> bool:
        return self.version > 0


class StateStore(ABC):
    """One namespace of the backing store."""
    
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
    
    def fetch(self, name: str) -> Variable:
        """Read the current value of a name."""
        with self._lock:
            entry = self._read(name)
        if entry is None:
            return Variable(name=name)
        value, version = entry
        return Variable(name=name, value=value, version=version)
    
    def store(self, variable: Variable) -> Variable:
        """
        Write a variable if its version is still current.
        
        Returns:
            The variable at its new version
        
        Raises:
            StoreConflictError: If the name changed since the variable was fetched
        """
        with self._lock:
            current = self._current_version(variable.name)
            if current != variable.version:
                raise StoreConflictError(
                    f"{self.path}/{variable.name}: expected version "
                    f"{variable.version}, found {current}"
                )
            new_version = current + 1
            self._write(variable.name, variable.value, new_version)
        return replace(variable, version=new_version)
    
    def expunge(self, variable: Variable) -> bool:
        """
        Delete a name if its version is still current.
        
        Returns:
            True if an entry was removed, False if the name did not exist
        
        Raises:
            StoreConflictError: If the name changed since the variable was fetched
        """
        with self._lock:
            current = self._current_version(variable.name)
            if current == 0:
                return False
            if current != variable.version:
                raise StoreConflictError(
                    f"{self.path}/{variable.name}: expected version "
                    f"{variable.version}, found {current}"
                )
            self._delete(variable.name)
        return True
    
    def discard(self, name: str) -> None:
        """Remove a name whatever its version. Used to clear unreadable entries."""
        with self._lock:
            self._delete(name)
    
    def names(self) -> Iterator[str]:
        """
        List the names present in this namespace.
        
        Raises:
            NamespaceNotFoundError: If nothing was ever written to the namespace
        """
        with self._lock:
            names = self._list()
        return iter(names)
    
    def _current_version(self, name: str) -> int:
        entry = self._read(name)
        return 0 if entry is None else entry[1]
    
    @abstractmethod
    def _read(self, name: str) -> Optional[Tuple[bytes, int]]:
        ...
    
    @abstractmethod
    def _write(self, name: str, value: bytes, version: int) -> None:
        ...
    
    @abstractmethod
    def _delete(self, name: str) -> None:
        ...
    
    @abstractmethod
    def _list(self) -> List[str]:
        ...


class InMemoryStateStore(StateStore):
    """Namespace held in process memory."""
    
    def __init__(self, path: str):
        super().__init__(path)
        self._entries: Dict[str, Tuple[bytes, int]] = {}
        self._created = False
    
    def _read(self, name):
        return self._entries.get(name)
    
    def _write(self, name, value, version):
        self._entries[name] = (value, version)
        self._created = True
    
    def _delete(self, name):
        self._entries.pop(name, None)
    
    def _list(self):
        if not self._created:
            raise NamespaceNotFoundError(f"namespace {self.path} does not exist")
        return list(self._entries)


class FileStateStore(StateStore):
    """
    Namespace stored as one JSON file per name under a directory.
    
    Writes go to a temporary file that is renamed into place, so a crash
    never leaves a half-written entry.
    """
    
    def __init__(self, path: str, root_dir: Path):
        super().__init__(path)
        self.directory = Path(root_dir) / path.strip("/")
    
    def _file(self, name: str) -> Path:
        return self.directory / (quote(name, safe="") + ".json")
    
    def _read(self, name):
        path = self._file(name)
        if not path.exists():
            return None
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as e:
            raise StoreError(f"Cannot read {self.path}/{name}: {e}") from e
        
        try:
            entry = json.loads(raw)
            return base64.b64decode(entry["value"], validate=True), int(entry["version"])
        except (ValueError, KeyError, TypeError) as e:
            raise CorruptEntryError(f"Corrupt entry {self.path}/{name}: {e}") from e
    
    def _write(self, name, value, version):
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._file(name)
        tmp_path = path.with_suffix(".tmp")
        try:
            with open(tmp_path, "w") as f:
                json.dump({"version": version, "value": base64.b64encode(value).decode("ascii")}, f)
            tmp_path.replace(path)
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}/{name}: {e}") from e
    
    def _delete(self, name):
        try:
            self._file(name).unlink(missing_ok=True)
        except OSError as e:
            raise StoreError(f"Cannot delete {self.path}/{name}: {e}") from e
    
    def _list(self):
        if not self.directory.is_dir():
            raise NamespaceNotFoundError(f"namespace {self.path} does not exist")
        return [unquote(p.name[: -len(".json")]) for p in self.directory.glob("*.json")]


class StateFactory:
    """
    Creates store namespaces for the configured backend.
    
    Namespaces are cached by path so that every component asking for the
    same path shares one store.
    """
    
    def __init__(self, config: FrameworkConfig):
        self.config = config
        self._stores: Dict[str, StateStore] = {}
    
    def create(self, path: str) -> StateStore:
        if path not in self._stores:
            if self.config.state_backend == "file":
                self._stores[path] = FileStateStore(path, Path(self.config.state_dir))
            else:
                self._stores[path] = InMemoryStateStore(path)
            
            logger.debug(
                "Created state namespace",
                path=path,
                backend=self.config.state_backend,
            )
        return self._stores[path]
