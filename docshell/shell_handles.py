"""
Database and collection handles exposed to scripts.

Handles are immutable values. They carry no connection state: every command
is packaged into one request and sent through the operation bridge.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

from docshell.shell_datatypes import ResolutionMisuse

if TYPE_CHECKING:
    from docshell.shell_bridge import OperationBridge


def shell_api_method(func=None, *, name: Optional[str] = None):
    """A decorator to explicitly mark methods as callable from scripts.

    The script-side name defaults to the camelCase form of the method name.
    """
    def mark(f):
        f._is_shell_api = True
        f._shell_name = name
        return f
    if func is not None:
        return mark(func)
    return mark


def shell_name(name: str) -> str:
    """insert_one -> insertOne"""
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


class ShellHost:
    """Base class for objects whose @shell_api_method methods are reachable from scripts.

    Subclasses get a dispatch table mapping script names (camelCase) to the
    Python method names, built once at class creation.
    """
    _shell_api: Dict[str, str] = {}

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        table: Dict[str, str] = {}
        for klass in reversed(cls.__mro__):
            for name, member in vars(klass).items():
                if getattr(member, "_is_shell_api", False):
                    table[getattr(member, "_shell_name", None) or shell_name(name)] = name
        cls._shell_api = table

    @classmethod
    def _api_names(cls):
        return sorted(cls._shell_api)

    def _api_method(self, name: str):
        target = type(self)._shell_api.get(name)
        if target is None:
            return None
        return object.__getattribute__(self, target)


@dataclass(frozen=True)
class DatabaseHandle(ShellHost):
    """The selected database: a value rebuilt from session state on every `db` read."""
    name: str
    address: str
    port: int
    _bridge: Optional['OperationBridge'] = field(default=None, compare=False, repr=False)

    def __getattr__(self, name: str):
        # Only reached when normal lookup failed: explicit members always win.
        if name.startswith("_"):
            raise AttributeError(name)
        method = self._api_method(name)
        if method is not None:
            return method
        return self.collection(name)

    def __getitem__(self, name: str) -> 'CollectionHandle':
        return self.collection(name)

    def __str__(self):
        return self.name

    def descriptor(self) -> Dict[str, Any]:
        return {"name": self.name, "address": self.address, "port": self.port}

    def collection(self, name: str) -> 'CollectionHandle':
        return CollectionHandle(self, name)

    def _invoke(self, op: str, *args):
        return _require_bridge(self._bridge).invoke(op, self.descriptor(), *args)

    @shell_api_method
    def get_collection(self, name: str) -> 'CollectionHandle':
        return self.collection(name)

    @shell_api_method
    def get_name(self) -> str:
        return self.name

    @shell_api_method(name="getSiblingDB")
    def get_sibling_db(self, name: str) -> 'DatabaseHandle':
        return DatabaseHandle(name, self.address, self.port, self._bridge)

    @shell_api_method
    def list_collections(self):
        return self._invoke("op_list_collections")

    @shell_api_method
    def list_databases(self):
        return self._invoke("op_list_databases")


@dataclass(frozen=True)
class CollectionHandle(ShellHost):
    """A named collection inside a database; every method is one bridge call."""
    database: DatabaseHandle
    name: str

    def __getattr__(self, name: str):
        if name.startswith("_"):
            raise AttributeError(name)
        method = self._api_method(name)
        if method is not None:
            return method
        raise ResolutionMisuse(f"collection {self.full_name}", name)

    def __str__(self):
        return self.full_name

    @property
    def full_name(self) -> str:
        return f"{self.database.name}.{self.name}"

    def descriptor(self) -> Dict[str, Any]:
        return {"db": self.database.descriptor(), "name": self.name}

    def _invoke(self, op: str, *args):
        return _require_bridge(self.database._bridge).invoke(op, self.descriptor(), *args)

    @shell_api_method
    def find(self, filter=None):
        return self._invoke("op_find", {} if filter is None else filter)

    @shell_api_method
    def insert_one(self, doc):
        return self._invoke("op_insert_one", doc)

    @shell_api_method
    def insert_many(self, docs):
        return self._invoke("op_insert_many", docs)

    @shell_api_method
    def update_one(self, filter, update):
        return self._invoke("op_update_one", filter, update)

    @shell_api_method
    def update_many(self, filter, update):
        return self._invoke("op_update_many", filter, update)

    @shell_api_method
    def delete_one(self, filter):
        return self._invoke("op_delete_one", filter)

    @shell_api_method
    def delete_many(self, filter):
        return self._invoke("op_delete_many", filter)

    @shell_api_method
    def aggregate(self, pipeline):
        return self._invoke("op_aggregate", pipeline)

    @shell_api_method
    def drop(self):
        return self._invoke("op_drop")

    @shell_api_method
    def save(self, doc):
        return self._invoke("op_save", doc)

    @shell_api_method
    def get_name(self) -> str:
        return self.name

    @shell_api_method
    def get_full_name(self) -> str:
        return self.full_name


def _require_bridge(bridge):
    if bridge is None:
        raise RuntimeError("handle is not attached to an operation bridge")
    return bridge


__all__ = [
    "shell_api_method",
    "shell_name",
    "ShellHost",
    "DatabaseHandle",
    "CollectionHandle",
]
