from dataclasses import dataclass
from typing import Optional, TYPE_CHECKING

from docshell.shell_handles import DatabaseHandle

if TYPE_CHECKING:
    from docshell.shell_bridge import OperationBridge


DEFAULT_DATABASE = "test"


@dataclass
class ShellSession:
    """Mutable per-runner record of the selected database and connection parameters.

    Owned by exactly one ScriptRunner and discarded with it. Only
    select_database() changes the selection.
    """
    address: str = "localhost"
    port: int = 27017
    database_name: str = DEFAULT_DATABASE
    bridge: Optional['OperationBridge'] = None

    def select_database(self, name: str) -> str:
        self.database_name = name
        return name

    def database(self) -> DatabaseHandle:
        """A fresh handle for the current selection."""
        return DatabaseHandle(self.database_name, self.address, self.port, self.bridge)

    @property
    def uri(self) -> str:
        return f"mongodb://{self.address}:{self.port}"
