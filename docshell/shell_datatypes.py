"""
Defines the core data types shared by the docshell runtime.

This module provides the identifier helper, the request shape that crosses
the operation bridge, the cancellation token, and the error taxonomy raised
into scripts.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# =================================================================
# Errors
# =================================================================

class ShellError(Exception):
    """Base class for docshell runtime errors."""
    pass


class DispatchFailure(ShellError):
    """The backend rejected or could not execute an operation request."""
    def __init__(self, op: str, message: str, payload: Any = None):
        super().__init__(f"{op}: {message}")
        self.op = op
        self.message = message
        self.payload = payload


class OperationTimeout(DispatchFailure):
    """The bridge gave up waiting for the backend."""
    pass


class OperationCancelled(DispatchFailure):
    """The in-flight call was aborted through its cancel token."""
    pass


class ResolutionMisuse(AttributeError):
    """A script asked a handle for a method it does not have."""
    def __init__(self, owner: str, name: str):
        super().__init__(f"{owner} has no method {name!r}")
        self.owner = owner
        self.name = name


# =================================================================
# Identifier helper
# =================================================================

def ObjectId(value: Any) -> Dict[str, Any]:
    """Tag a raw value as a document identifier."""
    return {"$oid": value}


# =================================================================
# Bridge request / cancellation
# =================================================================

@dataclass(frozen=True)
class OperationRequest:
    """One named backend command with its target descriptor and arguments."""
    op: str
    target: Dict[str, Any]
    args: List[Any] = field(default_factory=list)

    def to_wire(self) -> Dict[str, Any]:
        return {"op": self.op, "target": self.target, "args": list(self.args)}


class CancelToken:
    """Thread-safe flag used to abort bridge calls from outside the script thread."""

    def __init__(self):
        self._event = threading.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled"):
        self.reason = reason
        self._event.set()

    def reset(self):
        self.reason = None
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


__all__ = [
    "ShellError",
    "DispatchFailure",
    "OperationTimeout",
    "OperationCancelled",
    "ResolutionMisuse",
    "ObjectId",
    "OperationRequest",
    "CancelToken",
]
