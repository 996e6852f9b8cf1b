from docshell.shell_datatypes import (
    ShellError, DispatchFailure, OperationTimeout, OperationCancelled, ResolutionMisuse,
    ObjectId, OperationRequest, CancelToken,
)
from docshell.shell_handles import DatabaseHandle, CollectionHandle, ShellHost, shell_api_method
from docshell.shell_session import ShellSession
from docshell.shell_bridge import OperationBridge
from docshell.shell_backends import Backend, HttpBackend, MongoBackend
from docshell.shell_config import ShellConfig
from docshell.shell_runtime import ScriptRunner, ExecutionResult

__all__ = [
    "ShellError", "DispatchFailure", "OperationTimeout", "OperationCancelled", "ResolutionMisuse",
    "ObjectId", "OperationRequest", "CancelToken",
    "DatabaseHandle", "CollectionHandle", "ShellHost", "shell_api_method",
    "ShellSession", "OperationBridge",
    "Backend", "HttpBackend", "MongoBackend",
    "ShellConfig", "ScriptRunner", "ExecutionResult",
]
