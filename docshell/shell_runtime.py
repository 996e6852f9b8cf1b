# docshell runtime

import ast
import asyncio
import builtins
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from docshell.shell_assert import ShellAssert
from docshell.shell_backends import Backend, HttpBackend, MongoBackend
from docshell.shell_bridge import OperationBridge
from docshell.shell_config import ShellConfig
from docshell.shell_datatypes import (
    CancelToken, DispatchFailure, ObjectId, OperationCancelled, OperationTimeout,
    ResolutionMisuse,
)
from docshell.shell_printer import Console
from docshell.shell_session import ShellSession

# ===================================================================
# 1. Sandbox
# ===================================================================

_SAFE_BUILTIN_NAMES = (
    "abs", "all", "any", "bool", "callable", "chr", "dict", "divmod", "enumerate",
    "filter", "float", "format", "frozenset", "hasattr", "hash", "int",
    "isinstance", "issubclass", "iter", "len", "list", "map", "max", "min", "next",
    "ord", "pow", "range", "repr", "reversed", "round", "set", "slice", "sorted",
    "str", "sum", "tuple", "zip",
    "True", "False", "None",
    "Exception", "ArithmeticError", "AssertionError", "AttributeError", "IndexError",
    "KeyError", "LookupError", "NameError", "RuntimeError", "StopIteration",
    "TypeError", "ValueError", "ZeroDivisionError",
)

SAFE_BUILTINS: Dict[str, Any] = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}
# Class statements in scripts need this one.
SAFE_BUILTINS["__build_class__"] = builtins.__build_class__


def build_backend(config: ShellConfig) -> Backend:
    if config.backend == "http":
        url = config.backend_url or f"http://{config.host}:{config.port}"
        return HttpBackend(url)
    return MongoBackend(serverSelectionTimeoutMS=5000)


def _reject_private_attributes(tree: ast.AST, source_name: str):
    """Scripts may not reach `obj._x` or dunders; use `db["_x"]` for such collections."""
    for node in ast.walk(tree):
        if isinstance(node, ast.Attribute) and node.attr.startswith("_"):
            raise SyntaxError(
                f"access to private attribute {node.attr!r} is not allowed",
                (source_name, node.lineno, node.col_offset + 1, None),
            )


# ===================================================================
# 2. Script Execution
# ===================================================================

Token = Dict[str, Any]

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


class ScriptRunner:
    """Executes shell scripts against one session.

    A runner is one script instance: it owns its session state, its global
    namespace, its cancel token and the thread scripts run on. Nothing is
    shared between runners except, optionally, the bridge.
    """

    def __init__(self, bridge: Optional[OperationBridge] = None, config: Optional[ShellConfig] = None,
                 *, assert_class=ShellAssert, owns_bridge: bool = False):
        self.config = config or ShellConfig()
        self.bridge = bridge
        self._owns_bridge = owns_bridge
        self.cancel_token = CancelToken()
        self.side_effects: List[Dict] = []
        self.session = ShellSession(
            address=self.config.host,
            port=self.config.port,
            database_name=self.config.default_database,
            bridge=bridge.bind(self.cancel_token) if bridge is not None else None,
        )
        self.console = Console(self.side_effects)
        self.asserts = assert_class(self.console)
        self.namespace = self._make_namespace()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="docshell-script")
        self._closed = False

    @classmethod
    def from_config(cls, config: ShellConfig) -> 'ScriptRunner':
        bridge = OperationBridge(build_backend(config), timeout=config.op_timeout)
        return cls(bridge, config, owns_bridge=True)

    def _make_namespace(self) -> Dict[str, Any]:
        return {
            "__builtins__": SAFE_BUILTINS,
            "__name__": "__docshell__",
            "db": self.session.database(),
            "use": self.use,
            "ObjectId": ObjectId,
            "console": self.console,
            "assert": self.asserts,
            "assert_": self.asserts,
            "print": self.console.print,
        }

    # --- Session entry points ---
    def use(self, name: str) -> str:
        """Select the active database and rebind `db` for the rest of the script."""
        selected = self.session.select_database(name)
        self.namespace["db"] = self.session.database()
        return selected

    @property
    def db(self):
        return self.session.database()

    # --- Lifecycle ---
    def cancel(self, reason: str = "cancelled"):
        """Abort the in-flight bridge call of the current run, if any."""
        self.cancel_token.cancel(reason)

    def close(self):
        if self._closed:
            return
        self._closed = True
        self.cancel_token.cancel("runner closed")
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_bridge and self.bridge is not None:
            self.bridge.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # --- Error formatting ---
    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            content = lines[i - 1]
            out.append(f"{prefix} {ln} | {content}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)

    def _format_syntax_error(self, e: SyntaxError, source: str) -> tuple[str, Optional[Token]]:
        msg = f"SyntaxError: {e.msg}"
        if e.lineno is None:
            return msg, None
        token = {'line': e.lineno, 'col': e.offset, 'text': (e.text or "").rstrip("\n")}
        context = self._source_context(source, e.lineno, e.offset)
        return f"{msg} (line {e.lineno}, col {e.offset})\n{context}", token

    def _script_frames(self, e: BaseException, source_name: str):
        return [f for f in traceback.extract_tb(e.__traceback__) if f.filename == source_name]

    def _format_stacktrace(self, frames) -> str:
        if len(frames) < 2:
            return ""
        parts = []
        for frame in frames:
            name = "<script>" if frame.name == "<module>" else frame.name
            parts.append(f"({name} line {frame.lineno})")
        return "Script stacktrace: " + " ".join(parts)

    def _format_runtime_error(self, e: Exception, source: str, source_name: str) -> tuple[str, Optional[Token]]:
        match e:
            case OperationTimeout():
                msg = f"OperationTimeout: {e}"
            case OperationCancelled():
                msg = f"OperationCancelled: {e}"
            case DispatchFailure():
                msg = f"DispatchFailure: {e}"
            case ResolutionMisuse():
                msg = f"ResolutionMisuse: {e}"
            case ImportError():
                msg = "ImportError: imports are not available in scripts"
            case NameError():
                msg = f"NameError: {e}"
            case AttributeError():
                msg = f"AttributeError: {e}"
            case TypeError():
                msg = f"TypeError: {e}"
            case _:
                msg = f"{type(e).__name__}: {e}"

        token = None
        frames = self._script_frames(e, source_name)
        if frames:
            last = frames[-1]
            col = getattr(last, "colno", None)
            col = col + 1 if col is not None else None
            token = {'line': last.lineno, 'col': col, 'text': last.line}
            context = self._source_context(source, last.lineno, col)
            if context:
                msg = f"{msg}\n(line {last.lineno})\n{context}"
            st = self._format_stacktrace(frames)
            if st:
                msg += "\n" + st
        return msg, token

    # --- Execution ---
    def _compile(self, source_code: str, source_name: str):
        tree = ast.parse(source_code, filename=source_name, mode="exec")
        _reject_private_attributes(tree, source_name)
        tail = None
        if tree.body and isinstance(tree.body[-1], ast.Expr):
            last = tree.body.pop()
            tail = compile(ast.Expression(last.value), source_name, "eval")
        return compile(tree, source_name, "exec"), tail

    def _execute(self, module, tail):
        exec(module, self.namespace)
        if tail is not None:
            return eval(tail, self.namespace)
        return None

    def _error(self, msg: str, token: Optional[Token] = None) -> ExecutionResult:
        self.console.error_text(msg)
        return ExecutionResult(
            status='error',
            error_message=msg,
            error_token=token,
            side_effects=list(self.side_effects),
        )

    async def handle_script(self, source_code: str, source_name: str = "<script>") -> ExecutionResult:
        """The main entry point to execute a script."""
        if self._closed:
            raise RuntimeError("script runner is closed")
        self.side_effects.clear()
        self.cancel_token.reset()
        # `db` is recomputed from the session for every run.
        self.namespace["db"] = self.session.database()

        try:
            module, tail = self._compile(source_code, source_name)
        except SyntaxError as e:
            msg, token = self._format_syntax_error(e, source_code)
            return self._error(msg, token)

        loop = asyncio.get_running_loop()
        try:
            value = await loop.run_in_executor(self._executor, self._execute, module, tail)
        except Exception as e:
            msg, token = self._format_runtime_error(e, source_code, source_name)
            return self._error(msg, token)

        return ExecutionResult(
            status='success',
            value=value,
            side_effects=list(self.side_effects),
        )
