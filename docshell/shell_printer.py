"""
Output for the docshell runtime: the script-level console and the REPL result printer.
"""
import collections.abc
import json
from typing import Any, List, Dict

from docshell.shell_handles import CollectionHandle, DatabaseHandle
from docshell.shell_serialize import serialize, stringify, to_wire


class Console:
    """Routes script `console.log` / `console.error` calls to side-effect events.

    Each call becomes exactly one event with the `stdout` or `stderr` topic,
    appended in call order.
    """

    def __init__(self, side_effects: List[Dict]):
        self.side_effects = side_effects

    def _emit(self, topic: str, message: str) -> None:
        self.side_effects.append({"topics": [topic], "message": message})

    def log(self, *values) -> None:
        self._emit("stdout", " ".join(stringify(v) for v in values))

    def error(self, *values) -> None:
        self._emit("stderr", " ".join(stringify(v) for v in values))

    def print(self, *values, sep=" ") -> None:
        """Plain-text variant used for the script-level `print`."""
        self._emit("stdout", sep.join(str(v) for v in values))

    def error_text(self, message: str) -> None:
        self._emit("stderr", message)


class Printer:
    """Formats script results for display."""

    def __init__(self, indent_width=2, fmt: str = "json"):
        self._indent_width = indent_width
        self.fmt = fmt
        self._handlers = self._create_handlers()

    def pformat(self, obj):
        """Public entry point to format an object."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, (collections.abc.Mapping, list, tuple)):
            return self._pformat_structured
        if callable(obj):
            return self._pformat_callable
        return lambda o: repr(o)

    def _create_handlers(self):
        return {
            str: self._pformat_primitive,
            int: self._pformat_primitive,
            float: self._pformat_primitive,
            bool: self._pformat_primitive,
            type(None): self._pformat_primitive,
            DatabaseHandle: self._pformat_handle,
            CollectionHandle: self._pformat_handle,
        }

    def _pformat_primitive(self, obj):
        return json.dumps(obj, ensure_ascii=False)

    def _pformat_handle(self, obj):
        return str(obj)

    def _pformat_callable(self, obj):
        name = getattr(obj, "__name__", None) or "<callable>"
        return f"[function {name}]"

    def _pformat_structured(self, obj):
        if self.fmt == "yaml":
            return serialize(obj, fmt="yaml").rstrip("\n")
        try:
            return json.dumps(to_wire(obj), ensure_ascii=False, indent=self._indent_width)
        except (TypeError, ValueError):
            return stringify(obj)
