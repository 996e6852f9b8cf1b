"""
Minimal assertion helpers for script-based test files.

Failures are reported through the console and never raise, so a test script
keeps running after a failed check.
"""
import re
from typing import Any, Optional

from docshell.shell_datatypes import OperationCancelled
from docshell.shell_printer import Console

# Decimal literals and Infinity only: no "nan", "inf" or "1_000".
_NUMERIC = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if not _NUMERIC.fullmatch(text):
            return None
        return float(text.replace("Infinity", "inf"))
    return None


def loose_eq(a: Any, b: Any) -> bool:
    """Equality with numeric coercion: 2 == "2", 1 == True; None only equals None."""
    if a is None or b is None:
        return a is None and b is None
    if isinstance(a, (bool, int, float)) or isinstance(b, (bool, int, float)):
        x, y = _as_number(a), _as_number(b)
        if x is None or y is None:
            return False
        return x == y
    return a == b


class ShellAssert:
    """The `assert` object injected into scripts."""

    def __init__(self, console: Console):
        self.console = console

    def eq(self, a, b, message=None):
        if loose_eq(a, b):
            return True
        self.console.log(message)
        return False

    def throws(self, fn):
        try:
            fn()
        except OperationCancelled:
            raise
        except Exception:
            return True
        return self._did_not_throw(fn)

    def _did_not_throw(self, fn):
        # Historical behavior: report and return None rather than False.
        name = getattr(fn, "__name__", "<callable>")
        self.console.log(f"expected {name} to throw")
        return None


class StrictAssert(ShellAssert):
    """Variant whose `throws` always returns a bool."""

    def _did_not_throw(self, fn):
        super()._did_not_throw(fn)
        return False
