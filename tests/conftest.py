import asyncio
import threading

import pytest

from docshell.shell_backends import Backend
from docshell.shell_bridge import OperationBridge
from docshell.shell_config import ShellConfig
from docshell.shell_runtime import ScriptRunner


class RecordingBackend(Backend):
    """Records every request; answers from a per-op table (value, callable or exception)."""

    def __init__(self, responses=None):
        self.requests = []
        self.responses = dict(responses or {})
        self.closed = False

    async def execute(self, request):
        self.requests.append(request)
        resp = self.responses.get(request.op)
        if isinstance(resp, BaseException):
            raise resp
        if callable(resp):
            return resp(request)
        return resp

    async def aclose(self):
        self.closed = True


class StallingBackend(Backend):
    """Never answers until cancelled."""

    def __init__(self):
        self.started = threading.Event()
        self.cancelled = threading.Event()

    async def execute(self, request):
        self.started.set()
        try:
            await asyncio.sleep(3600)
        except asyncio.CancelledError:
            self.cancelled.set()
            raise


@pytest.fixture
def backend():
    return RecordingBackend()


@pytest.fixture
def bridge(backend):
    b = OperationBridge(backend, timeout=5)
    yield b
    b.close()


@pytest.fixture
def runner(bridge):
    r = ScriptRunner(bridge, ShellConfig(host="db.local", port=27018))
    yield r
    r.close()
