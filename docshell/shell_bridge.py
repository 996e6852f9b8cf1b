"""
The operation bridge: a blocking call surface from script code to the backend.

Scripts run on their own thread and call `invoke`, which hands the request to
a worker thread running an asyncio loop and waits for the answer. The wait
honors an optional timeout and a cancel token, so a stalled backend call can
be abandoned without freezing anything but the script that issued it.
"""

import asyncio
import concurrent.futures
import threading
import time
from typing import Any, Optional

from docshell.shell_datatypes import (
    CancelToken, DispatchFailure, OperationCancelled, OperationRequest,
    OperationTimeout, ShellError,
)
from docshell.shell_serialize import to_wire

_DEFAULT = object()


class OperationBridge:
    """Forwards named commands to a Backend, one round trip per call."""

    def __init__(self, backend, *, timeout: Optional[float] = None, poll_interval: float = 0.05):
        self.backend = backend
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    # --- Worker lifecycle ---
    def _ensure_worker(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._closed:
                raise ShellError("operation bridge is closed")
            if self._loop is None:
                loop = asyncio.new_event_loop()
                ready = threading.Event()

                def run():
                    asyncio.set_event_loop(loop)
                    loop.call_soon(ready.set)
                    loop.run_forever()

                thread = threading.Thread(target=run, name="docshell-bridge", daemon=True)
                thread.start()
                ready.wait()
                self._loop, self._thread = loop, thread
            return self._loop

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None:
            return
        try:
            asyncio.run_coroutine_threadsafe(self.backend.aclose(), loop).result(timeout=5)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            thread.join(timeout=5)
            loop.close()

    # --- Calls ---
    def bind(self, cancel_token: CancelToken) -> 'BoundBridge':
        """A view of this bridge whose calls all observe `cancel_token`."""
        return BoundBridge(self, cancel_token)

    def invoke(self, op: str, target: Any, *args, cancel_token: Optional[CancelToken] = None, timeout=_DEFAULT):
        """Send one request and block until the backend answers, fails, times out or is cancelled."""
        request = OperationRequest(op, to_wire(target), [to_wire(a) for a in args])
        if cancel_token is not None and cancel_token.cancelled:
            raise OperationCancelled(op, cancel_token.reason or "cancelled")
        loop = self._ensure_worker()
        future = asyncio.run_coroutine_threadsafe(self._dispatch(request), loop)

        limit = self.timeout if timeout is _DEFAULT else timeout
        deadline = None if limit is None else time.monotonic() + limit
        while True:
            wait = self.poll_interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    future.cancel()
                    raise OperationTimeout(op, f"no response after {limit}s")
                wait = min(wait, remaining)
            try:
                return future.result(timeout=wait)
            except concurrent.futures.TimeoutError:
                pass
            except concurrent.futures.CancelledError:
                raise OperationCancelled(op, "cancelled by backend") from None
            if cancel_token is not None and cancel_token.cancelled:
                future.cancel()
                raise OperationCancelled(op, cancel_token.reason or "cancelled")

    async def _dispatch(self, request: OperationRequest):
        try:
            return await self.backend.execute(request)
        except DispatchFailure:
            raise
        except Exception as e:
            raise DispatchFailure(request.op, str(e) or type(e).__name__) from e


class BoundBridge:
    __slots__ = ("bridge", "cancel_token")

    def __init__(self, bridge: OperationBridge, cancel_token: CancelToken):
        self.bridge = bridge
        self.cancel_token = cancel_token

    def invoke(self, op: str, target: Any, *args):
        return self.bridge.invoke(op, target, *args, cancel_token=self.cancel_token)
