"""
Background dispatch of remote sync calls.

Local mutations finish first, then hand the remote call to the dispatcher and
return without waiting. The remote outcome arrives on a Future; an
OperationResult carries the local half and the (possibly pending) remote half.
"""
import enum
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Dict, List, Optional

from medsupply.blueprints.metrics import sync_operations_total

logger = logging.getLogger(__name__)


class RemoteOutcome(enum.Enum):
    """State of the remote half of an operation."""
    SUCCESS = 'success'
    FAILED = 'failed'
    PENDING = 'pending'
    SKIPPED = 'skipped'


class OperationResult:
    """
    Outcome of a local mutation that may trigger remote sync.

    `local_ok` is settled when the object is created. `remote` starts as
    PENDING while futures are outstanding (SKIPPED when there are none) and is
    resolved by the futures' completion callbacks or by `wait()`.
    """

    def __init__(self, local_ok: bool = True, message: str = '',
                 futures: Optional[List[Future]] = None, data: Optional[Dict[str, Any]] = None):
        self.local_ok = local_ok
        self.message = message
        self.data = data or {}
        self.warnings: List[str] = []
        self.remote_messages: List[str] = []
        self._futures: List[Future] = []
        self._resolved = set()
        self._lock = threading.Lock()
        for future in futures or []:
            self.track(future)

    def track(self, future: Future) -> None:
        """Add a remote future to this result."""
        with self._lock:
            self._futures.append(future)
        future.add_done_callback(self._resolve)

    def _resolve(self, future: Future) -> None:
        with self._lock:
            if id(future) in self._resolved:
                return
            self._resolved.add(id(future))
            exc = future.exception()
            if exc is not None:
                self.warnings.append(f'Sincronización remota fallida: {exc}')
            else:
                result = future.result()
                if result:
                    self.remote_messages.append(str(result))

    @property
    def remote(self) -> RemoteOutcome:
        with self._lock:
            futures = list(self._futures)
        if not futures:
            return RemoteOutcome.SKIPPED
        if not all(f.done() for f in futures):
            return RemoteOutcome.PENDING
        if any(f.exception() is not None for f in futures):
            return RemoteOutcome.FAILED
        return RemoteOutcome.SUCCESS

    def wait(self, timeout: Optional[float] = None) -> RemoteOutcome:
        """Block until the remote half settles (or the timeout expires)."""
        with self._lock:
            futures = list(self._futures)
        if futures:
            wait(futures, timeout=timeout)
            for future in futures:
                if future.done():
                    self._resolve(future)
        return self.remote

    def to_dict(self) -> Dict[str, Any]:
        return {
            'local': 'success' if self.local_ok else 'failed',
            'remote': self.remote.value,
            'message': self.message,
            'remote_messages': list(self.remote_messages),
            'warnings': list(self.warnings),
        }


class SyncDispatcher:
    """
    Runs remote calls off the caller's thread.

    Calls submitted with the same `key` run one after the other, in submission
    order, so the last local write is also the last remote write for that
    record. Calls with different keys (or no key) run concurrently.

    In inline mode the call runs immediately on the caller's thread; errors are
    still captured on the returned Future and never raised to the caller.
    """

    def __init__(self, max_workers: int = 4, inline: bool = False):
        self.inline = inline
        self._executor = None if inline else ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix='remote-sync'
        )
        self._tails: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def submit(self, operation: str, fn: Callable, *args, key: Optional[str] = None,
               on_done: Optional[Callable[[Future], None]] = None, **kwargs) -> Future:
        """
        Dispatch `fn(*args, **kwargs)` and return its Future.

        Args:
            operation: Label used in logs and metrics (e.g. 'upsert_order')
            fn: Remote call to run
            key: Remote record the call writes (e.g. 'product:Paracetamol');
                calls sharing a key never overlap or reorder
            on_done: Optional completion callback receiving the Future
        """
        def run():
            try:
                result = fn(*args, **kwargs)
            except Exception as e:
                logger.warning(f"[SYNC] {operation} failed: {e}")
                sync_operations_total.labels(operation=operation, outcome='failed').inc()
                raise
            sync_operations_total.labels(operation=operation, outcome='success').inc()
            logger.info(f"[SYNC] {operation} ok: {result}")
            return result

        if self.inline:
            future = Future()
            try:
                future.set_result(run())
            except Exception as e:
                future.set_exception(e)
        elif key is None:
            future = self._executor.submit(run)
        else:
            future = self._submit_in_lane(key, run)

        if on_done is not None:
            future.add_done_callback(on_done)
        return future

    def _submit_in_lane(self, key: str, run: Callable) -> Future:
        # The executor queue is FIFO, so the previous call of a lane has always
        # been picked up by a worker before the next one starts waiting on it.
        with self._lock:
            previous = self._tails.get(key)

            def chained():
                if previous is not None:
                    wait([previous])
                return run()

            future = self._executor.submit(chained)
            self._tails[key] = future
        future.add_done_callback(lambda f: self._release(key, f))
        return future

    def _release(self, key: str, future: Future) -> None:
        with self._lock:
            if self._tails.get(key) is future:
                del self._tails[key]

    def shutdown(self, wait_for_pending: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait_for_pending)
