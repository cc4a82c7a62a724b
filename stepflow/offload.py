"""OffloadExecutor — runs CPU-bound work in worker processes.

The event loop never runs the work and never blocks on it:

- Each pool slot is a long-lived worker process reached through a
  ``multiprocessing`` pipe.  Work goes in and results come out pickled, so
  nothing is shared between caller and worker.
- A ``ThreadPoolExecutor`` with one dispatcher thread per slot does the
  blocking send/receive.  Its work queue is FIFO, which is what orders
  submissions beyond the pool size.
- ``submit()`` awaits the dispatcher future through ``asyncio.wrap_future``.

A worker that dies mid-job fails that job with ``WorkerCrashed`` and is
replaced before its slot takes the next job.
"""

from __future__ import annotations

import asyncio
import logging
import multiprocessing
import pickle
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable

from .context import StepContext
from .errors import PipelineConfigError, StepflowError, StepRejected, WorkerCrashed
from .outcome import Failure, StepOutcome
from .step import as_outcome

logger = logging.getLogger(__name__)

# How often a dispatcher thread re-checks for cancellation while waiting.
_POLL_INTERVAL = 0.05
_JOIN_TIMEOUT = 2.0


def _worker_main(conn: Any) -> None:
    """Worker process loop: receive ``(fn, payload)``, reply ``(ok, data)``."""
    while True:
        try:
            job = conn.recv()
        except (EOFError, KeyboardInterrupt):
            return
        if job is None:
            return
        fn, payload = job
        try:
            reply = (True, fn(payload))
        except Exception as exc:
            reply = (False, (type(exc).__name__, str(exc)))
        try:
            conn.send(reply)
        except Exception as exc:
            conn.send((False, (type(exc).__name__, f"result not transferable: {exc}")))


class _Worker:
    """One pool slot: a worker process plus the parent end of its pipe."""

    def __init__(self, mp_context: Any, index: int) -> None:
        self._mp = mp_context
        self.index = index
        self.process: Any = None
        self.conn: Any = None

    def ensure_started(self) -> None:
        if self.process is not None and self.process.is_alive():
            return
        if self.process is not None:
            self.stop()
        parent_conn, child_conn = self._mp.Pipe()
        process = self._mp.Process(
            target=_worker_main,
            args=(child_conn,),
            name=f"stepflow-offload-{self.index}",
            daemon=True,
        )
        process.start()
        # Only the child may hold this end, otherwise a crash never reads as EOF.
        child_conn.close()
        self.process, self.conn = process, parent_conn
        logger.debug("Started offload worker %d (pid %s)", self.index, process.pid)

    def run(self, fn: Callable[[Any], Any], payload: Any, cancel: threading.Event) -> Any:
        """Run one job to completion (blocking).  Dispatcher threads only."""
        self.ensure_started()
        try:
            self.conn.send((fn, payload))
        except (ConnectionError, EOFError):
            raise self._crashed("worker exited before accepting work")
        except Exception as exc:
            raise StepRejected(f"Work could not be sent to worker: {exc}") from exc

        while True:
            if cancel.is_set():
                logger.info(
                    "Terminating offload worker %d: job was cancelled", self.index
                )
                self.stop(graceful=False)
                self.ensure_started()
                return None
            if self.conn.poll(_POLL_INTERVAL):
                try:
                    ok, data = self.conn.recv()
                except (EOFError, ConnectionError):
                    raise self._crashed()
                break
            if not self.process.is_alive():
                raise self._crashed()

        if not ok:
            exc_type, message = data
            if exc_type == StepRejected.__name__:
                raise StepRejected(message)
            raise StepRejected(f"{exc_type}: {message}")
        return data

    def stop(self, *, graceful: bool = True) -> int | None:
        """Stop the process and return its exit code.

        Graceful stops ask the worker loop to exit before terminating it; a
        busy worker (cancelled job) is terminated straight away.
        """
        process, conn = self.process, self.conn
        self.process = self.conn = None
        if process is None:
            return None
        if graceful and process.is_alive():
            try:
                conn.send(None)
            except (OSError, ValueError):
                pass
            process.join(_JOIN_TIMEOUT)
        if process.is_alive():
            process.terminate()
            process.join(_JOIN_TIMEOUT)
        conn.close()
        return process.exitcode

    def _crashed(self, detail: str = "") -> WorkerCrashed:
        process = self.process
        if process is not None:
            process.join(_JOIN_TIMEOUT)
        exitcode = self.stop()
        error = WorkerCrashed(exitcode, detail)
        logger.warning("Offload worker %d: %s; replacing it", self.index, error.message)
        self.ensure_started()
        return error


class OffloadExecutor:
    """Fixed-size pool of worker processes for CPU-bound work.

    ``submit(fn, payload)`` returns ``fn(payload)`` computed in a worker.
    *fn* must be picklable (a module-level function) and so must *payload*
    and the return value.

    Failures:

    - the work raises → ``StepRejected`` with the remote type and message;
    - the worker dies → ``WorkerCrashed`` carrying the exit code, and the
      worker is replaced;
    - the awaiting task is cancelled → the busy worker is terminated and
      replaced, so a timed-out job cannot hold a slot.

    Workers are started lazily on first use.  One executor is meant to be
    shared across pipeline invocations; ``shutdown()`` releases it.
    """

    def __init__(self, workers: int = 1, *, start_method: str | None = None) -> None:
        if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
            raise PipelineConfigError(
                f"OffloadExecutor needs at least one worker, got {workers!r}."
            )
        self.workers = workers
        try:
            mp_context = multiprocessing.get_context(start_method)
        except ValueError as exc:
            raise PipelineConfigError(
                f"Unknown multiprocessing start method {start_method!r}."
            ) from exc
        self._slots = [_Worker(mp_context, i) for i in range(workers)]
        self._idle: queue.SimpleQueue[_Worker] = queue.SimpleQueue()
        for slot in self._slots:
            self._idle.put(slot)
        self._dispatch = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="stepflow-offload"
        )
        self._closed = False

    async def submit(self, fn: Callable[[Any], Any], payload: Any = None) -> Any:
        if self._closed:
            raise RuntimeError("OffloadExecutor has been shut down.")
        cancel = threading.Event()
        future = self._dispatch.submit(self._run, fn, payload, cancel)
        try:
            return await asyncio.wrap_future(future)
        except asyncio.CancelledError:
            cancel.set()
            raise

    def _run(self, fn: Callable[[Any], Any], payload: Any, cancel: threading.Event) -> Any:
        # One dispatcher thread per slot, so a slot is always free here.
        worker = self._idle.get()
        try:
            if cancel.is_set():
                return None
            return worker.run(fn, payload, cancel)
        finally:
            self._idle.put(worker)

    def shutdown(self, *, cancel_pending: bool = False) -> None:
        """Stop accepting work, wait for running jobs, then stop the workers.

        Queued jobs still run unless *cancel_pending* is set.
        """
        if self._closed:
            return
        self._closed = True
        self._dispatch.shutdown(wait=True, cancel_futures=cancel_pending)
        for slot in self._slots:
            slot.stop()

    def __enter__(self) -> "OffloadExecutor":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


class OffloadedStep:
    """Pipeline step that runs ``fn(ctx.value)`` on an ``OffloadExecutor``.

    Only ``ctx.value`` crosses the process boundary.  ``fn`` may return a
    bare value or a ``Success`` / ``Failure``.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[Any], Any],
        executor: OffloadExecutor,
        *,
        continue_on_error: bool = False,
    ) -> None:
        try:
            pickle.dumps(fn)
        except Exception as exc:
            raise PipelineConfigError(
                f"Offloaded step {name!r} needs a picklable, module-level "
                f"callable; {fn!r} is not ({exc})."
            ) from exc
        self.name = name
        self.fn = fn
        self.executor = executor
        self.continue_on_error = continue_on_error

    async def __call__(self, ctx: StepContext) -> StepOutcome:
        try:
            result = await self.executor.submit(self.fn, ctx.value)
        except StepflowError as exc:
            return Failure(exc)
        return as_outcome(result)

    def __repr__(self) -> str:
        return f"OffloadedStep({self.name!r}, {getattr(self.fn, '__qualname__', self.fn)!r})"
