"""
Blocking render calls in a child process owned by a lease.

WeasyPrint and fpdf2 are synchronous libraries. A thread running them cannot
be stopped, so they run in a spawned child process instead: when the caller
is cancelled or the lease closes, the child is terminated and the pool slot
is only released after it has exited.

The function and its arguments are pickled, so ``func`` must be a
module-level callable and the arguments plain data.
"""

import asyncio
import multiprocessing
from typing import Any, Callable

# Spawned children inherit no threads or locks from the parent
_CONTEXT = multiprocessing.get_context("spawn")

POLL_INTERVAL = 0.02
TERMINATE_GRACE = 1.0


class WorkerError(Exception):
    """The child process raised or died before returning a result."""


def _child_main(conn, func: Callable, args: tuple) -> None:
    try:
        result = func(*args)
    except BaseException as e:
        conn.send((False, f"{type(e).__name__}: {e}"))
    else:
        conn.send((True, result))
    finally:
        conn.close()


class ProcessWorker:
    """One child process running one call."""

    def __init__(self, func: Callable, *args: Any):
        self._receiver, sender = _CONTEXT.Pipe(duplex=False)
        self.process = _CONTEXT.Process(target=_child_main, args=(sender, func, args), daemon=True)
        self.process.start()
        # Parent keeps only the reading end so EOF is seen if the child dies
        sender.close()

    def alive(self) -> bool:
        return self.process.is_alive()

    async def result(self) -> Any:
        """Wait for the child's return value without blocking the event loop."""
        while not self._receiver.poll():
            if not self.process.is_alive() and not self._receiver.poll():
                raise WorkerError(f"worker process exited with code {self.process.exitcode} before returning")
            await asyncio.sleep(POLL_INTERVAL)
        try:
            ok, value = self._receiver.recv()
        except EOFError:
            raise WorkerError(f"worker process exited with code {self.process.exitcode} before returning")
        if not ok:
            raise WorkerError(value)
        return value

    def stop(self) -> None:
        """Terminate the child if it is still running and wait for it to exit."""
        if self.process.is_alive():
            self.process.terminate()
            self.process.join(TERMINATE_GRACE)
            if self.process.is_alive():
                self.process.kill()
        self.process.join()
        self._receiver.close()


async def run_in_process(lease, func: Callable, *args: Any) -> Any:
    """Run ``func(*args)`` in a child process adopted by ``lease``.

    The child is stopped when the lease closes, which the pool does on every
    exit path including cancellation, before the slot is released.

    Raises:
        WorkerError: the call raised in the child, or the child died
    """
    worker = ProcessWorker(func, *args)
    lease.adopt(worker.stop)
    return await worker.result()
