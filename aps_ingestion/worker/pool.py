import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")


class BoundedPool:
    """Thread pool guarded by a counting semaphore.

    At most ``size`` tasks are admitted at once, running or waiting; a caller
    either blocks on ``submit`` or polls with ``acquire(timeout)`` first.
    """

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self.size = size
        self._semaphore = threading.BoundedSemaphore(size)
        self._executor = ThreadPoolExecutor(max_workers=size, thread_name_prefix="ingest")

    def acquire(self, timeout: float | None = None) -> bool:
        """Reserve a slot. Returns False when none frees up within ``timeout``."""
        return self._semaphore.acquire(timeout=timeout)

    def release(self) -> None:
        """Give back a slot reserved with ``acquire`` but not used."""
        self._semaphore.release()

    def submit_acquired(self, fn: Callable[..., R], *args: Any) -> "Future[R]":
        """Run ``fn`` in a slot already reserved with ``acquire``."""
        try:
            future = self._executor.submit(fn, *args)
        except RuntimeError:
            self._semaphore.release()
            raise
        future.add_done_callback(lambda _future: self._semaphore.release())
        return future

    def submit(self, fn: Callable[..., R], *args: Any) -> "Future[R]":
        self._semaphore.acquire()
        return self.submit_acquired(fn, *args)

    def map(self, fn: Callable[[T], R], items: Iterable[T]) -> list[R]:
        """Apply ``fn`` to every item, keeping input order in the results."""
        futures = [self.submit(fn, item) for item in items]
        return [future.result() for future in futures]

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
