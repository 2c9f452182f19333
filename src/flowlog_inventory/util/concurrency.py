from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Generic, Iterable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def default_worker_count() -> int:
    """Number of parallel execution units available to this process."""
    try:
        return max(1, len(os.sched_getaffinity(0)))  # type: ignore[attr-defined]
    except (AttributeError, OSError):
        return max(1, os.cpu_count() or 1)


def bounded_workers(requested: Optional[int], item_count: int) -> int:
    """
    Clamp the pool size to at least one worker and never more than there are items.
    """
    limit = requested if requested and requested > 0 else default_worker_count()
    return max(1, min(limit, item_count))


def parallel_for_each(
    func: Callable[[T], None],
    items: Sequence[T] | Iterable[T],
    max_workers: int,
) -> None:
    """
    Execute func over items in a thread pool. Exceptions are propagated once all
    futures have completed to ensure work is not silently dropped.
    """
    if not isinstance(items, Sequence):
        items = list(items)
    if not items:
        return
    errors: List[BaseException] = []
    with ThreadPoolExecutor(max_workers=bounded_workers(max_workers, len(items))) as executor:
        futures = [executor.submit(func, item) for item in items]
        for fut in as_completed(futures):
            try:
                fut.result()
            except BaseException as e:  # collect and continue
                errors.append(e)
    if errors:
        # Raise first error to signal failure while preserving original traceback
        raise errors[0]


class ConcurrentCollector(Generic[T]):
    """Append-only list shared by pool workers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: List[T] = []

    def add(self, item: T) -> None:
        with self._lock:
            self._items.append(item)

    def snapshot(self) -> List[T]:
        with self._lock:
            return list(self._items)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
