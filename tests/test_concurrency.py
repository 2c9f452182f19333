from __future__ import annotations

import threading
from typing import List

import pytest

from flowlog_inventory.util.concurrency import ConcurrentCollector, bounded_workers, parallel_for_each


def test_bounded_workers_clamps_to_items() -> None:
    assert bounded_workers(8, 3) == 3
    assert bounded_workers(2, 10) == 2
    assert bounded_workers(4, 0) == 1
    assert 1 <= bounded_workers(None, 100) <= 100


def test_parallel_for_each_visits_every_item() -> None:
    collector: ConcurrentCollector[int] = ConcurrentCollector()
    parallel_for_each(lambda x: collector.add(x * 2), range(50), max_workers=4)

    assert len(collector) == 50
    assert sorted(collector.snapshot()) == [x * 2 for x in range(50)]


def test_parallel_for_each_finishes_work_before_raising() -> None:
    done: List[int] = []
    lock = threading.Lock()

    def _work(x: int) -> None:
        if x == 3:
            raise RuntimeError("item 3 failed")
        with lock:
            done.append(x)

    with pytest.raises(RuntimeError, match="item 3"):
        parallel_for_each(_work, list(range(8)), max_workers=2)
    assert sorted(done) == [0, 1, 2, 4, 5, 6, 7]


def test_parallel_for_each_with_no_items() -> None:
    parallel_for_each(lambda x: pytest.fail("called"), [], max_workers=4)
