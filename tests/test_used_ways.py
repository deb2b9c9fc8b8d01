"""
Tests for the used-way set
"""

import sys
import threading
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from tilefeatures.store import UsedWaySet


def test_unmarked_ids_are_not_used():
    used = UsedWaySet()
    assert used.query(0) is False
    assert used.query(12345) is False
    assert used.query(-7) is False


def test_mark_then_query():
    used = UsedWaySet()
    used.mark(42)
    assert used.query(42) is True
    assert used.query(41) is False
    assert used.query(43) is False
    assert 42 in used


def test_mark_is_idempotent():
    used = UsedWaySet()
    used.mark(10)
    used.mark(10)
    assert used.query(10) is True
    assert used.count() == 1


def test_growth_over_allocates():
    used = UsedWaySet(growth_margin=256)
    used.mark(1000)
    assert len(used) == 1256
    # inside the margin, but never marked
    assert used.query(1100) is False
    # past the logical end
    assert used.query(5000) is False


def test_negative_ids_rejected():
    used = UsedWaySet()
    with pytest.raises(ValueError):
        used.mark(-1)


def test_reserve_only_once():
    used = UsedWaySet()
    used.reserve(800, compact=True)
    assert used.inited
    used.mark(5)
    used.reserve(10_000_000, compact=True)
    assert used.query(5) is True


def test_marks_survive_growth():
    used = UsedWaySet(growth_margin=1)
    ids = [3, 17, 200, 5000, 70000]
    for way_id in ids:
        used.mark(way_id)
    for way_id in ids:
        assert used.query(way_id)
    assert used.count() == len(ids)


def test_clear_resets_and_rearms():
    used = UsedWaySet()
    used.reserve(80, compact=True)
    used.mark(9)
    used.clear()
    assert used.query(9) is False
    assert len(used) == 0
    assert used.inited is False


def test_concurrent_marks_are_not_lost():
    used = UsedWaySet(growth_margin=8)

    def worker(offset):
        for way_id in range(offset, 4000, 4):
            used.mark(way_id)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert all(used.query(way_id) for way_id in range(4000))
    assert used.count() == 4000
