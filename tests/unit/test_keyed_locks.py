"""
Tests for per-key locks.
"""
import threading
import time

from seedbank.utils.locks import KeyedLocks


def test_same_key_same_lock():
    locks = KeyedLocks()
    assert locks.get("a") is locks.get("a")
    assert locks.get("a") is not locks.get("b")
    assert len(locks) == 2


def test_hold_serializes_one_key():
    locks = KeyedLocks()
    active = []
    overlaps = []

    def work():
        with locks.hold("url"):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.01)
            active.pop()

    threads = [threading.Thread(target=work) for _ in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert overlaps == []


def test_different_keys_do_not_block():
    locks = KeyedLocks()
    with locks.hold("a"):
        acquired = locks.get("b").acquire(timeout=0.5)
        assert acquired
        locks.get("b").release()
