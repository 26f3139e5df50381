"""Unit tests for the per-user plan lock registry"""

import gc
from allocation_planner.api import dependencies
from allocation_planner.api.dependencies import get_plan_lock


def test_same_user_shares_a_lock():
    lock = get_plan_lock("user_1")

    assert get_plan_lock("user_1") is lock
    assert get_plan_lock("user_2") is not lock


def test_released_locks_are_dropped():
    lock = get_plan_lock("user_gone")
    assert "user_gone" in dependencies._plan_locks

    del lock
    gc.collect()

    assert "user_gone" not in dependencies._plan_locks
