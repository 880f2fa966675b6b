import pytest

from laser_guidance.hit_progress import HitProgress


def _drive_to_lock(progress: HitProgress) -> int:
    for step in range(1, 200):
        progress.update(True, 0.1)
        if progress.is_locked():
            return step
    raise AssertionError("lock was never triggered")


def test_initial_state():
    progress = HitProgress()
    assert progress.p0() == 50.0
    assert progress.stage() == 0
    assert progress.progress() == 0.0
    assert not progress.is_locked()
    assert not progress.is_exhausted()
    assert progress.lock_count() == 0


def test_hits_increase_progress_monotonically():
    progress = HitProgress()
    previous = progress.progress()
    for _ in range(5):
        progress.update(True, 0.1)
        assert progress.progress() > previous
        previous = progress.progress()
    assert 0.0 < progress.progress_ratio() < 1.0


def test_partial_tick_is_hitting_without_progress():
    progress = HitProgress()
    progress.update(True, 0.05)
    assert progress.is_hitting()
    assert progress.progress() == 0.0
    progress.update(False, 0.01)
    assert not progress.is_hitting()


def test_miss_decays_progress_and_floors_at_zero():
    progress = HitProgress()
    for _ in range(3):
        progress.update(True, 0.1)
    before = progress.progress()
    progress.update(False, 2.0)
    assert progress.progress() == pytest.approx(before - 0.5 * 2.0)
    progress.update(False, 100.0)
    assert progress.progress() == 0.0


def test_reaching_threshold_locks_and_advances_stage():
    progress = HitProgress()
    _drive_to_lock(progress)
    assert progress.lock_count() == 1
    assert progress.stage() == 1
    assert progress.p0() == 100.0
    assert progress.lock_remaining_s() == 45.0
    assert progress.progress() == 0.0


def test_locked_ignores_hits_and_counts_down():
    progress = HitProgress()
    _drive_to_lock(progress)
    progress.update(True, 1.0)
    assert progress.progress() == 0.0
    assert progress.is_locked()
    assert progress.lock_remaining_s() < 45.0
    progress.update(False, 45.0)
    assert not progress.is_locked()
    assert progress.lock_remaining_s() == 0.0


def test_second_stage_needs_more_hits():
    progress = HitProgress()
    first = _drive_to_lock(progress)
    progress.update(False, 45.0)
    second = _drive_to_lock(progress)
    assert second > first
    assert progress.stage() == 2


def test_exhausted_after_three_locks():
    progress = HitProgress()
    for _ in range(3):
        _drive_to_lock(progress)
        progress.update(False, 45.0)
    assert progress.is_exhausted()
    assert progress.lock_count() == 3
    assert progress.stage() == 2
    progress.update(True, 1.0)
    assert progress.progress() == 0.0
    assert progress.is_exhausted()


def test_progress_ratio_is_clamped():
    progress = HitProgress()
    for _ in range(9):
        progress.update(True, 0.1)
        assert 0.0 <= progress.progress_ratio() <= 1.0