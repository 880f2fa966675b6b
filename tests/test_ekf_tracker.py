import pytest

from laser_guidance.ekf_tracker import EkfConfig, EkfTracker

MS = 1_000_000


def test_initial_state_is_uninitialized():
    tracker = EkfTracker()
    state = tracker.state()
    assert not tracker.is_initialized()
    assert not state.initialized
    assert state.position == (-1.0, -1.0)
    assert state.velocity == (0.0, 0.0)


def test_first_update_sets_position():
    tracker = EkfTracker()
    tracker.update((120.0, 80.0))
    state = tracker.state()
    assert tracker.is_initialized()
    assert state.position == (120.0, 80.0)
    assert state.velocity == (0.0, 0.0)
    assert state.acceleration == (0.0, 0.0)


def test_predict_before_initialization_does_not_change_state():
    tracker = EkfTracker()
    tracker.predict(10 * MS)
    tracker.predict(20 * MS)
    state = tracker.state()
    assert not state.initialized
    assert state.missed_frames == 0
    assert state.dt_seconds == 0.0


def test_stationary_target_stays_put():
    tracker = EkfTracker()
    for i in range(50):
        tracker.process((200.0, 150.0), i * 10 * MS)
    state = tracker.state()
    assert state.position[0] == pytest.approx(200.0, abs=1e-3)
    assert state.position[1] == pytest.approx(150.0, abs=1e-3)
    assert state.velocity[0] == pytest.approx(0.0, abs=1e-3)
    assert state.velocity[1] == pytest.approx(0.0, abs=1e-3)
    assert not tracker.is_lost()


def test_constant_velocity_is_estimated():
    tracker = EkfTracker(EkfConfig(process_noise_q=1.0, measurement_noise_r=1.0))
    for i in range(200):
        t = i * 0.01
        tracker.process((100.0 + 50.0 * t, 300.0 - 20.0 * t), i * 10 * MS)
    state = tracker.state()
    assert state.velocity[0] == pytest.approx(50.0, abs=2.0)
    assert state.velocity[1] == pytest.approx(-20.0, abs=2.0)
    assert state.position[0] == pytest.approx(100.0 + 50.0 * 1.99, abs=1.0)


def test_dt_seconds_is_recorded():
    tracker = EkfTracker()
    tracker.process((0.0, 0.0), 0)
    tracker.predict(10 * MS)
    assert tracker.state().dt_seconds == pytest.approx(0.01)


def test_non_positive_dt_is_ignored():
    tracker = EkfTracker()
    tracker.predict(100 * MS)
    tracker.update((5.0, 5.0))
    tracker.predict(100 * MS)
    state = tracker.state()
    assert state.missed_frames == 0
    assert state.dt_seconds == 0.0
    tracker.predict(50 * MS)
    assert tracker.state().missed_frames == 0


def test_missed_frames_mark_target_lost_and_update_recovers():
    tracker = EkfTracker(EkfConfig(max_missed_frames=2))
    tracker.process((10.0, 10.0), 0)
    tracker.predict(10 * MS)
    tracker.predict(20 * MS)
    assert not tracker.is_lost()
    assert tracker.state().missed_frames == 2
    tracker.predict(30 * MS)
    assert tracker.is_lost()
    assert tracker.state().lost

    tracker.update((10.0, 10.0))
    assert not tracker.is_lost()
    assert tracker.state().missed_frames == 0


def test_reset_returns_to_uninitialized():
    tracker = EkfTracker()
    tracker.process((1.0, 2.0), 0)
    tracker.process((1.0, 2.0), 10 * MS)
    tracker.reset()
    state = tracker.state()
    assert not tracker.is_initialized()
    assert state.position == (-1.0, -1.0)
    assert state.missed_frames == 0
    assert state.dt_seconds == 0.0