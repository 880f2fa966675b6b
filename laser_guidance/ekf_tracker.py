"""Constant-acceleration Kalman tracker for a 2-D image point.

Timestamps are integer nanoseconds on a monotonic clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

_STATE_DIM = 6
_MEAS_DIM = 2
_NS_PER_S = 1e9

Point = Tuple[float, float]


@dataclass
class EkfConfig:
    process_noise_q: float = 50.0
    measurement_noise_r: float = 4.0
    initial_pos_std: float = 10.0
    initial_vel_std: float = 100.0
    initial_acc_std: float = 500.0
    max_missed_frames: int = 5


@dataclass(frozen=True)
class EkfState:
    position: Point = (-1.0, -1.0)
    velocity: Point = (0.0, 0.0)
    acceleration: Point = (0.0, 0.0)
    initialized: bool = False
    lost: bool = False
    missed_frames: int = 0
    dt_seconds: float = 0.0


class EkfTracker:
    """Tracks position, velocity and acceleration from point measurements."""

    def __init__(self, config: Optional[EkfConfig] = None) -> None:
        self._config = config if config is not None else EkfConfig()
        self._h = np.zeros((_MEAS_DIM, _STATE_DIM))
        self._h[0, 0] = 1.0
        self._h[1, 1] = 1.0
        noise_r = max(self._config.measurement_noise_r, 1e-9)
        self._r = np.eye(_MEAS_DIM) * noise_r
        self.reset()

    def _initial_covariance(self) -> np.ndarray:
        cfg = self._config
        return np.diag(
            [
                cfg.initial_pos_std**2,
                cfg.initial_pos_std**2,
                cfg.initial_vel_std**2,
                cfg.initial_vel_std**2,
                cfg.initial_acc_std**2,
                cfg.initial_acc_std**2,
            ]
        ).astype(float)

    @staticmethod
    def _transition(dt: float) -> np.ndarray:
        f = np.eye(_STATE_DIM)
        half_dt2 = 0.5 * dt * dt
        f[0, 2] = dt
        f[0, 4] = half_dt2
        f[1, 3] = dt
        f[1, 5] = half_dt2
        f[2, 4] = dt
        f[3, 5] = dt
        return f

    def _process_noise(self, dt: float) -> np.ndarray:
        q = max(self._config.process_noise_q, 1e-12)
        dt2 = dt * dt
        dt3 = dt2 * dt
        dt4 = dt3 * dt
        dt5 = dt4 * dt
        axis = np.array(
            [
                [dt5 / 20.0, dt4 / 8.0, dt3 / 6.0],
                [dt4 / 8.0, dt3 / 3.0, dt2 / 2.0],
                [dt3 / 6.0, dt2 / 2.0, dt],
            ]
        )
        q_mat = np.zeros((_STATE_DIM, _STATE_DIM))
        # State order is (x, y, vx, vy, ax, ay); each axis uses every other index.
        for offset in (0, 1):
            idx = [offset, offset + 2, offset + 4]
            q_mat[np.ix_(idx, idx)] = axis
        return q * q_mat

    def predict(self, timestamp: int) -> None:
        """Propagate the state to ``timestamp`` and count a missed frame."""
        if not self._initialized or self._last_timestamp is None:
            self._last_timestamp = timestamp
            self._last_dt = 0.0
            return

        dt = (timestamp - self._last_timestamp) / _NS_PER_S
        self._last_timestamp = timestamp
        self._last_dt = dt if dt > 0.0 else 0.0
        if dt <= 0.0:
            return

        f = self._transition(dt)
        self._x = f @ self._x
        self._p = f @ self._p @ f.T + self._process_noise(dt)

        self._missed_frames += 1
        self._lost = self._missed_frames > self._config.max_missed_frames

    def update(self, measurement: Point) -> None:
        """Correct the state with a measured point, initialising on first use."""
        mx, my = float(measurement[0]), float(measurement[1])
        if not self._initialized:
            self._x = np.array([mx, my, 0.0, 0.0, 0.0, 0.0])
            self._p = self._initial_covariance()
            self._initialized = True
            self._lost = False
            self._missed_frames = 0
            return

        z = np.array([mx, my])
        innovation = z - self._h @ self._x
        s = self._h @ self._p @ self._h.T + self._r
        k = self._p @ self._h.T @ np.linalg.pinv(s)
        self._x = self._x + k @ innovation
        self._p = (np.eye(_STATE_DIM) - k @ self._h) @ self._p

        self._missed_frames = 0
        self._lost = False

    def process(self, measurement: Point, timestamp: int) -> None:
        self.predict(timestamp)
        self.update(measurement)

    def state(self) -> EkfState:
        if not self._initialized:
            return EkfState(
                initialized=False,
                lost=self._lost,
                missed_frames=self._missed_frames,
                dt_seconds=self._last_dt,
            )
        x = self._x
        return EkfState(
            position=(float(x[0]), float(x[1])),
            velocity=(float(x[2]), float(x[3])),
            acceleration=(float(x[4]), float(x[5])),
            initialized=True,
            lost=self._lost,
            missed_frames=self._missed_frames,
            dt_seconds=self._last_dt,
        )

    def is_initialized(self) -> bool:
        return self._initialized

    def is_lost(self) -> bool:
        return self._lost

    def reset(self) -> None:
        self._x = np.zeros(_STATE_DIM)
        self._p = self._initial_covariance()
        self._last_timestamp: Optional[int] = None
        self._initialized = False
        self._lost = False
        self._missed_frames = 0
        self._last_dt = 0.0