"""Lock-on progress of an aerial robot being illuminated by the laser.

Stages and P0 thresholds:
  stage 0 (initial):       P0 = 50
  stage 1 (locked once):   P0 = 100
  stage 2 (locked twice):  P0 = 100
  after three locks the target is exhausted and no longer updated.

While not hit, P decays at 0.5/s towards 0 and the hit run resets.
While hit, every accumulated 0.1 s adds n to P (n = 1, 2, 3, ...).
"""

from __future__ import annotations

_TICK_S = 0.1
_DECAY_PER_S = 0.5
_LOCK_DURATION_S = 45.0
_MAX_LOCKS = 3
_STAGE_P0 = {0: 50.0, 1: 100.0, 2: 100.0}


class HitProgress:
    """Accumulates hit progress frame by frame and tracks lock stages."""

    def __init__(self) -> None:
        self._p = 0.0
        self._t = 0.0
        self._n = 0
        self._p0 = _STAGE_P0[0]
        self._stage = 0
        self._lock_count = 0
        self._locked = False
        self._exhausted = False
        self._lock_timer = 0.0

    def update(self, is_hit: bool, dt_s: float) -> None:
        """Advance by one frame of ``dt_s`` seconds."""
        if self._exhausted:
            return

        if self._locked:
            self._lock_timer = max(0.0, self._lock_timer - dt_s)
            if self._lock_timer <= 0.0:
                self._locked = False
                if self._lock_count >= _MAX_LOCKS:
                    self._exhausted = True
            return

        if not is_hit:
            self._p = max(0.0, self._p - _DECAY_PER_S * dt_s)
            self._t = 0.0
            self._n = 0
            return

        self._t += dt_s
        ticks = int(self._t / _TICK_S + 1.0e-6)
        if ticks > 0:
            self._p += float(self._n * ticks + ticks * (ticks + 1) // 2)
            self._n += ticks
            self._t -= ticks * _TICK_S

        if self._p >= self._p0:
            self._trigger_lock()

    def _trigger_lock(self) -> None:
        self._lock_count += 1
        self._locked = True
        self._lock_timer = _LOCK_DURATION_S
        self._p = 0.0
        self._t = 0.0
        self._n = 0
        self._stage = min(self._lock_count, 2)
        self._p0 = _STAGE_P0[self._stage]

    def progress(self) -> float:
        return self._p

    def progress_ratio(self) -> float:
        """Progress relative to the current threshold, clamped to [0, 1]."""
        if self._p0 <= 0.0:
            return 0.0
        return min(max(self._p / self._p0, 0.0), 1.0)

    def is_hitting(self) -> bool:
        return self._t > 0.0

    def is_locked(self) -> bool:
        return self._locked

    def lock_remaining_s(self) -> float:
        return self._lock_timer

    def lock_count(self) -> int:
        return self._lock_count

    def stage(self) -> int:
        return self._stage

    def p0(self) -> float:
        return self._p0

    def is_exhausted(self) -> bool:
        return self._exhausted