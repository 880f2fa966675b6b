"""Debounced hit detection from a stream of per-frame purple flags."""

from __future__ import annotations

import enum


class HitState(enum.Enum):
    NONE = "none"
    CANDIDATE = "candidate"
    CONFIRMED = "confirmed"


class HitStateMachine:
    """Confirms a hit after a run of purple frames and releases it after a run of misses."""

    def __init__(self, confirm_frames: int = 3, release_frames: int = 5) -> None:
        self._confirm_frames = confirm_frames
        self._release_frames = release_frames
        self.reset()

    def update(self, is_purple: bool) -> HitState:
        """Feed one frame's flag and return the resulting state."""
        if self._last_is_purple is None or is_purple != self._last_is_purple:
            self._consecutive = 1
            self._last_is_purple = is_purple
        else:
            self._consecutive += 1

        if is_purple:
            self._state = (
                HitState.CONFIRMED
                if self._consecutive >= self._confirm_frames
                else HitState.CANDIDATE
            )
        elif self._state is HitState.CONFIRMED and self._consecutive >= self._release_frames:
            self._state = HitState.NONE

        return self._state

    def state(self) -> HitState:
        return self._state

    def consecutive(self) -> int:
        """Length of the current run of identical flags."""
        return self._consecutive

    def reset(self) -> None:
        self._state = HitState.NONE
        self._consecutive = 0
        self._last_is_purple: bool | None = None