"""Request epochs for discarding stale results.

Every recomputation issues a new epoch for its slot. A result is applied only
when its epoch is still the most recent one issued, so a slow response for an
older selection can never overwrite the state produced for a newer one.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


class RequestEpoch:
    def __init__(self) -> None:
        self._latest = 0
        self._lock = threading.Lock()

    def issue(self) -> int:
        with self._lock:
            self._latest += 1
            return self._latest

    def is_current(self, epoch: int) -> bool:
        with self._lock:
            return epoch == self._latest


@dataclass(frozen=True)
class SlotValue(Generic[T]):
    epoch: int
    value: T


class LatestResultSlot(Generic[T]):
    def __init__(self) -> None:
        self.epochs = RequestEpoch()
        self._value: SlotValue[T] | None = None
        self._lock = threading.Lock()
        self.discarded = 0

    def begin(self) -> int:
        return self.epochs.issue()

    def apply(self, epoch: int, value: T) -> bool:
        with self._lock:
            if not self.epochs.is_current(epoch):
                self.discarded += 1
                return False
            self._value = SlotValue(epoch=epoch, value=value)
            return True

    @property
    def current(self) -> T | None:
        with self._lock:
            return self._value.value if self._value is not None else None
