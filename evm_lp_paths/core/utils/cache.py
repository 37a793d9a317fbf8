import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class Snapshot(Generic[T]):
    value: T
    stamped_at: float


class SnapshotCache(Generic[T]):
    """Holds one immutable snapshot; readers never see a half-built value.

    ``swap`` replaces the whole snapshot in a single assignment.
    """

    def __init__(
        self,
        initial: T,
        *,
        ttl_s: float,
        clock: Callable[[], float] = time.time,
    ):
        self.ttl_s = float(ttl_s)
        self._clock = clock
        self._snapshot: Snapshot[T] = Snapshot(initial, 0.0)

    @property
    def value(self) -> T:
        return self._snapshot.value

    @property
    def stamped_at(self) -> float:
        return self._snapshot.stamped_at

    def is_fresh(self) -> bool:
        stamped = self._snapshot.stamped_at
        return stamped > 0 and (self._clock() - stamped) < self.ttl_s

    def swap(self, value: T) -> T:
        self._snapshot = Snapshot(value, self._clock())
        return value
