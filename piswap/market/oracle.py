"""
PiSwap Price Oracle

Per-block valuation of the underlying asset:

    value = ONE * (R_bear / R_bull) ** 2

sampled at most once per block into a fixed-capacity ring buffer. The
sample for a block is the value *before* the first market operation of
that block, so a trade cannot move the price it settles against within
the same block.

Security features:
  - One sample per block; later operations in the block never append
  - Bounded memory: the oldest sample is overwritten once the ring is full
  - Averages fail loudly when history is too short
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..constants import MIN_ORACLE_LENGTH, ONE, ORACLE_CAPACITY
from ..exceptions import InvalidAmount, OracleNotReady, ReserveUninitialized
from .types import Reserves

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Observation:
    """A single valuation recorded for a block."""
    value: int
    block: int


def live_value(reserves: Reserves) -> int:
    """Spot valuation from the live pool reserves."""
    if reserves.bull == 0 or reserves.bear == 0:
        raise ReserveUninitialized("Pool has no liquidity to value the asset")
    return ONE * reserves.bear * reserves.bear // (reserves.bull * reserves.bull)


class PriceOracle:
    """Ring buffer of per-block valuations."""

    def __init__(self, capacity: int = ORACLE_CAPACITY) -> None:
        if capacity < MIN_ORACLE_LENGTH:
            raise ValueError(f"Oracle capacity must be at least {MIN_ORACLE_LENGTH}")
        self.capacity = capacity
        self._ring: List[Optional[Observation]] = [None] * capacity
        self._cursor = 0   # next write position
        self._count = 0
        self._last_block: Optional[int] = None

    @property
    def count(self) -> int:
        return self._count

    @property
    def last_block(self) -> Optional[int]:
        return self._last_block

    # -- Recording ----------------------------------------------------------

    def pending_sample(self, block: int, reserves: Reserves) -> Optional[int]:
        """
        Value to record for *block*, captured before the operation mutates
        anything. None when the block is already sampled or the pool is empty.
        """
        if block == self._last_block or not reserves.initialized:
            return None
        return live_value(reserves)

    def record(self, block: int, value: int) -> Observation:
        if self._last_block is not None and block <= self._last_block:
            raise ValueError(f"Block {block} already sampled (last {self._last_block})")
        observation = Observation(value=value, block=block)
        self._ring[self._cursor] = observation
        self._cursor = (self._cursor + 1) % self.capacity
        self._count = min(self._count + 1, self.capacity)
        self._last_block = block
        logger.debug("Oracle sample %d at block %d", value, block)
        return observation

    def checkpoint(self) -> Tuple[int, int, Optional[int], Optional[Observation]]:
        """Position and the one slot the next record() may overwrite."""
        return self._cursor, self._count, self._last_block, self._ring[self._cursor]

    def restore(self, checkpoint: Tuple[int, int, Optional[int], Optional[Observation]]) -> None:
        cursor, self._count, self._last_block, slot = checkpoint
        self._ring[cursor] = slot
        self._cursor = cursor

    # -- Reads --------------------------------------------------------------

    def sample(self, index: int) -> Observation:
        """Retained sample by age; 0 is the oldest."""
        if not 0 <= index < self._count:
            raise IndexError(f"Oracle index {index} out of range (count {self._count})")
        start = (self._cursor - self._count) % self.capacity
        return self._ring[(start + index) % self.capacity]

    def latest(self) -> Optional[Observation]:
        if self._count == 0:
            return None
        return self._ring[(self._cursor - 1) % self.capacity]

    def value(self, reserves: Reserves) -> int:
        """Latest sample, or the live value while the buffer is empty."""
        latest = self.latest()
        if latest is None:
            return live_value(reserves)
        return latest.value

    def average(self, n: int) -> int:
        """Floor average of the last *n* samples."""
        if n <= 0:
            raise InvalidAmount("Averaging window must be positive")
        if n > self._count:
            raise OracleNotReady(f"Oracle holds {self._count} samples, {n} requested")
        total = 0
        for offset in range(1, n + 1):
            total += self._ring[(self._cursor - offset) % self.capacity].value
        return total // n

    def ready(self, n: int) -> bool:
        return 0 < n <= self._count

    def to_dict(self) -> dict:
        return {
            "capacity": self.capacity,
            "count": self._count,
            "last_block": self._last_block,
            "samples": [
                {"value": str(obs.value), "block": obs.block}
                for obs in (self.sample(i) for i in range(self._count))
            ],
        }
