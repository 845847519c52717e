"""
Same-block repeat-action guard.

Every state-changing market operation records the block against the
direct caller and the originating caller. Settlement refuses to run for
an identity that already acted in the current block, which blocks atomic
borrow-trade-settle sequences while leaving sequential use across blocks
untouched.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional

from ..exceptions import FlashloanGuardTriggered

logger = logging.getLogger(__name__)


class FlashloanGuard:

    def __init__(self) -> None:
        self._last_block: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._last_block)

    def last_block(self, identity: str) -> Optional[int]:
        return self._last_block.get(identity)

    def check(self, block: int, *identities: str) -> None:
        for identity in identities:
            if self._last_block.get(identity) == block:
                logger.warning("Guard triggered for %s at block %d", identity, block)
                raise FlashloanGuardTriggered(
                    f"{identity} already acted on this market in block {block}"
                )

    def record(self, block: int, *identities: str) -> None:
        # Only the current block can trip check(); older entries are dropped
        if any(seen < block for seen in self._last_block.values()):
            self._last_block = {i: b for i, b in self._last_block.items() if b >= block}
        for identity in identities:
            self._last_block[identity] = block

    def copy(self) -> "FlashloanGuard":
        clone = FlashloanGuard()
        clone._last_block = dict(self._last_block)
        return clone
