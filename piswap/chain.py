"""
PiSwap Host Chain

Minimal host environment the markets run in:
  - Execution-unit clock (block height + timestamp) advanced by the caller
  - Contract directory (address -> contract object)
  - Native currency balances (wrapped into collateral by the registry)
  - Atomic execution: contracts journal each write made inside a scope and
    the journal is replayed backwards if the scope raises

Usage:

    chain = Chain(chain_id=1)
    chain.begin_block(100, 1_700_000_000)
    with chain.atomic():
        ...  # all-or-nothing
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, MutableMapping, Optional

from eth_utils import is_address, to_checksum_address

from .exceptions import ConfigurationError, InsufficientBalance

logger = logging.getLogger(__name__)

BLOCK_TIME = 12  # seconds between blocks produced by mine()

_MISSING = object()


class Chain:
    """Block clock, contract directory and revert-on-error execution."""

    def __init__(
        self,
        chain_id: int = 1,
        block_number: int = 1,
        timestamp: Optional[int] = None,
    ) -> None:
        if chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        self.chain_id = chain_id
        self._block_number = block_number
        self._timestamp = int(time.time()) if timestamp is None else timestamp
        self._contracts: Dict[str, Any] = {}
        self._depth = 0
        self._journal: List[Callable[[], None]] = []
        self._native: Dict[str, int] = {}

    # -- Clock ------------------------------------------------------------

    @property
    def block_number(self) -> int:
        return self._block_number

    @property
    def timestamp(self) -> int:
        return self._timestamp

    def begin_block(self, block_number: int, timestamp: int) -> None:
        """Start a new execution unit. Heights and timestamps never go back."""
        if block_number < self._block_number:
            raise ValueError(
                f"Block {block_number} is behind current block {self._block_number}"
            )
        if timestamp < self._timestamp:
            raise ValueError(f"Timestamp {timestamp} is behind {self._timestamp}")
        self._block_number = block_number
        self._timestamp = timestamp
        logger.debug("Entered block %d at %d", block_number, timestamp)

    def mine(self, blocks: int = 1, block_time: int = BLOCK_TIME) -> int:
        """Advance by *blocks* blocks; returns the new height."""
        if blocks < 1:
            raise ValueError("blocks must be >= 1")
        self.begin_block(self._block_number + blocks, self._timestamp + blocks * block_time)
        return self._block_number

    # -- Contract directory -----------------------------------------------

    def register(self, address: str, contract: Any) -> str:
        if not is_address(address):
            raise ValueError(f"Invalid address: {address!r}")
        address = to_checksum_address(address)
        if address in self._contracts:
            raise ValueError(f"Address {address} already has a contract")
        self.journal_key(self._contracts, address)
        self._contracts[address] = contract
        return address

    def lookup(self, address: str) -> Optional[Any]:
        if not is_address(address):
            return None
        return self._contracts.get(to_checksum_address(address))

    def is_contract(self, address: str) -> bool:
        return self.lookup(address) is not None

    # -- Native currency --------------------------------------------------

    def native_balance(self, address: str) -> int:
        return self._native.get(address, 0)

    def fund(self, address: str, amount: int) -> None:
        """Credit native currency out of thin air (genesis / faucet)."""
        if amount < 0:
            raise ValueError("amount must be >= 0")
        self.journal_key(self._native, address)
        self._native[address] = self._native.get(address, 0) + amount

    def transfer_native(self, sender: str, recipient: str, amount: int) -> None:
        balance = self._native.get(sender, 0)
        if balance < amount:
            raise InsufficientBalance(
                f"{sender} holds {balance} native, {amount} required"
            )
        self.journal_key(self._native, sender)
        self._native[sender] = balance - amount
        self.journal_key(self._native, recipient)
        self._native[recipient] = self._native.get(recipient, 0) + amount

    # -- Atomic execution -------------------------------------------------

    def journal(self, undo: Callable[[], None]) -> None:
        """Register *undo* to run if the enclosing atomic scope fails."""
        if self._depth:
            self._journal.append(undo)

    def journal_key(self, mapping: MutableMapping[Any, Any], key: Any) -> None:
        """Journal the current value of ``mapping[key]`` before a write."""
        if not self._depth:
            return
        previous = mapping.get(key, _MISSING)

        def undo() -> None:
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous

        self._journal.append(undo)

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """
        All-or-nothing scope.

        Writes made inside the scope are journaled by the contracts that
        make them; when an exception escapes, the scope's entries are undone
        newest first. Scopes nest; an inner failure only rolls back the
        inner scope.
        """
        mark = len(self._journal)
        self._depth += 1
        try:
            yield
        except BaseException:
            while len(self._journal) > mark:
                self._journal.pop()()
            if self._depth == 1:
                logger.debug("Reverted state at block %d", self._block_number)
            raise
        finally:
            self._depth -= 1
            if self._depth == 0:
                self._journal.clear()

    @property
    def journal_size(self) -> int:
        """Undo entries held by the open scopes."""
        return len(self._journal)

    @property
    def in_atomic(self) -> bool:
        return self._depth > 0
