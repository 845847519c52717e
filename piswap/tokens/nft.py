"""
PiSwap NFT Collections

Underlying-asset adapters for markets:

    SingleOwnerCollection   one owner per token id (amount is always 1)
    MultiBalanceCollection  fungible balances per token id

Both expose the same surface:
    - balance_of(owner, token_id)
    - safe_transfer_from(operator, sender, recipient, token_id, amount, data)
    - safe_batch_transfer_from(...)
    - set_approval_for_all(owner, operator, approved)
    - royalty_info(token_id, sale_price) -> (receiver, amount)

A transfer to a contract address calls the contract's receipt hook; a hook
that raises rejects the transfer and the whole call is rolled back.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence, Tuple

from eth_utils import to_checksum_address

from ..chain import Chain
from ..constants import FEE_DENOMINATOR
from ..exceptions import (
    InsufficientBalance,
    InvalidAmount,
    TransferFailed,
    Unauthorized,
    ZeroAmount,
)
from ..logger import get_logger
from ..market.types import AssetModel

logger = get_logger(__name__)


class _Collection:
    """Shared approval, royalty and receipt-hook handling."""

    asset_model: AssetModel

    def __init__(
        self,
        chain: Chain,
        address: str,
        name: str,
        royalty_receiver: Optional[str] = None,
        royalty_bps: int = 0,
    ):
        if not name:
            raise ValueError("Collection name cannot be empty")
        if not 0 <= royalty_bps <= FEE_DENOMINATOR:
            raise InvalidAmount(f"Royalty must be within 0..{FEE_DENOMINATOR} bps")
        self.chain = chain
        self.name = name
        self.royalty_receiver = royalty_receiver
        self.royalty_bps = royalty_bps
        self._approvals: Dict[Tuple[str, str], bool] = {}
        self.address = chain.register(to_checksum_address(address), self)
        logger.info(f"Collection {name} deployed at {self.address} ({self.asset_model.name})")

    # ── Approvals ─────────────────────────────────────────────────────

    def set_approval_for_all(self, owner: str, operator: str, approved: bool) -> None:
        self.chain.journal_key(self._approvals, (owner, operator))
        self._approvals[(owner, operator)] = approved

    def is_approved_for_all(self, owner: str, operator: str) -> bool:
        return self._approvals.get((owner, operator), False)

    def _require_operator(self, operator: str, sender: str) -> None:
        if operator != sender and not self.is_approved_for_all(sender, operator):
            raise Unauthorized(f"{operator} is not approved to move tokens of {sender}")

    # ── Royalties ─────────────────────────────────────────────────────

    def royalty_info(self, token_id: int, sale_price: int) -> Tuple[Optional[str], int]:
        """Declared royalty on a sale. (None, 0) when the collection has none."""
        if self.royalty_receiver is None or self.royalty_bps == 0:
            return None, 0
        return self.royalty_receiver, sale_price * self.royalty_bps // FEE_DENOMINATOR

    # ── Receipt hooks ─────────────────────────────────────────────────

    def _notify(self, operator: str, sender: str, recipient: str, token_id: int, amount: int, data: bytes) -> None:
        contract = self.chain.lookup(recipient)
        if contract is None:
            return
        hook = getattr(contract, "on_asset_received", None)
        if hook is None:
            raise TransferFailed(f"{recipient} cannot receive tokens")
        hook(self.address, operator, sender, token_id, amount, data)

    def _notify_batch(
        self, operator: str, sender: str, recipient: str,
        token_ids: Sequence[int], amounts: Sequence[int], data: bytes,
    ) -> None:
        contract = self.chain.lookup(recipient)
        if contract is None:
            return
        hook = getattr(contract, "on_asset_batch_received", None)
        if hook is None:
            raise TransferFailed(f"{recipient} cannot receive token batches")
        hook(self.address, operator, sender, list(token_ids), list(amounts), data)


class SingleOwnerCollection(_Collection):
    """Collection with exactly one owner per token id."""

    asset_model = AssetModel.SINGLE_OWNER

    def __init__(self, *args, **kwargs):
        self._owners: Dict[int, str] = {}
        super().__init__(*args, **kwargs)

    def owner_of(self, token_id: int) -> str:
        owner = self._owners.get(token_id)
        if owner is None:
            raise InvalidAmount(f"Token {token_id} does not exist")
        return owner

    def balance_of(self, owner: str, token_id: int) -> int:
        return 1 if self._owners.get(token_id) == owner else 0

    def mint(self, recipient: str, token_id: int) -> None:
        if token_id in self._owners:
            raise InvalidAmount(f"Token {token_id} already minted")
        self.chain.journal_key(self._owners, token_id)
        self._owners[token_id] = recipient

    def safe_transfer_from(
        self,
        operator: str,
        sender: str,
        recipient: str,
        token_id: int,
        amount: int = 1,
        data: bytes = b"",
    ) -> None:
        self._require_operator(operator, sender)
        if amount != 1:
            raise InvalidAmount("Single-owner tokens move one at a time")
        if self._owners.get(token_id) != sender:
            raise InsufficientBalance(f"{sender} does not own token {token_id}")
        with self.chain.atomic():
            self.chain.journal_key(self._owners, token_id)
            self._owners[token_id] = recipient
            self._notify(operator, sender, recipient, token_id, amount, data)
        logger.debug(f"{self.name} #{token_id}: {sender} -> {recipient}")

    def safe_batch_transfer_from(
        self,
        operator: str,
        sender: str,
        recipient: str,
        token_ids: Sequence[int],
        amounts: Sequence[int],
        data: bytes = b"",
    ) -> None:
        self._require_operator(operator, sender)
        if len(token_ids) != len(amounts):
            raise InvalidAmount("token_ids and amounts differ in length")
        with self.chain.atomic():
            for token_id, amount in zip(token_ids, amounts):
                if amount != 1:
                    raise InvalidAmount("Single-owner tokens move one at a time")
                if self._owners.get(token_id) != sender:
                    raise InsufficientBalance(f"{sender} does not own token {token_id}")
                self.chain.journal_key(self._owners, token_id)
                self._owners[token_id] = recipient
            self._notify_batch(operator, sender, recipient, token_ids, amounts, data)


class MultiBalanceCollection(_Collection):
    """Collection holding fungible balances per token id."""

    asset_model = AssetModel.MULTI_BALANCE

    def __init__(self, *args, **kwargs):
        self._balances: Dict[Tuple[str, int], int] = {}
        super().__init__(*args, **kwargs)

    def balance_of(self, owner: str, token_id: int) -> int:
        return self._balances.get((owner, token_id), 0)

    def mint(self, recipient: str, token_id: int, amount: int) -> None:
        if amount == 0:
            raise ZeroAmount("Mint amount must be greater than zero")
        key = (recipient, token_id)
        self.chain.journal_key(self._balances, key)
        self._balances[key] = self._balances.get(key, 0) + amount

    def _move(self, sender: str, recipient: str, token_id: int, amount: int) -> None:
        balance = self.balance_of(sender, token_id)
        if balance < amount:
            raise InsufficientBalance(
                f"{sender} holds {balance} of token {token_id}, {amount} required"
            )
        self.chain.journal_key(self._balances, (sender, token_id))
        self._balances[(sender, token_id)] = balance - amount
        key = (recipient, token_id)
        self.chain.journal_key(self._balances, key)
        self._balances[key] = self._balances.get(key, 0) + amount

    def safe_transfer_from(
        self,
        operator: str,
        sender: str,
        recipient: str,
        token_id: int,
        amount: int,
        data: bytes = b"",
    ) -> None:
        self._require_operator(operator, sender)
        with self.chain.atomic():
            self._move(sender, recipient, token_id, amount)
            self._notify(operator, sender, recipient, token_id, amount, data)
        logger.debug(f"{self.name} #{token_id} x{amount}: {sender} -> {recipient}")

    def safe_batch_transfer_from(
        self,
        operator: str,
        sender: str,
        recipient: str,
        token_ids: Sequence[int],
        amounts: Sequence[int],
        data: bytes = b"",
    ) -> None:
        self._require_operator(operator, sender)
        if len(token_ids) != len(amounts):
            raise InvalidAmount("token_ids and amounts differ in length")
        with self.chain.atomic():
            for token_id, amount in zip(token_ids, amounts):
                self._move(sender, recipient, token_id, amount)
            self._notify_batch(operator, sender, recipient, token_ids, amounts, data)
