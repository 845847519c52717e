"""
PiSwap Exceptions

Error taxonomy shared by the market engine, the token registry and the
asset adapters. Every failure aborts the whole operation.
"""


class PiSwapError(Exception):
    """Base exception for PiSwap."""
    pass


# -- Request validation ------------------------------------------------

class ExpiredDeadline(PiSwapError):
    """The current timestamp is past the caller's deadline."""
    pass


class ZeroAmount(PiSwapError):
    """A required amount was zero."""
    pass


class InvalidAmount(PiSwapError):
    """An amount is outside the range the operation accepts."""
    pass


class SlippageExceeded(PiSwapError):
    """The computed price is worse than the caller's bound."""
    pass


# -- Curve and pool ----------------------------------------------------

class MaxSupplyExceeded(InvalidAmount):
    """Pair supply would reach the curve's asymptote or overflow uint256."""
    pass


class InsufficientSupplyToBurn(PiSwapError):
    """Burn request exceeds the outstanding pair supply or deposit."""
    pass


class ReserveUninitialized(PiSwapError):
    """The pool has no liquidity yet."""
    pass


class MaxReserveExceeded(PiSwapError):
    """Requested output is unreachable given the pool reserves."""
    pass


class DisallowedAssetSwap(PiSwapError):
    """The asset pair cannot be swapped."""
    pass


# -- Market registry ---------------------------------------------------

class UnsupportedUnderlyingAsset(PiSwapError):
    """The asset is not a supported collection, or not this market's asset."""
    pass


class MarketAlreadyExists(PiSwapError):
    """A market for this asset already exists."""
    pass


class SelfReferential(PiSwapError):
    """A market cannot be created on the registry or on another market."""
    pass


class Unauthorized(PiSwapError):
    """Caller is not allowed to perform the operation."""
    pass


# -- Oracle and settlement ---------------------------------------------

class OracleNotReady(PiSwapError):
    """Not enough oracle samples for the requested window."""
    pass


class SettlementDisabled(PiSwapError):
    """NFT settlement is gated off."""
    pass


class InsufficientLockedCollateral(PiSwapError):
    """Protocol-locked collateral cannot cover the settlement."""
    pass


class FlashloanGuardTriggered(PiSwapError):
    """Caller already acted on this market in the current block."""
    pass


# -- Ledger ------------------------------------------------------------

class TransferFailed(PiSwapError):
    """A ledger or asset transfer failed."""
    pass


class InsufficientBalance(TransferFailed):
    """Holder balance is too low for the transfer."""
    pass


class ReentrancyError(PiSwapError):
    """A market operation was entered while another was in progress."""
    pass


class ConfigurationError(PiSwapError):
    """Configuration error."""
    pass
