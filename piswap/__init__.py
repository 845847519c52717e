"""
PiSwap Package

Per-asset valuation markets for non-fungible assets: a bonding-curve
issuance engine for paired bull/bear claims, a virtual-reserve swap pool,
protocol-owned liquidity, a per-block price oracle and NFT settlement.

Core imports are lazily loaded so that ``import piswap`` stays cheap.
For direct module access, import from submodules:

    from piswap.chain import Chain
    from piswap.tokens.registry import TokenRegistry
    from piswap.exceptions import PiSwapError
"""

__version__ = "0.1.0"


# Lazy imports to avoid loading the logging stack at package import
def __getattr__(name):
    """Lazy module loading."""
    if name == 'Chain':
        from .chain import Chain
        return Chain
    elif name == 'TokenRegistry':
        from .tokens.registry import TokenRegistry
        return TokenRegistry
    elif name == 'Market':
        from .market.market import Market
        return Market
    elif name == 'Router':
        from .router import Router
        return Router
    elif name == 'PiSwapError':
        from .exceptions import PiSwapError
        return PiSwapError
    raise AttributeError(f"module 'piswap' has no attribute {name!r}")

__all__ = ['Chain', 'TokenRegistry', 'Market', 'Router', 'PiSwapError']
