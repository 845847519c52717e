"""
PiSwap Configuration

Loads all sections of piswap.toml. Environment variables override TOML values.
"""

from .loader import (
    NodeSectionConfig,
    CurveConfig,
    FeeConfig,
    OracleConfig,
    SettlementConfig,
    PiSwapConfig,
    load_config,
)

__all__ = [
    "NodeSectionConfig",
    "CurveConfig",
    "FeeConfig",
    "OracleConfig",
    "SettlementConfig",
    "PiSwapConfig",
    "load_config",
]
