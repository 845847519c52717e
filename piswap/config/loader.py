"""
PiSwap TOML Configuration Loader

Loads every section of piswap.toml with environment variable overrides.
Each section is a dataclass with from_dict / apply_env; PiSwapConfig ties
them together and validates the protocol bounds.

Environment variable mapping:
    [node] chain_id          -> PISWAP_CHAIN_ID
    [node] log_level         -> PISWAP_LOG_LEVEL
    [fees] fee               -> PISWAP_FEE
    [oracle] length          -> PISWAP_ORACLE_LENGTH
    [oracle] capacity        -> PISWAP_ORACLE_CAPACITY
    [settlement] margin      -> PISWAP_SETTLEMENT_MARGIN
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    CURVE_OFFSET,
    DEFAULT_FEE,
    DEFAULT_ORACLE_LENGTH,
    FEE_DENOMINATOR,
    MAX_FEE,
    MAX_SUPPLY,
    MIN_ORACLE_LENGTH,
    ORACLE_CAPACITY,
    ROYALTY_CAP_BPS,
    SETTLEMENT_MARGIN,
)
from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _as_int(value: Any, name: str) -> int:
    """TOML has no 256-bit integers; large values may be written as strings."""
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None


# ---------------------------------------------------------------------------
# Section dataclasses
# ---------------------------------------------------------------------------


@dataclass
class NodeSectionConfig:
    """[node] section."""
    chain_id: int = 1
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NodeSectionConfig":
        return cls(
            chain_id=_as_int(data.get("chain_id", 1), "node.chain_id"),
            log_level=str(data.get("log_level", "INFO")).upper(),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PISWAP_CHAIN_ID"):
            self.chain_id = _as_int(v, "PISWAP_CHAIN_ID")
        if v := os.environ.get("PISWAP_LOG_LEVEL"):
            self.log_level = v.upper()


@dataclass
class CurveConfig:
    """[curve] section. Values are in base units."""
    max_supply: int = MAX_SUPPLY
    offset: int = CURVE_OFFSET

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CurveConfig":
        return cls(
            max_supply=_as_int(data.get("max_supply", MAX_SUPPLY), "curve.max_supply"),
            offset=_as_int(data.get("offset", CURVE_OFFSET), "curve.offset"),
        )


@dataclass
class FeeConfig:
    """[fees] section, in basis points."""
    fee: int = DEFAULT_FEE
    max_fee: int = MAX_FEE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeeConfig":
        return cls(
            fee=_as_int(data.get("fee", DEFAULT_FEE), "fees.fee"),
            max_fee=_as_int(data.get("max_fee", MAX_FEE), "fees.max_fee"),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PISWAP_FEE"):
            self.fee = _as_int(v, "PISWAP_FEE")


@dataclass
class OracleConfig:
    """[oracle] section."""
    length: int = DEFAULT_ORACLE_LENGTH
    min_length: int = MIN_ORACLE_LENGTH
    capacity: int = ORACLE_CAPACITY

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OracleConfig":
        return cls(
            length=_as_int(data.get("length", DEFAULT_ORACLE_LENGTH), "oracle.length"),
            min_length=_as_int(data.get("min_length", MIN_ORACLE_LENGTH), "oracle.min_length"),
            capacity=_as_int(data.get("capacity", ORACLE_CAPACITY), "oracle.capacity"),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PISWAP_ORACLE_LENGTH"):
            self.length = _as_int(v, "PISWAP_ORACLE_LENGTH")
        if v := os.environ.get("PISWAP_ORACLE_CAPACITY"):
            self.capacity = _as_int(v, "PISWAP_ORACLE_CAPACITY")


@dataclass
class SettlementConfig:
    """[settlement] section."""
    margin: int = SETTLEMENT_MARGIN
    royalty_cap_bps: int = ROYALTY_CAP_BPS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementConfig":
        return cls(
            margin=_as_int(data.get("margin", SETTLEMENT_MARGIN), "settlement.margin"),
            royalty_cap_bps=_as_int(
                data.get("royalty_cap_bps", ROYALTY_CAP_BPS), "settlement.royalty_cap_bps"
            ),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("PISWAP_SETTLEMENT_MARGIN"):
            self.margin = _as_int(v, "PISWAP_SETTLEMENT_MARGIN")


# ---------------------------------------------------------------------------
# Top-level configuration
# ---------------------------------------------------------------------------


@dataclass
class PiSwapConfig:
    """All configuration sections of piswap.toml."""
    node: NodeSectionConfig = field(default_factory=NodeSectionConfig)
    curve: CurveConfig = field(default_factory=CurveConfig)
    fees: FeeConfig = field(default_factory=FeeConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    settlement: SettlementConfig = field(default_factory=SettlementConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PiSwapConfig":
        return cls(
            node=NodeSectionConfig.from_dict(data.get("node", {})),
            curve=CurveConfig.from_dict(data.get("curve", {})),
            fees=FeeConfig.from_dict(data.get("fees", {})),
            oracle=OracleConfig.from_dict(data.get("oracle", {})),
            settlement=SettlementConfig.from_dict(data.get("settlement", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "PiSwapConfig":
        """
        Load configuration from a TOML file.

        A missing file yields the defaults (still subject to env overrides).
        """
        path = Path(config_path)
        if not path.exists():
            logger.warning("Config file not found: %s, using defaults", config_path)
            cfg = cls()
            cfg.apply_env()
            cfg.validate()
            return cfg

        with open(path, "rb") as f:
            try:
                raw = tomli.load(f)
            except tomli.TOMLDecodeError as e:
                raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from e

        cfg = cls.from_dict(raw)
        cfg.apply_env()
        cfg.validate()
        logger.info("Loaded configuration from %s", config_path)
        return cfg

    # --- env overrides ----------------------------------------------------

    def apply_env(self) -> None:
        """Apply environment variable overrides to all sections."""
        self.node.apply_env()
        self.fees.apply_env()
        self.oracle.apply_env()
        self.settlement.apply_env()

    # --- validation -------------------------------------------------------

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.node.chain_id < 1:
            raise ConfigurationError("chain_id must be >= 1")
        if self.node.log_level not in _LOG_LEVELS:
            raise ConfigurationError(f"Invalid log_level: {self.node.log_level}")
        if self.curve.max_supply <= 0 or self.curve.offset <= 0:
            raise ConfigurationError("curve.max_supply and curve.offset must be positive")
        if not 0 <= self.fees.max_fee < FEE_DENOMINATOR:
            raise ConfigurationError(f"fees.max_fee must be below {FEE_DENOMINATOR}")
        if not 0 <= self.fees.fee <= self.fees.max_fee:
            raise ConfigurationError(
                f"fees.fee must be between 0 and {self.fees.max_fee}, got {self.fees.fee}"
            )
        if self.oracle.min_length < 1:
            raise ConfigurationError("oracle.min_length must be >= 1")
        if self.oracle.capacity < self.oracle.min_length:
            raise ConfigurationError("oracle.capacity must be >= oracle.min_length")
        if not self.oracle.min_length <= self.oracle.length <= self.oracle.capacity:
            raise ConfigurationError(
                f"oracle.length must be between {self.oracle.min_length} "
                f"and {self.oracle.capacity}, got {self.oracle.length}"
            )
        if self.settlement.margin < 0:
            raise ConfigurationError("settlement.margin must be >= 0")
        if not 0 <= self.settlement.royalty_cap_bps <= FEE_DENOMINATOR:
            raise ConfigurationError("settlement.royalty_cap_bps must be within 0..10000")
        return True

    # --- serialisation ----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "node": {
                "chain_id": self.node.chain_id,
                "log_level": self.node.log_level,
            },
            "curve": {
                "max_supply": self.curve.max_supply,
                "offset": self.curve.offset,
            },
            "fees": {
                "fee": self.fees.fee,
                "max_fee": self.fees.max_fee,
            },
            "oracle": {
                "length": self.oracle.length,
                "min_length": self.oracle.min_length,
                "capacity": self.oracle.capacity,
            },
            "settlement": {
                "margin": self.settlement.margin,
                "royalty_cap_bps": self.settlement.royalty_cap_bps,
            },
        }


# -----------------------------------------------------------------------
# Convenience function
# -----------------------------------------------------------------------

def load_config(path: Optional[str] = None) -> PiSwapConfig:
    """
    Load PiSwap configuration.

    Resolution order:
        1. Explicit *path* argument
        2. PISWAP_CONFIG env var
        3. ./piswap.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("PISWAP_CONFIG", "piswap.toml")

    return PiSwapConfig.from_file(path)
