"""
PiSwap Constants

This module consolidates the protocol constants and the environment
configuration used throughout the codebase. Constants are organized by
category for easy reference.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_CONSOLE_OUTPUT':              'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: THE VALUES BELOW DEFINE THE PRICING OF EVERY MARKET. CHANGING THEM
# CHANGES HOW MUCH COLLATERAL BACKS EACH CLAIM; ONLY DO SO FOR A NEW DEPLOYMENT
# OR FOR TESTING PURPOSES.

# ==================================================================================
# NUMERIC BASE
# ==================================================================================
DECIMALS = 18
ONE = 10 ** DECIMALS  # one whole token in base units
UINT256_MAX = 2 ** 256 - 1


# ==================================================================================
# ISSUANCE CURVE
# ==================================================================================
# E(T) = M*S/(M-T) - S ; T(E) = M - M*S/(E+S)
MAX_SUPPLY = 1_000_000 * ONE  # M, asymptote of the pair supply
CURVE_OFFSET = 100 * ONE      # S, shapes how fast the price rises


# ==================================================================================
# FEES
# ==================================================================================
FEE_DENOMINATOR = 10_000  # basis points
DEFAULT_FEE = 50          # 0.5%
MAX_FEE = 200             # 2%


# ==================================================================================
# ORACLE AND SETTLEMENT
# ==================================================================================
DEFAULT_ORACLE_LENGTH = 60   # samples averaged for the settlement price
MIN_ORACLE_LENGTH = 5
ORACLE_CAPACITY = 256        # ring buffer size per market
SETTLEMENT_MARGIN = 1        # locked collateral must cover margin x price
ROYALTY_CAP_BPS = 1_000      # royalties never exceed 10% of the sale


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    def __hash__(self):
        return hash(bool(self))


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
DEFAULTS = LOGGER_DEFAULTS
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Only known literals reach ast.literal_eval.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        return ast.literal_eval(s.title())
    return v

for key, default_raw in DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
