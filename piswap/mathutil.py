"""
Integer arithmetic helpers.

Pricing is done in unbounded Python ints; `check_uint256` bounds
intermediates the way 256-bit machine words would.
"""

from .constants import UINT256_MAX
from .exceptions import MaxSupplyExceeded


def ceil_div(a: int, b: int) -> int:
    """Division rounded towards positive infinity (a >= 0, b > 0)."""
    return -(-a // b)


def isqrt(n: int) -> int:
    """Floor square root via Newton's method."""
    if n < 0:
        raise ValueError("square root of negative number")
    if n < 2:
        return n
    x = 1 << ((n.bit_length() + 1) // 2)
    while True:
        y = (x + n // x) // 2
        if y >= x:
            return x
        x = y


def check_uint256(*values: int) -> None:
    for value in values:
        if value > UINT256_MAX:
            raise MaxSupplyExceeded("arithmetic overflow: value exceeds 2**256 - 1")


def fee_of(gross: int, fee: int, denominator: int) -> int:
    """Fee charged on a gross amount, rounded up."""
    return ceil_div(gross * fee, denominator)


def gross_up(net: int, fee: int, denominator: int) -> int:
    """Smallest gross amount whose fee-free remainder covers *net*."""
    return ceil_div(net * denominator, denominator - fee)
