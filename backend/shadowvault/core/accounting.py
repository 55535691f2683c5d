"""
Fee & Yield Calculator — Fixed-Point Vault Arithmetic.

All amounts are integer base units (lamport-style). Rates are basis
points out of 10,000. Every function here is pure and uses integer
arithmetic only, so results are bit-exact on every platform.

Rounding:
    Fees are floored. A fee never rounds in the payer's favor and the
    net amount is always ``amount - fee``, so ``net + fee == amount``.
"""

from __future__ import annotations

from typing import Tuple

from shadowvault.core.errors import InvalidParameter


# ═══════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ═══════════════════════════════════════════════════════════════════════════════

MAX_BASIS_POINTS = 10_000
SECONDS_PER_YEAR = 31_536_000  # 365 days


# ═══════════════════════════════════════════════════════════════════════════════
# VALIDATION
# ═══════════════════════════════════════════════════════════════════════════════

def require_bps(value: int, field: str = "bps") -> int:
    """Reject basis-point values outside [0, 10000]."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidParameter(f"{field} must be an integer", {"field": field})
    if value < 0 or value > MAX_BASIS_POINTS:
        raise InvalidParameter(
            f"{field} out of range: {value}",
            {"field": field, "value": value, "max": MAX_BASIS_POINTS},
        )
    return value


def require_amount(value: int, field: str = "amount") -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise InvalidParameter(f"{field} must be a non-negative integer", {"field": field})
    return value


# ═══════════════════════════════════════════════════════════════════════════════
# FEES
# ═══════════════════════════════════════════════════════════════════════════════

def apply_fee(amount: int, fee_bps: int) -> Tuple[int, int]:
    """
    Split an amount into (net, fee) at the given basis-point rate.

    Args:
        amount: Gross amount in base units.
        fee_bps: Fee rate in basis points (0..10000).

    Returns:
        Tuple of (net, fee) where fee = floor(amount * fee_bps / 10000).

    Raises:
        InvalidParameter: Negative amount or out-of-range rate.
    """
    require_amount(amount)
    require_bps(fee_bps, "fee_bps")
    fee = amount * fee_bps // MAX_BASIS_POINTS
    return amount - fee, fee


def split_by_weight(amount: int, weight_bps: int) -> Tuple[int, int]:
    """Split an amount across two routes; the remainder goes to the second leg."""
    require_amount(amount)
    require_bps(weight_bps, "weight_bps")
    first = amount * weight_bps // MAX_BASIS_POINTS
    return first, amount - first


# ═══════════════════════════════════════════════════════════════════════════════
# YIELD
# ═══════════════════════════════════════════════════════════════════════════════

def accrue_yield(principal: int, yield_bps: int, elapsed_seconds: int) -> int:
    """
    Linear time-based yield.

    accrued = principal * yield_bps * elapsed / (10000 * SECONDS_PER_YEAR)

    The division happens once, after all multiplications, so the only
    truncation is the final one (toward zero). Negative elapsed time
    (clock skew) accrues nothing.
    """
    require_amount(principal, "principal")
    require_bps(yield_bps, "yield_bps")
    if elapsed_seconds <= 0:
        return 0
    return principal * yield_bps * elapsed_seconds // (MAX_BASIS_POINTS * SECONDS_PER_YEAR)
