"""
Token sale economic constants

All magic numbers used by the pricing curve, the vesting ledger and the sale
controller live here, grouped by concern.

NOTE: The curve constants define the issuance schedule. Changing any value
marked [ISSUANCE] changes how many tokens a contribution buys and must be
coordinated with every party relying on published quotes.
"""

from typing import Final

# =============================================================================
# FIXED POINT
# =============================================================================

TOKEN_DECIMALS: Final[int] = 18
ONE: Final[int] = 10**TOKEN_DECIMALS  # 1.0 in fixed units
UINT256_MAX: Final[int] = 2**256 - 1

# ln(1.5) = 0.405465108108164, in fixed units
LN_1_5: Final[int] = 405_465_108_108_164_000
# 1.5 in fixed units (normalisation bound for ln)
ONE_AND_HALF: Final[int] = 3 * ONE // 2

# Series terms used by ln(); the reference curve used 10
LN_SERIES_TERMS: Final[int] = 20

# =============================================================================
# PRICING CURVE [ISSUANCE]
# =============================================================================

# Raised amount (currency units) below which tokens are priced linearly
CURVE_THRESHOLD: Final[int] = 7_000_000

# Linear price: 0.14 per token, i.e. 100 / 14 tokens per unit
LINEAR_RATE_NUMERATOR: Final[int] = 100
LINEAR_RATE_DENOMINATOR: Final[int] = 14

# Logarithmic segment: tokens = K * ln((T' + r + c) / (T' + r))
LOG_SCALE: Final[int] = 70_000_000
LOG_OFFSET: Final[int] = 14_000_000

# Below this many units the log segment uses the trapezoidal approximation
SMALL_CONTRIBUTION_LIMIT: Final[int] = 50_000

# Allowed discount bases (percent of list price actually paid)
MIN_DISCOUNT_BASE: Final[int] = 70
MAX_DISCOUNT_BASE: Final[int] = 100

# =============================================================================
# SALE POLICY
# =============================================================================

MINIMUM_CONTRIBUTION: Final[int] = 10
DEFAULT_SALE_SUPPLY: Final[int] = 700_000_000 * ONE

# =============================================================================
# ADDRESSES & TIME
# =============================================================================

ZERO_ADDRESS: Final[str] = "0x" + "0" * 40

SECONDS_PER_30_DAYS: Final[int] = 2592000
