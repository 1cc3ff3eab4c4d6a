"""
Bonding curve pricing for the token sale.

Converts a fiat-equivalent contribution into a token amount given how much has
already been raised. Two regimes, split at a fixed raised threshold T:

- Linear: below T every unit buys rate = 100/14 tokens (price 0.14).
- Logarithmic: above T the price rises with the amount raised, and a
  contribution c' on top of r' already raised above T buys
  K * ln((T' + r' + c') / (T' + r')) tokens.

A contribution straddling T is split: the part below T is priced linearly and
the rest on the logarithmic segment. Small logarithmic portions use the
trapezoidal rule for the integral of 1/x instead of the series logarithm.

All results are token base units (18 decimals), truncated toward zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from tokensale import fixed_point
from tokensale.constants import (
    CURVE_THRESHOLD,
    LINEAR_RATE_DENOMINATOR,
    LINEAR_RATE_NUMERATOR,
    LN_SERIES_TERMS,
    LOG_OFFSET,
    LOG_SCALE,
    MAX_DISCOUNT_BASE,
    MIN_DISCOUNT_BASE,
    ONE,
    SMALL_CONTRIBUTION_LIMIT,
)
from tokensale.exceptions import ConfigurationError, InvalidAmount, InvalidDiscount

logger = logging.getLogger(__name__)


class Regime(Enum):
    """Which segment(s) of the curve priced a contribution."""
    LINEAR = "linear"
    MIXED = "mixed"
    LOGARITHMIC = "logarithmic"


@dataclass(frozen=True)
class CurveParameters:
    """
    Shape of the bonding curve.

    threshold, log_offset and small_contribution_limit are in currency units;
    log_scale is in whole tokens.
    """

    threshold: int = CURVE_THRESHOLD
    rate_numerator: int = LINEAR_RATE_NUMERATOR
    rate_denominator: int = LINEAR_RATE_DENOMINATOR
    log_scale: int = LOG_SCALE
    log_offset: int = LOG_OFFSET
    small_contribution_limit: int = SMALL_CONTRIBUTION_LIMIT
    ln_terms: int = LN_SERIES_TERMS

    def __post_init__(self) -> None:
        for name in ("threshold", "rate_numerator", "rate_denominator", "log_scale", "log_offset", "ln_terms"):
            value = getattr(self, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(
                    f"Curve parameter {name} must be a positive integer",
                    details={"parameter": name, "value": value},
                )
        if not isinstance(self.small_contribution_limit, int) or self.small_contribution_limit < 0:
            raise ConfigurationError(
                "Curve parameter small_contribution_limit cannot be negative",
                details={"value": self.small_contribution_limit},
            )


@dataclass(frozen=True)
class Quote:
    """Token amount a contribution buys at a given point of the sale."""

    raised: int
    contribution: int
    base_tokens: int
    tokens: int
    discount_base: int
    regime: Regime

    def to_dict(self) -> dict:
        return {
            "raised": self.raised,
            "contribution": self.contribution,
            "base_tokens": self.base_tokens,
            "tokens": self.tokens,
            "discount_base": self.discount_base,
            "regime": self.regime.value,
        }


def compute_bonus(amount: int, discount_base: int) -> int:
    """
    Apply a purchase discount to a token amount.

    A discount_base of 100 means full price; 70 means the buyer pays 70% of
    the list price, so receives amount * 100 / 70 tokens.

    Raises:
        InvalidDiscount: If discount_base is outside [70, 100]
    """
    if not isinstance(discount_base, int) or not MIN_DISCOUNT_BASE <= discount_base <= MAX_DISCOUNT_BASE:
        raise InvalidDiscount(
            f"Discount base must be between {MIN_DISCOUNT_BASE} and {MAX_DISCOUNT_BASE}",
            details={"discount_base": discount_base},
        )
    return fixed_point.div(fixed_point.mul(amount, 100), discount_base)


class BondingCurve:
    """Piecewise linear/logarithmic issuance curve."""

    def __init__(self, params: CurveParameters | None = None) -> None:
        self.params = params or CurveParameters()

    def linear_tokens(self, units: int) -> int:
        """Tokens bought by `units` on the linear segment."""
        p = self.params
        scaled = fixed_point.mul(fixed_point.to_fixed(units), p.rate_numerator)
        return fixed_point.div(scaled, p.rate_denominator)

    def log_tokens(self, raised_above: int, units: int) -> int:
        """
        Tokens bought by `units` on the logarithmic segment when `raised_above`
        has already been raised past the threshold.
        """
        p = self.params
        base = fixed_point.add(p.log_offset, raised_above)
        top = fixed_point.add(base, units)

        if units < p.small_contribution_limit:
            # K * c * (1/base + 1/top) / 2 == K * c * (base + top) / (2 * base * top)
            numerator = fixed_point.mul(
                fixed_point.mul(fixed_point.to_fixed(p.log_scale), units),
                fixed_point.add(base, top),
            )
            denominator = fixed_point.mul(2, fixed_point.mul(base, top))
            return fixed_point.div(numerator, denominator)

        # ln(top) - ln(base) taken as the log of the ratio keeps y near zero
        log_ratio = fixed_point.ln(fixed_point.fdiv(top, base), p.ln_terms)
        return fixed_point.mul(p.log_scale, log_ratio)

    def regime(self, raised: int, contribution: int) -> Regime:
        threshold = self.params.threshold
        if raised + contribution <= threshold:
            return Regime.LINEAR
        if raised >= threshold:
            return Regime.LOGARITHMIC
        return Regime.MIXED

    def compute_tokens(self, raised: int, contribution: int) -> int:
        """
        Tokens issued for `contribution` units given `raised` units already
        collected.

        Raises:
            InvalidAmount: If contribution is not positive or raised is negative
        """
        if not isinstance(contribution, int) or contribution <= 0:
            raise InvalidAmount(
                "Contribution must be a positive integer",
                details={"contribution": contribution},
            )
        if not isinstance(raised, int) or raised < 0:
            raise InvalidAmount("Raised amount cannot be negative", details={"raised": raised})

        threshold = self.params.threshold
        regime = self.regime(raised, contribution)
        if regime is Regime.LINEAR:
            tokens = self.linear_tokens(contribution)
        elif regime is Regime.LOGARITHMIC:
            tokens = self.log_tokens(raised - threshold, contribution)
        else:
            below = threshold - raised
            tokens = fixed_point.add(
                self.linear_tokens(below),
                self.log_tokens(0, contribution - below),
            )

        logger.debug(
            "Curve evaluated",
            extra={
                "event": "pricing.compute_tokens",
                "raised": raised,
                "contribution": contribution,
                "regime": regime.value,
                "tokens": tokens,
            },
        )
        return tokens

    def marginal_rate(self, raised: int) -> int:
        """Tokens (base units) the next single unit buys at `raised`."""
        return self.compute_tokens(raised, 1)

    def quote(self, raised: int, contribution: int, discount_base: int = MAX_DISCOUNT_BASE) -> Quote:
        base_tokens = self.compute_tokens(raised, contribution)
        return Quote(
            raised=raised,
            contribution=contribution,
            base_tokens=base_tokens,
            tokens=compute_bonus(base_tokens, discount_base),
            discount_base=discount_base,
            regime=self.regime(raised, contribution),
        )


def tokens_to_display(amount: int) -> str:
    """Render base units as a decimal token string."""
    whole, fraction = divmod(amount, ONE)
    return f"{whole}.{fraction:018d}"
