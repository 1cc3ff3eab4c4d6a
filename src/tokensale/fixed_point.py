"""
Fixed-point arithmetic for token amounts.

Values are unsigned integers scaled by 10**18 ("fixed units"), bounded by the
unsigned 256-bit range so results match what an on-chain ledger could store.
Every primitive is overflow/underflow checked:
- add / mul raise ArithmeticOverflow above UINT256_MAX
- sub raises ArithmeticUnderflow below zero
- div raises DivisionByZero on a zero divisor

ln() approximates the natural logarithm by normalising into [1, 1.5) and
summing the alternating series of ln(1 + y). Its relative error is below
0.001% for every input >= 1 at the default term count; it is not exact.
"""

from __future__ import annotations

from tokensale.constants import LN_1_5, LN_SERIES_TERMS, ONE, ONE_AND_HALF, UINT256_MAX
from tokensale.exceptions import ArithmeticOverflow, ArithmeticUnderflow, DivisionByZero


def _require_unsigned(*values: int) -> None:
    for value in values:
        if value < 0:
            raise ArithmeticUnderflow(
                "Fixed point operand cannot be negative",
                details={"operand": value},
            )
        if value > UINT256_MAX:
            raise ArithmeticOverflow(
                "Fixed point operand exceeds uint256",
                details={"operand": value},
            )


def add(a: int, b: int) -> int:
    """Checked addition."""
    _require_unsigned(a, b)
    result = a + b
    if result > UINT256_MAX:
        raise ArithmeticOverflow("Addition overflows uint256", details={"a": a, "b": b})
    return result


def sub(a: int, b: int) -> int:
    """Checked subtraction."""
    _require_unsigned(a, b)
    if b > a:
        raise ArithmeticUnderflow("Subtraction underflows zero", details={"a": a, "b": b})
    return a - b


def mul(a: int, b: int) -> int:
    """Checked multiplication."""
    _require_unsigned(a, b)
    result = a * b
    if result > UINT256_MAX:
        raise ArithmeticOverflow("Multiplication overflows uint256", details={"a": a, "b": b})
    return result


def div(a: int, b: int) -> int:
    """Checked floor division."""
    _require_unsigned(a, b)
    if b == 0:
        raise DivisionByZero("Division by zero", details={"a": a})
    return a // b


def fmul(a: int, b: int) -> int:
    """Multiply two fixed-unit values."""
    return mul(a, b) // ONE


def fdiv(a: int, b: int) -> int:
    """Divide two fixed-unit values (or two plain integers into a fixed ratio)."""
    return div(mul(a, ONE), b)


def to_fixed(value: int) -> int:
    """Scale a whole number into fixed units."""
    return mul(value, ONE)


def from_fixed(value: int) -> int:
    """Truncate a fixed-unit value to its whole part."""
    return div(value, ONE)


def ln(x: int, terms: int = LN_SERIES_TERMS) -> int:
    """
    Natural logarithm of a fixed-unit value.

    Args:
        x: Input in fixed units, must be >= ONE
        terms: Number of series terms for ln(1 + y), y in [0, 0.5)

    Returns:
        ln(x) in fixed units

    Raises:
        ArithmeticUnderflow: If x < ONE (the result would be negative)
    """
    if terms < 1:
        raise ValueError("ln() needs at least one series term")
    _require_unsigned(x)
    if x < ONE:
        raise ArithmeticUnderflow(
            "ln() of a value below 1 is negative",
            details={"x": x},
        )

    result = 0
    while x >= ONE_AND_HALF:
        x = div(mul(x, 2), 3)
        result = add(result, LN_1_5)

    y = x - ONE
    # Partial sums of the alternating series stay positive for y < 2
    series = 0
    power = y
    for n in range(1, terms + 1):
        if n > 1:
            power = fmul(power, y)
        if power == 0:
            break
        if n % 2:
            series += power // n
        else:
            series -= power // n

    return add(result, series)
