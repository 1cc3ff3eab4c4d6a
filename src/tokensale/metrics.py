"""
Sale instrumentation.

Provides Prometheus metrics tracking contributions, issued tokens, vesting
releases and escrow transitions, with helper functions that are safe to call
from the ledgers once a call has committed. Token amounts are reported in
whole tokens.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

from tokensale.constants import ONE

contributions_counter = Counter(
    "tokensale_contributions_total", "Total currency units contributed to the sale"
)

tokens_sold_counter = Counter(
    "tokensale_tokens_sold_total", "Total tokens sold, bonuses included"
)

purchases_rejected_counter = Counter(
    "tokensale_purchases_rejected_total",
    "Purchases rejected by the sale controller",
    ["reason"],
)

raised_gauge = Gauge("tokensale_raised", "Currency units raised so far", ["sale"])

vesting_tokens_counter = Counter(
    "tokensale_vesting_tokens_total",
    "Tokens moved through vesting ledgers",
    ["direction"],
)

escrow_transitions_counter = Counter(
    "tokensale_escrow_transitions_total",
    "Committed escrow state transitions",
    ["transition"],
)


def _whole_tokens(amount: int) -> float:
    return amount / ONE


def record_purchase(sale: str, contribution: int, tokens: int, raised: int) -> None:
    """Count a committed purchase."""
    contributions_counter.inc(contribution)
    tokens_sold_counter.inc(_whole_tokens(tokens))
    raised_gauge.labels(sale=sale).set(raised)


def record_rejected_purchase(reason: str) -> None:
    purchases_rejected_counter.labels(reason=reason).inc()


def record_vesting(direction: str, amount: int) -> None:
    """Count tokens granted into or claimed out of vesting."""
    if amount <= 0:
        return
    vesting_tokens_counter.labels(direction=direction).inc(_whole_tokens(amount))


def record_escrow_transition(transition: str) -> None:
    escrow_transitions_counter.labels(transition=transition).inc()
