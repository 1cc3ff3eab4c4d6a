"""
tokensale - token sale economics core

Main Components:
- Pricing: piecewise linear/logarithmic bonding curve over fixed-point math
- Vesting: per-beneficiary linear release schedules
- Escrow: arbitrated lock/fund/release/reclaim/mediate state machine
- Sale: discount and hard-cap policy in front of the vesting ledger

Ledger calls are atomic: a failing call restores the ledger, the token
balances and the event log to their state before the call.
"""

__version__ = "0.1.0"
__author__ = "tokensale developers"

from tokensale.escrow import EscrowLedger, EscrowLock, EscrowState
from tokensale.events import EventLog, EventType, LedgerEvent
from tokensale.pricing import BondingCurve, CurveParameters, Quote, compute_bonus
from tokensale.sale import RaisedState, SaleController
from tokensale.vesting import VestingGrant, VestingLedger

__all__ = [
    "BondingCurve",
    "CurveParameters",
    "EscrowLedger",
    "EscrowLock",
    "EscrowState",
    "EventLog",
    "EventType",
    "LedgerEvent",
    "Quote",
    "RaisedState",
    "SaleController",
    "VestingGrant",
    "VestingLedger",
    "compute_bonus",
]
