"""
Sale controller.

Prices contributions on the bonding curve, applies the buyer's discount and the
hard cap, and forwards the purchased tokens into vesting. Each purchase is one
atomic section over the raised totals, the token ledger, the vesting ledger and
the event log: a rejected purchase leaves no trace besides its log line and the
rejection counter.

Lifecycle:
    deployed -> activate() -> open between start_time and end_time
    stop()/resume() pause and re-open purchases
    finalize() after end_time burns the unsold supply and closes the sale
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any

from tokensale import metrics
from tokensale.access import Role, RoleRegistry
from tokensale.atomic import atomic, ledger_lock
from tokensale.constants import MAX_DISCOUNT_BASE, MINIMUM_CONTRIBUTION
from tokensale.events import EventLog, EventType
from tokensale.exceptions import (
    HardCapExceeded,
    InvalidAmount,
    InvalidSchedule,
    SaleNotActive,
    TokenSaleError,
    Unauthorized,
)
from tokensale.interfaces import (
    AllowListProvider,
    TimeProvider,
    TokenLedger,
    burn_or_fail,
    transfer_or_fail,
)
from tokensale.pricing import BondingCurve, compute_bonus
from tokensale.vesting import VestingLedger

logger = logging.getLogger(__name__)


@dataclass
class RaisedState:
    """Running totals of the sale. sold_tokens stays strictly below hard_cap."""

    raised: int = 0
    sold_tokens: int = 0
    hard_cap: int = 0

    def to_dict(self) -> dict[str, int]:
        return {"raised": self.raised, "sold_tokens": self.sold_tokens, "hard_cap": self.hard_cap}


class SaleController:
    """Entry point for purchases; owns the RaisedState of one sale."""

    def __init__(
        self,
        token: TokenLedger,
        vesting: VestingLedger,
        allow_list: AllowListProvider,
        roles: RoleRegistry,
        address: str,
        start_time: int,
        end_time: int,
        hard_cap: int,
        curve: BondingCurve | None = None,
        minimum_contribution: int = MINIMUM_CONTRIBUTION,
        event_log: EventLog | None = None,
        time_provider: TimeProvider | None = None,
    ):
        if not address:
            raise ValueError("Sale address cannot be empty.")
        if start_time > end_time:
            raise InvalidSchedule(
                "Sale must not end before it starts",
                details={"start_time": start_time, "end_time": end_time},
            )
        if not isinstance(hard_cap, int) or hard_cap <= 0:
            raise InvalidAmount("Hard cap must be a positive integer", details={"hard_cap": hard_cap})
        if not isinstance(minimum_contribution, int) or minimum_contribution <= 0:
            raise InvalidAmount(
                "Minimum contribution must be a positive integer",
                details={"minimum_contribution": minimum_contribution},
            )

        self.token = token
        self.vesting = vesting
        self.allow_list = allow_list
        self.roles = roles
        self.address = address.lower()
        self.start_time = start_time
        self.end_time = end_time
        self.curve = curve or BondingCurve()
        self.minimum_contribution = minimum_contribution
        self.event_log = event_log if event_log is not None else vesting.event_log
        self.state = RaisedState(hard_cap=hard_cap)
        self.activated = False
        self.stopped = False
        self.finalized = False
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = ledger_lock(token)

    def _current_time(self, current_time: int | None = None) -> int:
        timestamp = current_time if current_time is not None else self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    # ==================== Views ====================

    @property
    def raised(self) -> int:
        return self.state.raised

    @property
    def sold_tokens(self) -> int:
        return self.state.sold_tokens

    @property
    def hard_cap(self) -> int:
        return self.state.hard_cap

    def is_active(self, now: int | None = None) -> bool:
        now = self._current_time(now)
        return (
            self.activated
            and not self.stopped
            and not self.finalized
            and self.start_time <= now <= self.end_time
        )

    def compute_tokens(self, contribution: int) -> int:
        """Tokens (before discount) `contribution` buys at the current raised amount."""
        with self._lock:
            return self.curve.compute_tokens(self.state.raised, contribution)

    def status(self, now: int | None = None) -> dict[str, Any]:
        now = self._current_time(now)
        with self._lock:
            return {
                **self.state.to_dict(),
                "active": self.is_active(now),
                "activated": self.activated,
                "stopped": self.stopped,
                "finalized": self.finalized,
                "start_time": self.start_time,
                "end_time": self.end_time,
                "unsold": self.token.balance_of(self.address),
            }

    # ==================== Purchases ====================

    def purchase(
        self,
        caller: str,
        contribution: int,
        beneficiary: str,
        discount_base: int = MAX_DISCOUNT_BASE,
        vesting_duration: int = 0,
        current_time: int | None = None,
    ) -> int:
        """
        Record a contribution and vest the purchased tokens for `beneficiary`
        over [now, now + vesting_duration].

        Returns:
            Tokens granted, bonus included

        Raises:
            Unauthorized: If caller is not an operator or beneficiary is not allow-listed
            SaleNotActive: If the sale is not open at `now`
            InvalidAmount: If contribution is below the minimum
            InvalidDiscount: If discount_base is outside [70, 100]
            HardCapExceeded: If sold tokens would reach the hard cap
        """
        try:
            with self._lock, atomic("sale.purchase", self, self.token, self.vesting, self.event_log):
                now = self._current_time(current_time)
                tokens = self._purchase(caller, contribution, beneficiary, discount_base, vesting_duration, now)
        except TokenSaleError as exc:
            metrics.record_rejected_purchase(type(exc).__name__)
            raise

        metrics.record_purchase(self.address, contribution, tokens, self.state.raised)
        logger.info(
            "Purchase recorded for %s",
            beneficiary.lower()[:10],
            extra={
                "event": "sale.purchase",
                "contribution": contribution,
                "tokens": tokens,
                "discount_base": discount_base,
                "raised": self.state.raised,
            },
        )
        return tokens

    def _purchase(
        self,
        caller: str,
        contribution: int,
        beneficiary: str,
        discount_base: int,
        vesting_duration: int,
        now: int,
    ) -> int:
        self.roles.require_role(caller, Role.OPERATOR)
        if not self.is_active(now):
            raise SaleNotActive("Sale is not active", details={"now": now})
        if not beneficiary or not self.allow_list.is_allowed(beneficiary):
            raise Unauthorized("Beneficiary is not allow-listed", details={"beneficiary": beneficiary})
        if not isinstance(contribution, int) or contribution < self.minimum_contribution:
            raise InvalidAmount(
                f"Contribution below minimum of {self.minimum_contribution}",
                details={"contribution": contribution, "minimum": self.minimum_contribution},
            )
        if not isinstance(vesting_duration, int) or vesting_duration < 0:
            raise InvalidSchedule(
                "Vesting duration cannot be negative",
                details={"vesting_duration": vesting_duration},
            )

        state = self.state
        tokens = compute_bonus(self.curve.compute_tokens(state.raised, contribution), discount_base)
        sold_after = state.sold_tokens + tokens
        if sold_after >= state.hard_cap:
            raise HardCapExceeded(
                "Purchase would reach the hard cap",
                details={"sold_tokens": state.sold_tokens, "tokens": tokens, "hard_cap": state.hard_cap},
            )

        beneficiary_norm = beneficiary.lower()
        transfer_or_fail(self.token, self.address, self.vesting.address, tokens)
        self.vesting.grant(self.address, beneficiary_norm, tokens, now, now + vesting_duration)

        state.raised += contribution
        state.sold_tokens = sold_after
        self.event_log.emit(
            EventType.NEW_BUYER,
            self.address,
            {
                "beneficiary": beneficiary_norm,
                "contribution": contribution,
                "tokens": tokens,
                "discount_base": discount_base,
            },
            timestamp=now,
        )
        return tokens

    # ==================== Administration ====================

    def activate(self, caller: str) -> None:
        """Open the sale once it holds the tokens it will distribute."""
        with self._lock:
            self.roles.require_role(caller, Role.ADMIN)
            if self.finalized:
                raise SaleNotActive("Sale has been finalized")
            supply = self.token.balance_of(self.address)
            if supply <= 0:
                raise InvalidAmount("Sale holds no tokens to distribute", details={"sale": self.address})
            self.activated = True
        logger.info("Sale activated", extra={"event": "sale.activated", "supply": supply})

    def stop(self, caller: str) -> None:
        with self._lock, atomic("sale.stop", self, self.event_log):
            self.roles.require_role(caller, Role.ADMIN)
            if self.stopped:
                return
            self.stopped = True
            self.event_log.emit(EventType.SALE_STOPPED, self.address, {"caller": caller.lower()})
        logger.warning("Sale stopped", extra={"event": "sale.stopped", "admin": caller[:10]})

    def resume(self, caller: str) -> None:
        with self._lock, atomic("sale.resume", self, self.event_log):
            self.roles.require_role(caller, Role.ADMIN)
            if not self.stopped:
                return
            if self.finalized:
                raise SaleNotActive("Sale has been finalized")
            self.stopped = False
            self.event_log.emit(EventType.SALE_RESUMED, self.address, {"caller": caller.lower()})
        logger.info("Sale resumed", extra={"event": "sale.resumed", "admin": caller[:10]})

    def finalize(self, caller: str, current_time: int | None = None) -> int:
        """
        Burn whatever the sale still holds and close it permanently.

        Returns:
            Unsold tokens burned
        """
        with self._lock, atomic("sale.finalize", self, self.token, self.event_log):
            self.roles.require_role(caller, Role.ADMIN)
            now = self._current_time(current_time)
            if self.finalized:
                raise SaleNotActive("Sale has already been finalized")
            if now <= self.end_time:
                raise SaleNotActive(
                    "Sale cannot be finalized before it ends",
                    details={"now": now, "end_time": self.end_time},
                )

            unsold = self.token.balance_of(self.address)
            if unsold > 0:
                burn_or_fail(self.token, self.address, unsold)
            self.finalized = True
            self.event_log.emit(
                EventType.SALE_FINALIZED,
                self.address,
                {"unsold_burned": unsold, **self.state.to_dict()},
                timestamp=now,
            )

        logger.info(
            "Sale finalized",
            extra={"event": "sale.finalized", "unsold_burned": unsold, "raised": self.state.raised},
        )
        return unsold

    # ==================== Rollback Support ====================

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": RaisedState(**self.state.to_dict()),
            "activated": self.activated,
            "stopped": self.stopped,
            "finalized": self.finalized,
        }

    def restore(self, state: dict[str, Any]) -> None:
        self.state = state["state"]
        self.activated = state["activated"]
        self.stopped = state["stopped"]
        self.finalized = state["finalized"]
