from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, replace
from typing import Any

from tokensale import metrics
from tokensale.atomic import atomic, ledger_lock
from tokensale.events import EventLog, EventType
from tokensale.exceptions import InsufficientHoldings, InvalidAmount, InvalidSchedule, Unauthorized
from tokensale.interfaces import TimeProvider, TokenLedger, transfer_or_fail

logger = logging.getLogger(__name__)


@dataclass
class VestingGrant:
    """One linear release schedule. Never deleted; only `claimed` changes."""

    beneficiary: str
    total: int
    start: int
    end: int
    claimed: int = 0

    def vested_at(self, timestamp: int) -> int:
        """Amount vested at `timestamp`, claimed or not."""
        if timestamp < self.start:
            return 0
        if self.end == self.start or timestamp >= self.end:
            return self.total
        return self.total * (timestamp - self.start) // (self.end - self.start)

    def releasable_at(self, timestamp: int) -> int:
        return max(0, self.vested_at(timestamp) - self.claimed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "beneficiary": self.beneficiary,
            "total": self.total,
            "start": self.start,
            "end": self.end,
            "claimed": self.claimed,
        }


class VestingLedger:
    """
    Holds sale tokens and releases them to beneficiaries on linear schedules.

    A beneficiary may hold any number of grants; each accrues independently
    and claims sweep all of them in a single transfer.
    """

    def __init__(
        self,
        token: TokenLedger,
        address: str,
        issuer: str,
        event_log: EventLog | None = None,
        time_provider: TimeProvider | None = None,
    ):
        if not address:
            raise ValueError("Vesting ledger address cannot be empty.")
        if not issuer:
            raise ValueError("Vesting issuer address cannot be empty.")

        self.token = token
        self.address = address.lower()
        self.issuer = issuer.lower()
        self.event_log = event_log if event_log is not None else EventLog()
        # {beneficiary: [VestingGrant, ...]} in grant order
        self.grants: dict[str, list[VestingGrant]] = {}
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = ledger_lock(token)
        logger.info(
            "VestingLedger initialized for issuer %s with deterministic time provider: %s",
            self.issuer[:10],
            bool(time_provider),
        )

    def _current_time(self, current_time: int | None = None) -> int:
        timestamp = current_time if current_time is not None else self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    # ==================== Mutations ====================

    def grant(self, caller: str, beneficiary: str, amount: int, start: int, end: int) -> int:
        """
        Create a new grant releasing `amount` linearly over [start, end].

        The ledger must already hold the tokens: its balance has to cover every
        unclaimed grant plus this one.

        Returns:
            Index of the grant among the beneficiary's grants
        """
        if (caller or "").lower() != self.issuer:
            raise Unauthorized("Only the issuer can create vesting grants", details={"caller": caller})
        if not beneficiary:
            raise InvalidAmount("Beneficiary address cannot be empty.")
        if not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount("Grant amount must be a positive integer", details={"amount": amount})
        if not isinstance(start, int) or not isinstance(end, int) or start < 0:
            raise InvalidSchedule(
                "Schedule bounds must be non-negative integer timestamps",
                details={"start": start, "end": end},
            )
        if start > end:
            raise InvalidSchedule("Schedule must not end before it starts", details={"start": start, "end": end})

        beneficiary_norm = beneficiary.lower()
        with self._lock, atomic("vesting.grant", self, self.token, self.event_log):
            required = self.outstanding() + amount
            holding = self.token.balance_of(self.address)
            if holding < required:
                raise InsufficientHoldings(
                    "Vesting ledger does not hold enough tokens for this grant",
                    details={"holding": holding, "required": required},
                )

            grants = self.grants.setdefault(beneficiary_norm, [])
            grants.append(VestingGrant(beneficiary_norm, amount, start, end))
            index = len(grants) - 1
            self.event_log.emit(
                EventType.NEW_TOKEN_GRANT,
                self.address,
                {"beneficiary": beneficiary_norm, "amount": amount, "start": start, "end": end, "index": index},
                timestamp=self._current_time(),
            )

        metrics.record_vesting("granted", amount)
        logger.info(
            "Vesting grant %d created for %s",
            index,
            beneficiary_norm[:10],
            extra={"event": "vesting.grant", "amount": amount, "start": start, "end": end},
        )
        return index

    def claim(self, beneficiary: str, current_time: int | None = None) -> int:
        """
        Release everything vested and not yet claimed across all of the
        beneficiary's grants.

        Returns:
            Total released by this call (0 when nothing is due)
        """
        beneficiary_norm = (beneficiary or "").lower()
        with self._lock, atomic("vesting.claim", self, self.token, self.event_log):
            now = self._current_time(current_time)
            released = 0
            for grant in self.grants.get(beneficiary_norm, []):
                due = grant.releasable_at(now)
                if due:
                    grant.claimed += due
                    released += due

            if released:
                transfer_or_fail(self.token, self.address, beneficiary_norm, released)
                self.event_log.emit(
                    EventType.NEW_TOKEN_CLAIM,
                    self.address,
                    {"beneficiary": beneficiary_norm, "amount": released},
                    timestamp=now,
                )

        if not released:
            logger.debug("No vested tokens due for %s", beneficiary_norm[:10])
            return 0

        metrics.record_vesting("claimed", released)
        logger.info(
            "Claimed %d vested tokens for %s",
            released,
            beneficiary_norm[:10],
            extra={"event": "vesting.claim", "claimed_at": now},
        )
        return released

    # ==================== Views ====================

    def releasable(self, beneficiary: str, current_time: int | None = None) -> int:
        now = self._current_time(current_time)
        with self._lock:
            return sum(grant.releasable_at(now) for grant in self.grants.get((beneficiary or "").lower(), []))

    def total_vested_tokens(self, beneficiary: str) -> int:
        """Sum of grant totals for a beneficiary, released or not."""
        with self._lock:
            return sum(grant.total for grant in self.grants.get((beneficiary or "").lower(), []))

    def grants_of(self, beneficiary: str) -> list[VestingGrant]:
        """Copies of the beneficiary's grants."""
        with self._lock:
            return [replace(grant) for grant in self.grants.get((beneficiary or "").lower(), [])]

    def outstanding(self) -> int:
        """Tokens granted but not yet claimed, across all beneficiaries."""
        with self._lock:
            return sum(
                grant.total - grant.claimed
                for grants in self.grants.values()
                for grant in grants
            )

    def circulating_supply(self) -> int:
        """Token supply outside the vesting ledger and its issuer."""
        return (
            self.token.total_supply
            - self.token.balance_of(self.address)
            - self.token.balance_of(self.issuer)
        )

    # ==================== Rollback Support ====================

    def snapshot(self) -> dict[str, list[VestingGrant]]:
        return copy.deepcopy(self.grants)

    def restore(self, state: dict[str, list[VestingGrant]]) -> None:
        self.grants = state
