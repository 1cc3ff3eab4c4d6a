"""
Arbitrated escrow for sale tokens.

Locks are keyed by (arbitrator, transaction_id) and move through

    EMPTY -> CREATED -> FUNDED -> released | reclaimed (record deleted)

A FUNDED lock may additionally be mediated, which zeroes its expiration and
freezes it until the arbitrator releases it. expiration == 0 is the single
"sender can never reclaim" marker, whether the lock was created without a
deadline or frozen by mediation; the two cases are indistinguishable.
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any

from tokensale import metrics
from tokensale.atomic import atomic, ledger_lock
from tokensale.events import EventLog, EventType
from tokensale.exceptions import (
    AlreadyExists,
    InsufficientHoldings,
    InvalidAmount,
    Mismatch,
    NotExpired,
    NotPaid,
    Unauthorized,
    ZeroExpiration,
)
from tokensale.interfaces import TimeProvider, TokenLedger, transfer_or_fail

logger = logging.getLogger(__name__)

LockKey = tuple[str, str]


class EscrowState(Enum):
    EMPTY = "empty"
    CREATED = "created"
    FUNDED = "funded"
    DISPUTED = "disputed"


@dataclass
class EscrowLock:
    sender: str
    recipient: str
    value: int
    fee: int
    expiration: int
    paid: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "sender": self.sender,
            "recipient": self.recipient,
            "value": self.value,
            "fee": self.fee,
            "expiration": self.expiration,
            "paid": self.paid,
        }


class EscrowLedger:
    """
    Holds funded locks in the ledger's own token balance until the arbitrator
    releases them or the sender reclaims them after expiration.
    """

    def __init__(
        self,
        token: TokenLedger,
        address: str,
        event_log: EventLog | None = None,
        time_provider: TimeProvider | None = None,
    ):
        if not address:
            raise ValueError("Escrow ledger address cannot be empty.")

        self.token = token
        self.address = address.lower()
        self.event_log = event_log if event_log is not None else EventLog()
        self.locks: dict[LockKey, EscrowLock] = {}
        self._time_provider = time_provider or (lambda: int(time.time()))
        self._lock = ledger_lock(token)

    def _current_time(self, current_time: int | None = None) -> int:
        timestamp = current_time if current_time is not None else self._time_provider()
        try:
            return int(timestamp)
        except (TypeError, ValueError) as exc:
            raise ValueError("time_provider must return an integer timestamp") from exc

    @staticmethod
    def _key(arbitrator: str, transaction_id: str) -> LockKey:
        return ((arbitrator or "").lower(), str(transaction_id))

    def _funded_lock(self, key: LockKey) -> EscrowLock:
        lock = self.locks.get(key)
        if lock is None or not lock.paid:
            raise NotPaid(
                "Escrow lock is not funded",
                details={"arbitrator": key[0], "transaction_id": key[1]},
            )
        return lock

    def _emit(
        self,
        event_type: EventType,
        key: LockKey,
        payload: dict[str, Any],
        now: int | None = None,
    ) -> None:
        self.event_log.emit(
            event_type,
            self.address,
            {"arbitrator": key[0], "transaction_id": key[1], **payload},
            timestamp=self._current_time(now),
        )

    # ==================== Transitions ====================

    def create(
        self,
        sender: str,
        recipient: str,
        arbitrator: str,
        transaction_id: str,
        tokens: int,
        fee: int,
        expiration: int,
    ) -> EscrowLock:
        """
        Open a lock. expiration is an absolute timestamp; 0 means the sender
        can never reclaim it.

        Raises:
            AlreadyExists: If a lock is already stored under the key
            InvalidAmount: If tokens is zero or any amount is negative
        """
        if not isinstance(tokens, int) or tokens <= 0:
            raise InvalidAmount("Escrow value must be a positive integer", details={"tokens": tokens})
        if not isinstance(fee, int) or fee < 0:
            raise InvalidAmount("Escrow fee cannot be negative", details={"fee": fee})
        if not isinstance(expiration, int) or expiration < 0:
            raise InvalidAmount("Expiration must be a non-negative timestamp", details={"expiration": expiration})
        if not sender or not recipient or not arbitrator:
            raise Mismatch("Escrow parties cannot be empty")

        key = self._key(arbitrator, transaction_id)
        with self._lock, atomic("escrow.create", self, self.event_log):
            existing = self.locks.get(key)
            if existing is not None and existing.value > 0:
                raise AlreadyExists(
                    "Escrow lock already exists",
                    details={"arbitrator": key[0], "transaction_id": key[1]},
                )
            lock = EscrowLock(
                sender=sender.lower(),
                recipient=recipient.lower(),
                value=tokens,
                fee=fee,
                expiration=expiration,
            )
            self.locks[key] = lock
            self._emit(EventType.CREATED, key, lock.to_dict())

        metrics.record_escrow_transition("created")
        logger.info(
            "Escrow lock created: %s/%s",
            key[0][:10],
            key[1],
            extra={"event": "escrow.created", "value": tokens, "fee": fee, "expiration": expiration},
        )
        return replace(lock)

    def fund(self, sender: str, arbitrator: str, transaction_id: str, tokens: int, fee: int) -> None:
        """
        Pay value + fee from the sender into the escrow's holding.

        Raises:
            Mismatch: If the lock is not CREATED or sender/tokens/fee differ
        """
        key = self._key(arbitrator, transaction_id)
        sender_norm = (sender or "").lower()
        with self._lock, atomic("escrow.fund", self, self.token, self.event_log):
            lock = self.locks.get(key)
            if (
                lock is None
                or lock.paid
                or lock.sender != sender_norm
                or lock.value != tokens
                or lock.fee != fee
            ):
                raise Mismatch(
                    "Funding does not match a created escrow lock",
                    details={"arbitrator": key[0], "transaction_id": key[1], "sender": sender_norm},
                )

            transfer_or_fail(self.token, sender_norm, self.address, lock.value + lock.fee)
            lock.paid = True
            self._emit(EventType.PAID, key, {"sender": sender_norm, "value": lock.value, "fee": lock.fee})

        metrics.record_escrow_transition("funded")
        logger.info(
            "Escrow lock funded: %s/%s",
            key[0][:10],
            key[1],
            extra={"event": "escrow.funded", "value": tokens, "fee": fee},
        )

    def release(
        self,
        arbitrator: str,
        sender: str,
        recipient: str,
        transaction_id: str,
        exchange_rate: int,
    ) -> int:
        """
        Arbitrator pays a funded lock out: value to `recipient`, fee to itself.

        The stored sender must equal `sender`, and the stored recipient must
        equal either `recipient` or `sender`. exchange_rate is reported for
        off-chain settlement and not interpreted.

        Returns:
            The value paid to the recipient
        """
        key = self._key(arbitrator, transaction_id)
        sender_norm = (sender or "").lower()
        recipient_norm = (recipient or "").lower()
        with self._lock, atomic("escrow.release", self, self.token, self.event_log):
            lock = self._funded_lock(key)
            if lock.sender != sender_norm or lock.recipient not in (recipient_norm, sender_norm):
                raise Mismatch(
                    "Release parties do not match the escrow lock",
                    details={"arbitrator": key[0], "transaction_id": key[1]},
                )
            self._require_holding(lock.value + lock.fee)

            transfer_or_fail(self.token, self.address, recipient_norm, lock.value)
            if lock.fee > 0:
                transfer_or_fail(self.token, self.address, key[0], lock.fee)
            del self.locks[key]
            self._emit(
                EventType.RELEASED,
                key,
                {
                    "sender": sender_norm,
                    "recipient": recipient_norm,
                    "value": lock.value,
                    "fee": lock.fee,
                    "exchange_rate": exchange_rate,
                },
            )

        metrics.record_escrow_transition("released")
        logger.info(
            "Escrow lock released: %s/%s",
            key[0][:10],
            key[1],
            extra={"event": "escrow.released", "value": lock.value, "exchange_rate": exchange_rate},
        )
        return lock.value

    def claim(
        self,
        arbitrator: str,
        transaction_id: str,
        caller: str,
        current_time: int | None = None,
    ) -> int:
        """
        Sender takes an expired, funded lock back (value + fee).

        Raises:
            Unauthorized: If caller is not the stored sender
            NotPaid: If there is no funded lock under the key
            ZeroExpiration: If the lock was mediated or never time-boxed
            NotExpired: If expiration has not passed yet
        """
        key = self._key(arbitrator, transaction_id)
        caller_norm = (caller or "").lower()
        with self._lock, atomic("escrow.claim", self, self.token, self.event_log):
            now = self._current_time(current_time)
            stored = self.locks.get(key)
            if stored is not None and stored.sender != caller_norm:
                raise Unauthorized(
                    "Only the sender can reclaim an escrow lock",
                    details={"caller": caller_norm},
                )
            lock = self._funded_lock(key)
            if lock.expiration == 0:
                raise ZeroExpiration(
                    "Escrow lock cannot be reclaimed",
                    details={"arbitrator": key[0], "transaction_id": key[1]},
                )
            if not lock.expiration < now:
                raise NotExpired(
                    f"Escrow lock expires at {lock.expiration}",
                    details={"expiration": lock.expiration, "now": now},
                )

            amount = lock.value + lock.fee
            self._require_holding(amount)
            transfer_or_fail(self.token, self.address, lock.sender, amount)
            del self.locks[key]
            self._emit(EventType.RECLAIMED, key, {"sender": lock.sender, "amount": amount}, now)

        metrics.record_escrow_transition("reclaimed")
        logger.info(
            "Escrow lock reclaimed: %s/%s",
            key[0][:10],
            key[1],
            extra={"event": "escrow.reclaimed", "amount": amount},
        )
        return amount

    def mediate(self, arbitrator: str, transaction_id: str) -> None:
        """
        Freeze a funded lock for dispute resolution; one-way and idempotent.
        Afterwards only release() can settle it.

        Dispute is emitted only when the call zeroes the expiration. A lock
        created with expiration 0 is already frozen, so mediating it emits
        nothing.
        """
        key = self._key(arbitrator, transaction_id)
        with self._lock, atomic("escrow.mediate", self, self.event_log):
            lock = self._funded_lock(key)
            if lock.expiration == 0:
                logger.debug("Escrow lock %s/%s already frozen", key[0][:10], key[1])
                return
            lock.expiration = 0
            self._emit(EventType.DISPUTE, key, {"sender": lock.sender, "recipient": lock.recipient})

        metrics.record_escrow_transition("disputed")
        logger.warning(
            "Escrow lock under dispute: %s/%s",
            key[0][:10],
            key[1],
            extra={"event": "escrow.dispute"},
        )

    # ==================== Views ====================

    def get_lock(self, arbitrator: str, transaction_id: str) -> EscrowLock | None:
        with self._lock:
            lock = self.locks.get(self._key(arbitrator, transaction_id))
            return replace(lock) if lock is not None else None

    def state_of(self, arbitrator: str, transaction_id: str) -> EscrowState:
        lock = self.get_lock(arbitrator, transaction_id)
        if lock is None or lock.value == 0:
            return EscrowState.EMPTY
        if not lock.paid:
            return EscrowState.CREATED
        if lock.expiration == 0:
            return EscrowState.DISPUTED
        return EscrowState.FUNDED

    def total_locked(self) -> int:
        """Funded value + fee currently held for all locks."""
        with self._lock:
            return sum(lock.value + lock.fee for lock in self.locks.values() if lock.paid)

    def _require_holding(self, amount: int) -> None:
        holding = self.token.balance_of(self.address)
        if holding < amount:
            raise InsufficientHoldings(
                "Escrow ledger does not hold enough tokens",
                details={"holding": holding, "required": amount},
            )

    # ==================== Rollback Support ====================

    def snapshot(self) -> dict[LockKey, EscrowLock]:
        return copy.deepcopy(self.locks)

    def restore(self, state: dict[LockKey, EscrowLock]) -> None:
        self.locks = state
