"""
In-memory ERC20-style token ledger for the sale.

Implements the TokenLedger protocol the sale core consumes:
- balance_of / transfer / burn / total_supply
- Owner-only minting under an optional supply cap
- Transfer log (Transfer events, including mint and burn)
- snapshot()/restore() so ledger calls can roll back token movements

Security features:
- Overflow protection (256-bit range)
- Zero address checks
- Balance underflow prevention
"""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from tokensale.constants import TOKEN_DECIMALS, UINT256_MAX, ZERO_ADDRESS
from tokensale.exceptions import InvalidAmount, TransferFailed, Unauthorized

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenEvent:
    """Represents a Transfer on the token ledger."""

    from_address: str
    to_address: str
    value: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class SaleToken:
    """
    Token distributed by the sale.

    All balances are stored in-memory. Minting is restricted to the owner and
    bounded by max_supply when it is non-zero.
    """

    # Token metadata
    name: str
    symbol: str
    decimals: int = TOKEN_DECIMALS

    # Owner (for minting permissions)
    owner: str = ""

    # Supply cap (0 = unlimited)
    max_supply: int = 0

    # State
    balances: dict[str, int] = field(default_factory=dict)
    events: list[TokenEvent] = field(default_factory=list)
    _total_supply: int = 0

    # Shared with every ledger moving this token
    ledger_lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    def __post_init__(self) -> None:
        self.owner = self._normalize(self.owner)

    # ==================== View Functions ====================

    @property
    def total_supply(self) -> int:
        return self._total_supply

    def balance_of(self, account: str) -> int:
        """
        Get the token balance of an account.

        Args:
            account: Address to check

        Returns:
            Token balance
        """
        return self.balances.get(self._normalize(account), 0)

    # ==================== State-Changing Functions ====================

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """
        Transfer tokens from sender to recipient.

        Args:
            sender: Address sending tokens (the holder itself)
            recipient: Address receiving tokens
            amount: Amount to transfer

        Returns:
            True if successful

        Raises:
            TransferFailed: If the recipient is invalid or the balance too low
        """
        with self.ledger_lock:
            sender_norm = self._normalize(sender)
            recipient_norm = self._normalize(recipient)

            self._validate_address(recipient_norm, "recipient")
            self._validate_amount(amount)

            sender_balance = self.balances.get(sender_norm, 0)
            if sender_balance < amount:
                raise TransferFailed(
                    f"Transfer amount exceeds balance ({amount} > {sender_balance})",
                    details={"sender": sender_norm, "amount": amount, "balance": sender_balance},
                )

            self.balances[sender_norm] = sender_balance - amount
            self.balances[recipient_norm] = self.balances.get(recipient_norm, 0) + amount
            self.events.append(TokenEvent(sender_norm, recipient_norm, amount))

            logger.debug(
                "Token transfer",
                extra={
                    "event": "token.transfer",
                    "token": self.symbol,
                    "from": sender_norm[:10],
                    "to": recipient_norm[:10],
                    "amount": amount,
                },
            )
            return True

    def mint(self, minter: str, to: str, amount: int) -> bool:
        """
        Mint new tokens (owner only).

        Raises:
            Unauthorized: If the minter is not the owner
            TransferFailed: If minting would exceed max supply
        """
        with self.ledger_lock:
            if self._normalize(minter) != self.owner:
                raise Unauthorized("Only the token owner can mint", details={"caller": minter})

            to_norm = self._normalize(to)
            self._validate_address(to_norm, "recipient")
            self._validate_amount(amount)

            new_supply = self._total_supply + amount
            if new_supply > UINT256_MAX or (self.max_supply > 0 and new_supply > self.max_supply):
                raise TransferFailed(
                    f"Mint would exceed max supply ({new_supply} > {self.max_supply})",
                    details={"amount": amount, "max_supply": self.max_supply},
                )

            self._total_supply = new_supply
            self.balances[to_norm] = self.balances.get(to_norm, 0) + amount
            self.events.append(TokenEvent(ZERO_ADDRESS, to_norm, amount))

            logger.info(
                "Token mint",
                extra={
                    "event": "token.mint",
                    "token": self.symbol,
                    "to": to_norm[:10],
                    "amount": amount,
                    "new_supply": self._total_supply,
                },
            )
            return True

    def burn(self, holder: str, amount: int) -> bool:
        """
        Burn tokens from holder's balance.

        Raises:
            TransferFailed: If the balance is too low
        """
        with self.ledger_lock:
            holder_norm = self._normalize(holder)
            self._validate_amount(amount)

            balance = self.balances.get(holder_norm, 0)
            if balance < amount:
                raise TransferFailed(
                    f"Burn amount exceeds balance ({amount} > {balance})",
                    details={"holder": holder_norm, "amount": amount, "balance": balance},
                )

            self.balances[holder_norm] = balance - amount
            self._total_supply -= amount
            self.events.append(TokenEvent(holder_norm, ZERO_ADDRESS, amount))

            logger.info(
                "Token burn",
                extra={
                    "event": "token.burn",
                    "token": self.symbol,
                    "from": holder_norm[:10],
                    "amount": amount,
                    "new_supply": self._total_supply,
                },
            )
            return True

    # ==================== Rollback Support ====================

    def snapshot(self) -> dict[str, Any]:
        with self.ledger_lock:
            return {
                "balances": dict(self.balances),
                "total_supply": self._total_supply,
                "events": len(self.events),
            }

    def restore(self, state: dict[str, Any]) -> None:
        with self.ledger_lock:
            self.balances = dict(state["balances"])
            self._total_supply = state["total_supply"]
            del self.events[state["events"]:]

    # ==================== Helpers ====================

    def _normalize(self, address: str) -> str:
        """Normalize address to lowercase."""
        return (address or "").lower()

    def _validate_address(self, address: str, field_name: str) -> None:
        """Validate address is not zero."""
        if address == ZERO_ADDRESS or not address:
            raise TransferFailed(f"Token {field_name} is zero address")

    def _validate_amount(self, amount: int) -> None:
        """Validate amount is valid."""
        if not isinstance(amount, int) or amount < 0:
            raise InvalidAmount("Token amount must be a non-negative integer", details={"amount": amount})
        if amount > UINT256_MAX:
            raise InvalidAmount("Token amount exceeds uint256", details={"amount": amount})

    # ==================== Serialization ====================

    def to_dict(self) -> dict[str, Any]:
        """Serialize token state to dictionary."""
        return {
            "name": self.name,
            "symbol": self.symbol,
            "decimals": self.decimals,
            "total_supply": self._total_supply,
            "owner": self.owner,
            "balances": copy.deepcopy(self.balances),
            "max_supply": self.max_supply,
        }
