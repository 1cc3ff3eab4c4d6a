"""
Collaborator protocols consumed by the sale core.

The ledgers depend on these protocols rather than on the in-memory
implementations shipped in this package, so a host can plug in its own token
ledger, allow list or clock:

    vesting = VestingLedger(token=my_token, address="0xvesting", issuer="0xsale")
"""

from __future__ import annotations

from typing import Any, Callable, Protocol, runtime_checkable

from tokensale.exceptions import TransferFailed

# Returns the current Unix timestamp in seconds
TimeProvider = Callable[[], int]


@runtime_checkable
class TokenLedger(Protocol):
    """
    Protocol for the ERC20-style token the sale distributes.

    transfer/burn act on the holder's own balance; the holder is passed
    explicitly. A False return and a raised error are both hard failures for
    the calling ledger.
    """

    @property
    def total_supply(self) -> int:
        """Total tokens in existence."""
        ...

    def balance_of(self, account: str) -> int:
        """Token balance held by an account."""
        ...

    def transfer(self, sender: str, recipient: str, amount: int) -> bool:
        """Move tokens out of the sender's own balance."""
        ...

    def burn(self, holder: str, amount: int) -> bool:
        """Destroy tokens out of the holder's own balance."""
        ...


@runtime_checkable
class AllowListProvider(Protocol):
    """Protocol for the buyer allow list."""

    def is_allowed(self, address: str) -> bool:
        """Whether an address may receive sale tokens."""
        ...


@runtime_checkable
class Snapshotable(Protocol):
    """State that can be captured before a call and restored if it aborts."""

    def snapshot(self) -> Any:
        ...

    def restore(self, state: Any) -> None:
        ...


def transfer_or_fail(token: TokenLedger, sender: str, recipient: str, amount: int) -> None:
    """Transfer through the collaborator, turning a False return into TransferFailed."""
    if not token.transfer(sender, recipient, amount):
        raise TransferFailed(
            "Token ledger refused transfer",
            details={"sender": sender, "recipient": recipient, "amount": amount},
        )


def burn_or_fail(token: TokenLedger, holder: str, amount: int) -> None:
    """Burn through the collaborator, turning a False return into TransferFailed."""
    if not token.burn(holder, amount):
        raise TransferFailed(
            "Token ledger refused burn",
            details={"holder": holder, "amount": amount},
        )
