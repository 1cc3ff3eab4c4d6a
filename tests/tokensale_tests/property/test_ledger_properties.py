"""
Property-based tests for vesting and escrow ledger invariants.

- Summed claims over any partition of a schedule equal one claim at its end
- claimed never exceeds total and repeated claims at one instant release nothing
- Escrow lifecycles conserve tokens and leave no residual record
"""

import pytest
from hypothesis import given, settings, strategies as st

from tokensale.constants import ONE
from tokensale.escrow import EscrowLedger, EscrowState
from tokensale.events import EventLog
from tokensale.exceptions import ZeroExpiration
from tokensale.scenario import ManualClock
from tokensale.token import SaleToken
from tokensale.vesting import VestingLedger

ADMIN = "0x" + "ad" * 20
ISSUER = "0x" + "5a" * 20
LEDGER = "0x" + "7e" * 20
BENEFICIARY = "0x" + "b1" * 20
SENDER = "0x" + "a1" * 20
RECIPIENT = "0x" + "b0" * 20
ARBITER = "0x" + "a7" * 20


def _vesting(total: int, start: int):
    token = SaleToken(name="Sale Token", symbol="SALE", owner=ADMIN)
    token.mint(ADMIN, LEDGER, total)
    clock = ManualClock(start)
    ledger = VestingLedger(token, LEDGER, ISSUER, EventLog(), clock)
    return token, ledger, clock


class TestVestingProperties:
    @given(
        total=st.integers(min_value=1, max_value=10**9 * ONE),
        duration=st.integers(min_value=0, max_value=10**8),
        cuts=st.lists(st.integers(min_value=0, max_value=10**8), max_size=20),
    )
    @settings(max_examples=200)
    def test_partitioned_claims_equal_single_claim(self, total, duration, cuts):
        start = 1_000
        token, ledger, _ = _vesting(total, start)
        ledger.grant(ISSUER, BENEFICIARY, total, start, start + duration)

        released = 0
        for cut in sorted(cut % (duration + 1) for cut in cuts):
            released += ledger.claim(BENEFICIARY, current_time=start + cut)
            assert ledger.grants_of(BENEFICIARY)[0].claimed <= total
        released += ledger.claim(BENEFICIARY, current_time=start + duration)

        assert released == total
        assert token.balance_of(BENEFICIARY) == total
        assert ledger.outstanding() == 0

    @given(
        amounts=st.lists(st.integers(min_value=1, max_value=10**6 * ONE), min_size=1, max_size=8),
        offset=st.integers(min_value=0, max_value=10**6),
    )
    @settings(max_examples=150)
    def test_claim_is_idempotent_at_an_instant(self, amounts, offset):
        start = 1_000
        _, ledger, _ = _vesting(sum(amounts), start)
        for index, amount in enumerate(amounts):
            ledger.grant(ISSUER, BENEFICIARY, amount, start, start + 1_000 * (index + 1))

        ledger.claim(BENEFICIARY, current_time=start + offset)
        assert ledger.claim(BENEFICIARY, current_time=start + offset) == 0
        assert ledger.total_vested_tokens(BENEFICIARY) == sum(amounts)


class TestEscrowProperties:
    @given(
        value=st.integers(min_value=1, max_value=10**9 * ONE),
        fee=st.integers(min_value=0, max_value=10**6 * ONE),
        release=st.booleans(),
    )
    @settings(max_examples=200)
    def test_lifecycle_conserves_tokens(self, value, fee, release):
        token = SaleToken(name="Sale Token", symbol="SALE", owner=ADMIN)
        token.mint(ADMIN, SENDER, value + fee)
        clock = ManualClock(100)
        escrow = EscrowLedger(token, "0x" + "e5" * 20, EventLog(), clock)

        escrow.create(SENDER, RECIPIENT, ARBITER, "tx", value, fee, 200)
        escrow.fund(SENDER, ARBITER, "tx", value, fee)
        if release:
            escrow.release(ARBITER, SENDER, RECIPIENT, "tx", 1)
            assert token.balance_of(RECIPIENT) == value
            assert token.balance_of(ARBITER) == fee
        else:
            clock.set(201)
            escrow.claim(ARBITER, "tx", SENDER)
            assert token.balance_of(SENDER) == value + fee

        assert escrow.state_of(ARBITER, "tx") is EscrowState.EMPTY
        assert token.balance_of(escrow.address) == 0
        assert token.total_supply == value + fee

    @given(elapsed=st.integers(min_value=0, max_value=10**10))
    @settings(max_examples=100)
    def test_mediated_lock_never_reclaimable(self, elapsed):
        token = SaleToken(name="Sale Token", symbol="SALE", owner=ADMIN)
        token.mint(ADMIN, SENDER, 10 * ONE)
        escrow = EscrowLedger(token, "0x" + "e5" * 20, EventLog(), ManualClock(100))
        escrow.create(SENDER, RECIPIENT, ARBITER, "tx", 10 * ONE, 0, 150)
        escrow.fund(SENDER, ARBITER, "tx", 10 * ONE, 0)
        escrow.mediate(ARBITER, "tx")

        with pytest.raises(ZeroExpiration):
            escrow.claim(ARBITER, "tx", SENDER, current_time=100 + elapsed)
        assert escrow.state_of(ARBITER, "tx") is EscrowState.DISPUTED

