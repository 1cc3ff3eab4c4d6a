"""
Unit tests for the vesting ledger: grants, linear accrual and claims.
"""

import pytest

from tokensale.constants import ONE
from tokensale.events import EventType
from tokensale.exceptions import (
    InsufficientHoldings,
    InvalidAmount,
    InvalidSchedule,
    TransferFailed,
    Unauthorized,
)
from tokensale.vesting import VestingGrant


@pytest.fixture
def funded_vesting(token, vesting, addr):
    """Vesting ledger holding 1,000 tokens."""
    token.mint(addr.admin, addr.vesting, 1_000 * ONE)
    return vesting


class TestVestingGrant:
    def test_linear_accrual(self):
        grant = VestingGrant("0xb", total=1_000, start=100, end=200)
        assert grant.vested_at(99) == 0
        assert grant.vested_at(100) == 0
        assert grant.vested_at(150) == 500
        assert grant.vested_at(200) == 1_000
        assert grant.vested_at(10_000) == 1_000

    def test_degenerate_schedule_vests_at_start(self):
        grant = VestingGrant("0xb", total=1_000, start=100, end=100)
        assert grant.vested_at(99) == 0
        assert grant.vested_at(100) == 1_000

    def test_releasable_subtracts_claimed(self):
        grant = VestingGrant("0xb", total=1_000, start=0, end=100, claimed=300)
        assert grant.releasable_at(50) == 200
        assert grant.releasable_at(10) == 0


class TestGrant:
    def test_uses_supplied_event_log(self, vesting, event_log):
        assert vesting.event_log is event_log

    def test_grant_records_and_emits(self, funded_vesting, event_log, addr):
        index = funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)
        assert index == 0
        assert funded_vesting.total_vested_tokens(addr.buyer) == 100 * ONE
        events = event_log.of_type(EventType.NEW_TOKEN_GRANT)
        assert len(events) == 1
        assert events[0].payload["beneficiary"] == addr.buyer

    def test_grants_are_never_merged(self, funded_vesting, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)
        index = funded_vesting.grant(addr.sale, addr.buyer, 50 * ONE, addr.start, addr.start + 10)
        assert index == 1
        assert len(funded_vesting.grants_of(addr.buyer)) == 2
        assert funded_vesting.total_vested_tokens(addr.buyer) == 150 * ONE

    def test_only_issuer_can_grant(self, funded_vesting, addr):
        with pytest.raises(Unauthorized):
            funded_vesting.grant(addr.admin, addr.buyer, ONE, addr.start, addr.start + 1)

    def test_rejects_zero_amount(self, funded_vesting, addr):
        with pytest.raises(InvalidAmount):
            funded_vesting.grant(addr.sale, addr.buyer, 0, addr.start, addr.start + 1)

    def test_rejects_inverted_schedule(self, funded_vesting, addr):
        with pytest.raises(InvalidSchedule):
            funded_vesting.grant(addr.sale, addr.buyer, ONE, addr.start + 1, addr.start)

    def test_holding_must_cover_obligations(self, funded_vesting, event_log, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 900 * ONE, addr.start, addr.start + 1)
        with pytest.raises(InsufficientHoldings):
            funded_vesting.grant(addr.sale, addr.other_buyer, 101 * ONE, addr.start, addr.start + 1)
        assert funded_vesting.grants_of(addr.other_buyer) == []
        assert len(event_log) == 1

    def test_grants_of_returns_copies(self, funded_vesting, addr):
        funded_vesting.grant(addr.sale, addr.buyer, ONE, addr.start, addr.start + 1)
        funded_vesting.grants_of(addr.buyer)[0].claimed = ONE
        assert funded_vesting.grants_of(addr.buyer)[0].claimed == 0


class TestClaim:
    def test_claim_half_then_rest(self, funded_vesting, token, clock, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)

        clock.advance(50)
        assert funded_vesting.releasable(addr.buyer) == 50 * ONE
        assert funded_vesting.claim(addr.buyer) == 50 * ONE
        assert token.balance_of(addr.buyer) == 50 * ONE

        clock.advance(100)
        assert funded_vesting.claim(addr.buyer) == 50 * ONE
        assert token.balance_of(addr.buyer) == 100 * ONE
        assert funded_vesting.outstanding() == 0

    def test_second_claim_without_elapsed_time_is_zero(self, funded_vesting, event_log, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)
        first = funded_vesting.claim(addr.buyer, current_time=addr.start + 30)
        second = funded_vesting.claim(addr.buyer, current_time=addr.start + 30)
        assert first == 30 * ONE
        assert second == 0
        assert len(event_log.of_type(EventType.NEW_TOKEN_CLAIM)) == 1

    def test_claim_sweeps_all_grants_in_one_transfer(self, funded_vesting, token, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)
        funded_vesting.grant(addr.sale, addr.buyer, 10 * ONE, addr.start, addr.start)
        transfers_before = len(token.events)

        released = funded_vesting.claim(addr.buyer, current_time=addr.start + 10)

        assert released == 20 * ONE
        assert len(token.events) == transfers_before + 1

    def test_claim_before_start_releases_nothing(self, funded_vesting, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start + 10, addr.start + 100)
        assert funded_vesting.claim(addr.buyer) == 0

    def test_unknown_beneficiary(self, funded_vesting, addr):
        assert funded_vesting.claim(addr.alice) == 0
        assert funded_vesting.total_vested_tokens(addr.alice) == 0

    def test_failed_transfer_rolls_back_claimed(self, funded_vesting, token, addr):
        funded_vesting.grant(addr.sale, addr.buyer, 100 * ONE, addr.start, addr.start + 100)
        # Drain the ledger so the transfer fails
        token.balances[addr.vesting] = 0

        with pytest.raises(TransferFailed):
            funded_vesting.claim(addr.buyer, current_time=addr.start + 100)

        assert funded_vesting.grants_of(addr.buyer)[0].claimed == 0


def test_circulating_supply_excludes_ledger_and_issuer(token, vesting, addr):
    token.mint(addr.admin, addr.sale, 500 * ONE)
    token.mint(addr.admin, addr.vesting, 200 * ONE)
    token.mint(addr.admin, addr.alice, 30 * ONE)
    assert vesting.circulating_supply() == 30 * ONE
