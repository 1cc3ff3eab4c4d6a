"""
Shared fixtures: one in-memory sale deployment on a manual clock.
"""

from types import SimpleNamespace

import pytest

from tokensale.access import AllowList, Role, RoleRegistry
from tokensale.config import DistributionSettings
from tokensale.constants import DEFAULT_SALE_SUPPLY, SECONDS_PER_30_DAYS
from tokensale.escrow import EscrowLedger
from tokensale.events import EventLog
from tokensale.sale import SaleController
from tokensale.scenario import ManualClock
from tokensale.token import SaleToken
from tokensale.vesting import VestingLedger

START = 1_700_000_000

ADMIN = "0x" + "ad" * 20
OPERATOR = "0x" + "0b" * 20
SALE = "0x" + "5a" * 20
VESTING = "0x" + "7e" * 20
ESCROW = "0x" + "e5" * 20
BUYER = "0x" + "b1" * 20
OTHER_BUYER = "0x" + "b2" * 20
ALICE = "0x" + "a1" * 20
BOB = "0x" + "b0" * 20
ARBITER = "0x" + "a7" * 20


@pytest.fixture
def addr():
    """Well-known addresses used across the suite."""
    return SimpleNamespace(
        admin=ADMIN,
        operator=OPERATOR,
        sale=SALE,
        vesting=VESTING,
        escrow=ESCROW,
        buyer=BUYER,
        other_buyer=OTHER_BUYER,
        alice=ALICE,
        bob=BOB,
        arbiter=ARBITER,
        start=START,
    )


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
def event_log():
    return EventLog()


@pytest.fixture
def roles():
    registry = RoleRegistry(admin_address=ADMIN)
    registry.grant_role(ADMIN, Role.OPERATOR, OPERATOR)
    return registry


@pytest.fixture
def allow_list(roles):
    return AllowList(roles, [BUYER, OTHER_BUYER])


@pytest.fixture
def token():
    return SaleToken(name="Sale Token", symbol="SALE", owner=ADMIN)


@pytest.fixture
def vesting(token, event_log, clock):
    return VestingLedger(token=token, address=VESTING, issuer=SALE, event_log=event_log, time_provider=clock)


@pytest.fixture
def escrow(token, event_log, clock):
    return EscrowLedger(token=token, address=ESCROW, event_log=event_log, time_provider=clock)


@pytest.fixture
def make_sale(token, vesting, allow_list, roles, event_log, clock):
    """Build an activated sale holding `supply` tokens."""

    def _make(hard_cap=DEFAULT_SALE_SUPPLY, supply=DEFAULT_SALE_SUPPLY, activate=True, **kwargs):
        token.mint(ADMIN, SALE, supply)
        sale = SaleController(
            token=token,
            vesting=vesting,
            allow_list=allow_list,
            roles=roles,
            address=SALE,
            start_time=kwargs.pop("start_time", START - 1),
            end_time=kwargs.pop("end_time", START + 1000),
            hard_cap=hard_cap,
            event_log=event_log,
            time_provider=clock,
            **kwargs,
        )
        if activate:
            sale.activate(ADMIN)
        return sale

    return _make


@pytest.fixture
def sale(make_sale):
    return make_sale()


@pytest.fixture
def settings():
    return DistributionSettings(
        environment="test",
        log_level="INFO",
        supply=DEFAULT_SALE_SUPPLY,
        hard_cap=DEFAULT_SALE_SUPPLY,
        minimum_contribution=10,
        duration=SECONDS_PER_30_DAYS,
        curve={},
    )
