from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, conint, constr

from tokensale.constants import MAX_DISCOUNT_BASE, MIN_DISCOUNT_BASE

Address = constr(strip_whitespace=True, min_length=1)


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class PurchaseRequest(_Request):
    operator: Address
    contribution: conint(gt=0)
    beneficiary: Address
    discount_base: conint(ge=MIN_DISCOUNT_BASE, le=MAX_DISCOUNT_BASE) = MAX_DISCOUNT_BASE
    vesting_duration: conint(ge=0) = 0


class ClaimRequest(_Request):
    beneficiary: Address


class AdminRequest(_Request):
    caller: Address


class AllowRequest(_Request):
    caller: Address
    address: Address


class MintRequest(_Request):
    to: Address
    amount: conint(gt=0)


class EscrowCreateRequest(_Request):
    sender: Address
    recipient: Address
    arbitrator: Address
    transaction_id: constr(min_length=1)
    tokens: conint(gt=0)
    fee: conint(ge=0) = 0
    expiration: conint(ge=0) = 0


class EscrowFundRequest(_Request):
    sender: Address
    arbitrator: Address
    transaction_id: constr(min_length=1)
    tokens: conint(gt=0)
    fee: conint(ge=0) = 0


class EscrowReleaseRequest(_Request):
    arbitrator: Address
    sender: Address
    recipient: Address
    transaction_id: constr(min_length=1)
    exchange_rate: conint(ge=0) = 0


class EscrowClaimRequest(_Request):
    arbitrator: Address
    transaction_id: constr(min_length=1)
    caller: Address


class EscrowMediateRequest(_Request):
    arbitrator: Address
    transaction_id: constr(min_length=1)


ScenarioAction = Literal[
    "purchase",
    "claim",
    "allow",
    "mint",
    "stop",
    "resume",
    "finalize",
    "escrow_create",
    "escrow_fund",
    "escrow_release",
    "escrow_claim",
    "escrow_mediate",
]

# action -> request model validating its params
STEP_REQUESTS: dict[str, type[BaseModel]] = {
    "purchase": PurchaseRequest,
    "claim": ClaimRequest,
    "allow": AllowRequest,
    "mint": MintRequest,
    "stop": AdminRequest,
    "resume": AdminRequest,
    "finalize": AdminRequest,
    "escrow_create": EscrowCreateRequest,
    "escrow_fund": EscrowFundRequest,
    "escrow_release": EscrowReleaseRequest,
    "escrow_claim": EscrowClaimRequest,
    "escrow_mediate": EscrowMediateRequest,
}


class ScenarioStep(_Request):
    action: ScenarioAction
    # Seconds after the scenario start; defaults to the previous step's time
    at: conint(ge=0) | None = None
    params: dict[str, Any] = Field(default_factory=dict)

    def request(self) -> BaseModel:
        """Params validated against the action's request model."""
        return STEP_REQUESTS[self.action].model_validate(self.params)


class Scenario(_Request):
    name: str = "scenario"
    start_time: conint(ge=0) = 0
    operators: list[Address] = Field(default_factory=list)
    allow_list: list[Address] = Field(default_factory=list)
    steps: list[ScenarioStep] = Field(min_length=1)
