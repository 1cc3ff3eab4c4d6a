"""
In-memory sale deployment and scenario replay.

Deployment wires one token, role registry, allow list, vesting ledger, sale
controller and escrow ledger around a shared event log and clock, in the same
order a live deployment would:

    token -> sale supply minted -> vesting (issuer = sale) -> sale activated

run_scenario() replays a validated Scenario step by step against a fresh
Deployment. A failing step is recorded with its error and the replay goes on,
which is how rejected purchases and escrow guard failures are exercised
end to end.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import BaseModel, ValidationError

from tokensale.access import AllowList, Role, RoleRegistry
from tokensale.config import DistributionSettings
from tokensale.escrow import EscrowLedger
from tokensale.events import EventLog
from tokensale.exceptions import ConfigurationError, TokenSaleError, get_error_context
from tokensale.pricing import BondingCurve
from tokensale.sale import SaleController
from tokensale.schemas import Scenario
from tokensale.token import SaleToken
from tokensale.vesting import VestingLedger

logger = logging.getLogger(__name__)

ADMIN_ADDRESS = "0x" + "ad" * 20
SALE_ADDRESS = "0x" + "5a" * 20
VESTING_ADDRESS = "0x" + "7e" * 20
ESCROW_ADDRESS = "0x" + "e5" * 20


class ManualClock:
    """Time provider advanced explicitly by its owner."""

    def __init__(self, now: int = 0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def set(self, now: int) -> None:
        self.now = now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@dataclass
class Deployment:
    token: SaleToken
    roles: RoleRegistry
    allow_list: AllowList
    vesting: VestingLedger
    sale: SaleController
    escrow: EscrowLedger
    event_log: EventLog
    clock: ManualClock
    admin: str = ADMIN_ADDRESS

    @classmethod
    def create(
        cls,
        settings: DistributionSettings,
        start_time: int = 0,
        operators: Iterable[str] = (),
        allow: Iterable[str] = (),
        admin: str = ADMIN_ADDRESS,
    ) -> "Deployment":
        clock = ManualClock(start_time)
        event_log = EventLog()
        roles = RoleRegistry(admin_address=admin)
        roles.grant_role(admin, Role.OPERATOR, admin)
        for operator in operators:
            roles.grant_role(admin, Role.OPERATOR, operator)
        allow_list = AllowList(roles, allow)

        token = SaleToken(name="Sale Token", symbol="SALE", owner=admin)
        token.mint(admin, SALE_ADDRESS, settings.supply)

        vesting = VestingLedger(
            token=token,
            address=VESTING_ADDRESS,
            issuer=SALE_ADDRESS,
            event_log=event_log,
            time_provider=clock,
        )
        sale = SaleController(
            token=token,
            vesting=vesting,
            allow_list=allow_list,
            roles=roles,
            address=SALE_ADDRESS,
            start_time=start_time,
            end_time=start_time + settings.duration,
            hard_cap=settings.hard_cap,
            curve=BondingCurve(settings.curve_parameters()),
            minimum_contribution=settings.minimum_contribution,
            event_log=event_log,
            time_provider=clock,
        )
        escrow = EscrowLedger(token=token, address=ESCROW_ADDRESS, event_log=event_log, time_provider=clock)
        sale.activate(admin)

        logger.info(
            "Deployment created",
            extra={
                "event": "deployment.created",
                "environment": settings.environment,
                "start_time": start_time,
                "end_time": sale.end_time,
            },
        )
        return cls(
            token=token,
            roles=roles,
            allow_list=allow_list,
            vesting=vesting,
            sale=sale,
            escrow=escrow,
            event_log=event_log,
            clock=clock,
            admin=admin.lower(),
        )


@dataclass
class StepResult:
    index: int
    action: str
    timestamp: int
    ok: bool
    result: Any = None
    error_type: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "index": self.index,
            "action": self.action,
            "timestamp": self.timestamp,
            "ok": self.ok,
            "result": self.result,
            "error_type": self.error_type,
            "error": self.error,
        }


@dataclass
class ScenarioReport:
    name: str
    steps: list[StepResult] = field(default_factory=list)
    sale: dict[str, Any] = field(default_factory=dict)
    circulating_supply: int = 0
    events: list[dict[str, Any]] = field(default_factory=list)

    @property
    def failures(self) -> list[StepResult]:
        return [step for step in self.steps if not step.ok]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "steps": [step.to_dict() for step in self.steps],
            "sale": self.sale,
            "circulating_supply": self.circulating_supply,
            "events": self.events,
        }


def load_scenario(path: Path) -> Scenario:
    """Parse and validate a YAML scenario file."""
    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read scenario {path}: {exc}", details={"path": str(path)}) from exc
    try:
        return Scenario.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid scenario {path}",
            details={"path": str(path), "errors": exc.errors(include_url=False)},
        ) from exc


def _execute(deployment: Deployment, action: str, request: BaseModel) -> Any:
    sale = deployment.sale
    escrow = deployment.escrow
    params = request.model_dump()

    if action == "purchase":
        return sale.purchase(
            params["operator"],
            params["contribution"],
            params["beneficiary"],
            params["discount_base"],
            params["vesting_duration"],
        )
    if action == "claim":
        return deployment.vesting.claim(params["beneficiary"])
    if action == "allow":
        deployment.allow_list.allow(params["caller"], params["address"])
        return None
    if action == "mint":
        return deployment.token.mint(deployment.admin, params["to"], params["amount"])
    if action == "stop":
        sale.stop(params["caller"])
        return None
    if action == "resume":
        sale.resume(params["caller"])
        return None
    if action == "finalize":
        return sale.finalize(params["caller"])
    if action == "escrow_create":
        return escrow.create(**params).to_dict()
    if action == "escrow_fund":
        escrow.fund(**params)
        return None
    if action == "escrow_release":
        return escrow.release(**params)
    if action == "escrow_claim":
        return escrow.claim(**params)
    if action == "escrow_mediate":
        escrow.mediate(**params)
        return None
    raise ValueError(f"Unsupported scenario action: {action}")


def run_scenario(scenario: Scenario, settings: DistributionSettings) -> ScenarioReport:
    """Replay `scenario` against a fresh deployment built from `settings`."""
    deployment = Deployment.create(
        settings,
        start_time=scenario.start_time,
        operators=scenario.operators,
        allow=scenario.allow_list,
    )
    report = ScenarioReport(name=scenario.name)

    for index, step in enumerate(scenario.steps):
        if step.at is not None:
            deployment.clock.set(scenario.start_time + step.at)
        now = deployment.clock()
        try:
            request = step.request()
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid params for step {index} ({step.action})",
                details={"errors": exc.errors(include_url=False)},
            ) from exc

        try:
            result = _execute(deployment, step.action, request)
        except TokenSaleError as exc:
            context = get_error_context(exc)
            report.steps.append(
                StepResult(
                    index=index,
                    action=step.action,
                    timestamp=now,
                    ok=False,
                    error_type=context["error_type"],
                    error=context["error_message"],
                )
            )
            continue
        report.steps.append(StepResult(index=index, action=step.action, timestamp=now, ok=True, result=result))

    report.sale = deployment.sale.status()
    report.circulating_supply = deployment.vesting.circulating_supply()
    report.events = [event.to_dict() for event in deployment.event_log.since(0)]
    logger.info(
        "Scenario replayed: %s",
        scenario.name,
        extra={
            "event": "scenario.completed",
            "steps": len(report.steps),
            "failures": len(report.failures),
        },
    )
    return report
