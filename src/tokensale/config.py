"""
Token sale configuration.

Settings are layered, later layers winning key by key:

1. packaged conf/default.yaml
2. <environment>.yaml from the packaged conf directory, or an explicit file
3. TOKENSALE_* environment variables

Curve constants are part of the issuance schedule; overriding them changes
every quote the sale produces.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from tokensale.exceptions import ConfigurationError
from tokensale.pricing import CurveParameters

logger = logging.getLogger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent / "conf"
ENV_PREFIX = "TOKENSALE_"

# TOKENSALE_<NAME> -> (section, key, parser)
ENV_OVERRIDES: Dict[str, tuple[str, str, type]] = {
    "ENVIRONMENT": ("", "environment", str),
    "LOG_LEVEL": ("logging", "level", str),
    "LOG_FILE": ("logging", "file", str),
    "HARD_CAP": ("sale", "hard_cap", int),
    "MINIMUM_CONTRIBUTION": ("sale", "minimum_contribution", int),
    "CURVE_THRESHOLD": ("curve", "threshold", int),
    "CURVE_LOG_OFFSET": ("curve", "log_offset", int),
    "LN_TERMS": ("curve", "ln_terms", int),
}

VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class DistributionSettings:
    """Resolved configuration of one sale deployment."""

    environment: str = "production"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    supply: int = 0
    hard_cap: int = 0
    minimum_contribution: int = 10
    duration: int = 0
    curve: Dict[str, int] = field(default_factory=dict)

    def curve_parameters(self) -> CurveParameters:
        try:
            return CurveParameters(**self.curve)
        except TypeError as exc:
            raise ConfigurationError(
                "Unknown curve parameter in configuration",
                details={"curve": dict(self.curve)},
            ) from exc

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Config file {path} is not valid YAML", details={"path": str(path)}) from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping.", details={"path": str(path)})
    return data


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env(data: Dict[str, Any], env: Mapping[str, str]) -> Dict[str, Any]:
    for name, (section, key, parser) in ENV_OVERRIDES.items():
        raw = env.get(ENV_PREFIX + name, "").strip()
        if not raw:
            continue
        try:
            value = parser(raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"{ENV_PREFIX}{name} must be {parser.__name__}",
                details={"env_var": ENV_PREFIX + name, "value": raw},
            ) from exc
        target = data.setdefault(section, {}) if section else data
        target[key] = value
        logger.debug(
            "Config override from environment",
            extra={"event": "config.env_override", "env_var": ENV_PREFIX + name},
        )
    return data


def _require_positive_int(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"{name} must be a positive integer", details={"setting": name, "value": value})
    return value


def load_settings(
    environment: Optional[str] = None,
    config_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> DistributionSettings:
    """
    Resolve settings for `environment`.

    Args:
        environment: Environment name; falls back to TOKENSALE_ENVIRONMENT,
            then to the default file's value
        config_file: Explicit YAML file replacing the <environment>.yaml layer
        env: Environment mapping, os.environ by default

    Raises:
        ConfigurationError: If a file or variable holds an invalid value
    """
    env = os.environ if env is None else env
    data = _read_yaml(CONFIG_DIR / "default.yaml")

    environment = environment or env.get(ENV_PREFIX + "ENVIRONMENT", "").strip() or data.get("environment")
    if config_file is not None:
        if not Path(config_file).exists():
            raise ConfigurationError(f"Config file {config_file} not found", details={"path": str(config_file)})
        data = _merge(data, _read_yaml(Path(config_file)))
    elif environment:
        data = _merge(data, _read_yaml(CONFIG_DIR / f"{environment}.yaml"))

    data = _apply_env(data, env)
    if environment:
        data["environment"] = environment

    log_section = data.get("logging") or {}
    sale_section = data.get("sale") or {}
    log_level = str(log_section.get("level", "INFO")).upper()
    if log_level not in VALID_LOG_LEVELS:
        raise ConfigurationError(f"Unknown log level {log_level}", details={"level": log_level})

    settings = DistributionSettings(
        environment=str(data.get("environment") or "production"),
        log_level=log_level,
        log_file=log_section.get("file") or None,
        supply=_require_positive_int("sale.supply", sale_section.get("supply")),
        hard_cap=_require_positive_int("sale.hard_cap", sale_section.get("hard_cap")),
        minimum_contribution=_require_positive_int(
            "sale.minimum_contribution", sale_section.get("minimum_contribution")
        ),
        duration=_require_positive_int("sale.duration", sale_section.get("duration")),
        curve=dict(data.get("curve") or {}),
    )
    # Validate curve values eagerly
    settings.curve_parameters()

    logger.info(
        "Configuration loaded",
        extra={
            "event": "config.loaded",
            "environment": settings.environment,
            "config_file": str(config_file) if config_file else None,
        },
    )
    return settings
