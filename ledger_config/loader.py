"""
Configuration loader (``ledger_config.loader``).

Responsibility
--------------
Loads the YAML settings file, applies environment overrides and parses the
result into ``ledger_config.schema`` dataclasses.  Runtime callers use
``ledger_config.get_engine_settings()`` instead of this module.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

import yaml

from ledger_config.schema import (
    EngineSettings,
    JobPolicy,
    MoneyPolicy,
    PeriodPolicy,
    ToleranceDefaults,
)
from ledger_kernel.exceptions import ConfigurationError
from ledger_kernel.utils.hashing import hash_payload

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

ENV_TOLERANCE_PCT = "THREE_WAY_TOLERANCE_PCT"
ENV_TOLERANCE_ABS = "THREE_WAY_TOLERANCE_ABS"
ENV_MIN_JUSTIFICATION = "LEDGER_MIN_JUSTIFICATION_LENGTH"
ENV_CONFIG_PATH = "LEDGER_CONFIG_PATH"


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def _decimal(setting: str, value: Any) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        raise ConfigurationError(setting, f"not a number: {value!r}") from exc
    if not result.is_finite() or result < 0:
        raise ConfigurationError(setting, f"must be a non-negative number: {value!r}")
    return result


def _int(setting: str, value: Any) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(setting, f"not an integer: {value!r}") from exc
    if result < 0:
        raise ConfigurationError(setting, f"must be non-negative: {value!r}")
    return result


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name)
    if not isinstance(section, dict):
        raise ConfigurationError(name, "section is missing")
    return section


def apply_environment_overrides(
    data: dict[str, Any], environ: Mapping[str, str]
) -> dict[str, Any]:
    """Return a copy of the raw settings with environment values applied."""
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in data.items()}
    matching = merged.setdefault("matching", {})
    if environ.get(ENV_TOLERANCE_PCT):
        matching["tolerance_pct"] = environ[ENV_TOLERANCE_PCT]
    if environ.get(ENV_TOLERANCE_ABS):
        matching["tolerance_abs"] = environ[ENV_TOLERANCE_ABS]
    if environ.get(ENV_MIN_JUSTIFICATION):
        merged.setdefault("periods", {})["min_justification_length"] = environ[
            ENV_MIN_JUSTIFICATION
        ]
    return merged


def parse_settings(data: dict[str, Any], source: str = "defaults") -> EngineSettings:
    """Parse a raw settings dict into a frozen EngineSettings."""
    matching = _section(data, "matching")
    periods = _section(data, "periods")
    money = _section(data, "money")
    jobs = data.get("jobs") or {}

    settings = EngineSettings(
        version=_int("version", data.get("version", 1)),
        tolerance=ToleranceDefaults(
            pct=_decimal("matching.tolerance_pct", matching.get("tolerance_pct")),
            abs=_decimal("matching.tolerance_abs", matching.get("tolerance_abs")),
        ),
        periods=PeriodPolicy(
            min_justification_length=_int(
                "periods.min_justification_length",
                periods.get("min_justification_length"),
            ),
        ),
        money=MoneyPolicy(
            decimal_places=_int("money.decimal_places", money.get("decimal_places", 2)),
            unit_cost_places=_int("money.unit_cost_places", money.get("unit_cost_places", 4)),
        ),
        jobs=JobPolicy(
            post_commit=tuple(jobs.get("post_commit") or ()),
            webhook_events=tuple(jobs.get("webhook_events") or ()),
        ),
        source=source,
    )
    return replace(settings, checksum=compute_checksum(settings))


def compute_checksum(settings: EngineSettings) -> str:
    """Deterministic SHA-256 of the resolved values (source excluded)."""
    return hash_payload(
        {
            "version": settings.version,
            "tolerance": {"pct": settings.tolerance.pct, "abs": settings.tolerance.abs},
            "min_justification_length": settings.periods.min_justification_length,
            "money": [settings.money.decimal_places, settings.money.unit_cost_places],
            "jobs": [list(settings.jobs.post_commit), list(settings.jobs.webhook_events)],
        }
    )
