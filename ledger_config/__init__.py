"""
ledger_config -- single public entrypoint for engine settings.

Responsibility:
    ``get_engine_settings()`` is the only way services obtain tolerance
    defaults, the override justification policy, rounding places and the
    post-commit job list.  The kernel never imports this package; services
    pass the resolved values into kernel constructors.

Resolution order:
    YAML file (``LEDGER_CONFIG_PATH`` or the bundled ``defaults.yaml``)
    -> environment overrides (``THREE_WAY_TOLERANCE_PCT``,
    ``THREE_WAY_TOLERANCE_ABS``, ``LEDGER_MIN_JUSTIFICATION_LENGTH``).

Audit relevance:
    Every load emits a ``ledger_config_loaded`` log entry with the
    settings checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from ledger_config.loader import (
    DEFAULTS_PATH,
    ENV_CONFIG_PATH,
    apply_environment_overrides,
    load_yaml_file,
    parse_settings,
)
from ledger_config.schema import EngineSettings

_logger = logging.getLogger("ledger_kernel.config")

__all__ = ["EngineSettings", "get_engine_settings"]


def get_engine_settings(
    config_path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """
    Load and resolve engine settings.

    Args:
        config_path: Explicit YAML file; defaults to ``LEDGER_CONFIG_PATH``
            or the bundled defaults.
        environ: Environment mapping (defaults to ``os.environ``).

    Raises:
        FileNotFoundError: The YAML file does not exist.
        ConfigurationError: A value is missing or invalid.
    """
    env = os.environ if environ is None else environ
    path = Path(config_path or env.get(ENV_CONFIG_PATH) or DEFAULTS_PATH)
    raw = apply_environment_overrides(load_yaml_file(path), env)
    source = "defaults" if path == DEFAULTS_PATH else str(path)
    settings = parse_settings(raw, source=source)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "source": settings.source,
            "checksum": settings.checksum,
            "tolerance_pct": str(settings.tolerance.pct),
            "tolerance_abs": str(settings.tolerance.abs),
        },
    )
    return settings
