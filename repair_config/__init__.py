"""
repair_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration sits above ``repair_kernel``.  The kernel MUST NEVER
    import from ``repair_config``; ``bridges`` translates the loaded
    configuration into kernel inputs (``WorkflowSettings``).

Sources, later wins:
    1. ``defaults.yaml`` shipped with this package
    2. the YAML file named by ``REPAIR_CONFIG_FILE`` (or ``config_file``)
    3. ``DATABASE_URL`` and ``REPAIR_LINK_ORIGIN`` environment variables

Failure modes:
    - ``FileNotFoundError`` -- an override file does not exist.
    - ``ConfigError`` -- a value fails validation.

Audit relevance:
    Every call emits a ``config_loaded`` log entry with the config id,
    version and checksum.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from repair_config.bridges import init_runtime, to_workflow_settings
from repair_config.loader import ConfigError, load_configuration
from repair_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    RepairQuoteConfiguration,
    WorkflowConfig,
)

_logger = logging.getLogger("repair_kernel.config")

DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"

__all__ = [
    "ConfigError",
    "DatabaseConfig",
    "LoggingConfig",
    "RepairQuoteConfiguration",
    "WorkflowConfig",
    "get_active_config",
    "init_runtime",
    "to_workflow_settings",
]


def get_active_config(
    config_file: Path | str | None = None,
    env: Mapping[str, str] | None = None,
) -> RepairQuoteConfiguration:
    """The ONLY public configuration entrypoint."""
    env = os.environ if env is None else env
    paths = [DEFAULTS_FILE]
    override = config_file or env.get("REPAIR_CONFIG_FILE")
    if override:
        paths.append(Path(override))

    config = load_configuration(paths, env)

    _logger.info(
        "config_loaded",
        extra={
            "config_id": config.config_id,
            "version": config.version,
            "checksum": config.checksum,
            "sources": [str(p) for p in paths],
        },
    )
    return config
