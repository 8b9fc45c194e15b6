"""
YAML loader for repair quote configuration.

Parses YAML documents into the frozen schema types.  Internal to
``repair_config``; callers use ``get_active_config()``.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any, Mapping

import yaml

from repair_config.schema import (
    DatabaseConfig,
    LoggingConfig,
    RepairQuoteConfiguration,
    StatusLabelDef,
    WorkflowConfig,
)

_VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Configuration is missing or invalid."""

    code: str = "CONFIG_INVALID"

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"Invalid configuration '{key}': {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursive merge; values in ``override`` win."""
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_dicts(merged[key], value)
        else:
            merged[key] = value
    return merged


def _positive_int(section: Mapping[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(key, f"must be a positive integer, got {value!r}")
    return value


def parse_workflow(data: Mapping[str, Any]) -> WorkflowConfig:
    origin = data.get("link_origin")
    if not isinstance(origin, str) or not origin.startswith(("http://", "https://")):
        raise ConfigError("workflow.link_origin", "must be an http(s) URL")

    labels = data.get("status_labels") or {}
    if not isinstance(labels, Mapping):
        raise ConfigError("workflow.status_labels", "must be a mapping")
    parsed_labels = []
    for status, entry in sorted(labels.items()):
        if not isinstance(entry, Mapping) or "label" not in entry or "color" not in entry:
            raise ConfigError(f"workflow.status_labels.{status}", "needs label and color")
        parsed_labels.append((str(status), StatusLabelDef(str(entry["label"]), str(entry["color"]))))

    return WorkflowConfig(
        link_origin=origin.rstrip("/"),
        tech_link_path=data.get("tech_link_path", "/quote/tech"),
        client_link_path=data.get("client_link_path", "/quote/review"),
        tech_token_ttl_hours=_positive_int(data, "tech_token_ttl_hours", 336),
        client_token_ttl_hours=_positive_int(data, "client_token_ttl_hours", 336),
        client_photo_limit=_positive_int(data, "client_photo_limit", 5),
        status_labels=tuple(parsed_labels),
    )


def parse_database(data: Mapping[str, Any]) -> DatabaseConfig:
    url = data.get("url")
    if not isinstance(url, str) or "://" not in url:
        raise ConfigError("database.url", "must be a SQLAlchemy database URL")
    return DatabaseConfig(
        url=url,
        echo=bool(data.get("echo", False)),
        pool_size=_positive_int(data, "pool_size", 20),
        max_overflow=int(data.get("max_overflow", 10)),
    )


def parse_logging(data: Mapping[str, Any]) -> LoggingConfig:
    level = str(data.get("level", "INFO")).upper()
    if level not in _VALID_LEVELS:
        raise ConfigError("logging.level", f"must be one of {', '.join(_VALID_LEVELS)}")
    return LoggingConfig(level=level)


def compute_checksum(data: Mapping[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_configuration(data: Mapping[str, Any]) -> RepairQuoteConfiguration:
    """Validate a merged configuration document."""
    for section in ("workflow", "database"):
        if not isinstance(data.get(section), Mapping):
            raise ConfigError(section, "section is required")

    return RepairQuoteConfiguration(
        config_id=str(data.get("config_id", "repair-quote")),
        version=int(data.get("version", 1)),
        workflow=parse_workflow(data["workflow"]),
        database=parse_database(data["database"]),
        logging=parse_logging(data.get("logging") or {}),
        checksum=compute_checksum(data),
    )


def load_configuration(
    paths: list[Path],
    env: Mapping[str, str] | None = None,
) -> RepairQuoteConfiguration:
    """Merge YAML files in order, apply environment overrides, parse."""
    data: dict[str, Any] = {}
    for path in paths:
        data = merge_dicts(data, load_yaml_file(path))

    env = env or {}
    if env.get("DATABASE_URL"):
        data = merge_dicts(data, {"database": {"url": env["DATABASE_URL"]}})
    if env.get("REPAIR_LINK_ORIGIN"):
        data = merge_dicts(data, {"workflow": {"link_origin": env["REPAIR_LINK_ORIGIN"]}})

    return parse_configuration(data)
