"""
RepairQuoteConfiguration schema.

YAML documents are parsed into these frozen types by the loader.  Nothing
outside ``repair_config`` constructs them.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class StatusLabelDef:
    label: str
    color: str


@dataclass(frozen=True)
class WorkflowConfig:
    link_origin: str
    tech_link_path: str = "/quote/tech"
    client_link_path: str = "/quote/review"
    tech_token_ttl_hours: int = 336
    client_token_ttl_hours: int = 336
    client_photo_limit: int = 5
    status_labels: tuple[tuple[str, StatusLabelDef], ...] = ()


@dataclass(frozen=True)
class DatabaseConfig:
    url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class RepairQuoteConfiguration:
    config_id: str
    version: int
    workflow: WorkflowConfig
    database: DatabaseConfig
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
