"""Translate loaded configuration into kernel-side value objects and runtime state."""

from datetime import timedelta

from sqlalchemy.engine import Engine

from repair_config.schema import RepairQuoteConfiguration
from repair_kernel.db.engine import init_engine_from_url
from repair_kernel.domain.dtos import StatusInfo
from repair_kernel.domain.settings import WorkflowSettings
from repair_kernel.logging_config import configure_logging


def to_workflow_settings(config: RepairQuoteConfiguration) -> WorkflowSettings:
    wf = config.workflow
    return WorkflowSettings(
        link_origin=wf.link_origin,
        tech_token_ttl=timedelta(hours=wf.tech_token_ttl_hours),
        client_token_ttl=timedelta(hours=wf.client_token_ttl_hours),
        tech_link_path=wf.tech_link_path,
        client_link_path=wf.client_link_path,
        client_photo_limit=wf.client_photo_limit,
        status_labels={
            status: StatusInfo(label.label, label.color)
            for status, label in wf.status_labels
        },
    )


def init_runtime(config: RepairQuoteConfiguration) -> tuple[Engine, WorkflowSettings]:
    """
    Configure logging and the database engine from ``config``.

    Logging is configured first so engine start-up is logged at the
    configured level.  Returns the engine and the workflow settings to pass
    to RepairQuoteWorkflow.
    """
    configure_logging(level=config.logging.level)
    db = config.database
    engine = init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )
    return engine, to_workflow_settings(config)
