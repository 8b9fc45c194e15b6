"""
WorkflowSettings -- kernel-side runtime knobs for RepairQuoteWorkflow.

The kernel never reads configuration files.  ``repair_config.bridges``
translates the loaded configuration into this value object.
"""

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping

from repair_kernel.domain.dtos import StatusInfo

DEFAULT_TOKEN_TTL = timedelta(days=14)


@dataclass(frozen=True)
class WorkflowSettings:
    link_origin: str = "http://localhost:3000"
    tech_token_ttl: timedelta = DEFAULT_TOKEN_TTL
    client_token_ttl: timedelta = DEFAULT_TOKEN_TTL
    tech_link_path: str = "/quote/tech"
    client_link_path: str = "/quote/review"
    client_photo_limit: int = 5
    status_labels: Mapping[str, StatusInfo] = field(default_factory=dict)

    def tech_link(self, token: str) -> str:
        return f"{self.link_origin.rstrip('/')}{self.tech_link_path}?token={token}"

    def client_link(self, token: str) -> str:
        return f"{self.link_origin.rstrip('/')}{self.client_link_path}?token={token}"
