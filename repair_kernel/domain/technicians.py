"""
TechnicianDirectory -- injected read-only collaborator.

The workflow never reads a module-level technician list.  It asks a
directory passed to it at construction.
"""

from typing import Protocol, Sequence
from uuid import UUID

from repair_kernel.domain.dtos import Technician


class TechnicianDirectory(Protocol):
    """Read-only lookup of repair technicians."""

    def get_technician(self, technician_id: UUID) -> Technician | None:
        ...

    def list_active_technicians(self) -> Sequence[Technician]:
        ...


class StaticTechnicianDirectory:
    """In-memory directory for scripts and tests."""

    def __init__(self, technicians: Sequence[Technician] = ()):
        self._by_id = {t.id: t for t in technicians}

    def add(self, technician: Technician) -> None:
        self._by_id[technician.id] = technician

    def get_technician(self, technician_id: UUID) -> Technician | None:
        return self._by_id.get(technician_id)

    def list_active_technicians(self) -> Sequence[Technician]:
        return sorted(
            (t for t in self._by_id.values() if t.is_active),
            key=lambda t: t.name,
        )
