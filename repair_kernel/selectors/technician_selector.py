"""
SqlTechnicianDirectory -- TechnicianDirectory backed by the technicians table.
"""

from typing import Sequence
from uuid import UUID

from sqlalchemy import select

from repair_kernel.domain.dtos import Technician
from repair_kernel.models.technician import TechnicianModel
from repair_kernel.selectors.base import BaseSelector


class SqlTechnicianDirectory(BaseSelector):

    def get_technician(self, technician_id: UUID) -> Technician | None:
        row = self.session.get(TechnicianModel, technician_id)
        return row.to_dto() if row is not None else None

    def list_active_technicians(self) -> Sequence[Technician]:
        rows = self.session.execute(
            select(TechnicianModel)
            .where(TechnicianModel.is_active.is_(True))
            .order_by(TechnicianModel.name)
        ).scalars().all()
        return [row.to_dto() for row in rows]
