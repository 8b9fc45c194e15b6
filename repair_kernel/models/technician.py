"""
Module: repair_kernel.models.technician
Responsibility: Technician directory rows, read through SqlTechnicianDirectory.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from repair_kernel.db.base import Base
from repair_kernel.domain.dtos import Technician


class TechnicianModel(Base):
    __tablename__ = "repair_technicians"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    markup_percent: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    hourly_rate: Mapped[Decimal | None] = mapped_column(nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def to_dto(self) -> Technician:
        return Technician(
            id=self.id,
            name=self.name,
            markup_percent=self.markup_percent,
            is_active=self.is_active,
            email=self.email,
            hourly_rate=self.hourly_rate,
        )

    @classmethod
    def from_dto(cls, technician: Technician) -> TechnicianModel:
        return cls(
            id=technician.id,
            name=technician.name,
            email=technician.email,
            markup_percent=technician.markup_percent,
            hourly_rate=technician.hourly_rate,
            is_active=technician.is_active,
        )
