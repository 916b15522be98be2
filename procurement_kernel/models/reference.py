"""
Module: procurement_kernel.models.reference
Responsibility: ORM persistence for program reference data: programs, yearly
    program settings (margin and budget), funding sources and allocations.
Architecture position: Kernel > Models.  May import from db/ only.

Maintained outside the kernel.  RequestBuilder snapshots psm_percent from
ProgramSettings; BudgetComparator reads budget and allocations live.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from procurement_kernel.db.base import Base, UUIDString
from procurement_kernel.db.types import Money, Percent

if TYPE_CHECKING:
    from procurement_kernel.domain.dtos import FundingAllocation, ProgramSettings


class ProgramModel(Base):
    __tablename__ = "programs"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)

    def __repr__(self) -> str:
        return f"<Program {self.code or self.name}>"


class ProgramSettingsModel(Base):
    """Per program and year: service margin percentage and total budget."""

    __tablename__ = "program_settings"

    __table_args__ = (
        UniqueConstraint("program_id", "year", name="uq_program_settings_program_year"),
        CheckConstraint(
            "psm_percent >= 0 AND psm_percent <= 100",
            name="ck_program_settings_psm_range",
        ),
    )

    program_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("programs.id"), nullable=False,
    )
    year: Mapped[int] = mapped_column(nullable=False)
    psm_percent: Mapped[Percent] = mapped_column(nullable=False, default=Decimal("0"))
    budget_total: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    def to_dto(self) -> ProgramSettings:
        from procurement_kernel.domain.dtos import ProgramSettings

        return ProgramSettings(
            program_id=self.program_id,
            year=self.year,
            psm_percent=self.psm_percent,
            budget_total=self.budget_total,
        )


class FundingSourceModel(Base):
    __tablename__ = "funding_sources"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)

    def __repr__(self) -> str:
        return f"<FundingSource {self.code or self.name}>"


class FundingAllocationModel(Base):
    """Amount a funding source earmarks for a program in a year."""

    __tablename__ = "program_funding_allocations"

    __table_args__ = (
        UniqueConstraint(
            "program_id", "year", "funding_source_id",
            name="uq_funding_allocation_program_year_source",
        ),
    )

    program_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("programs.id"), nullable=False, index=True,
    )
    year: Mapped[int] = mapped_column(nullable=False)
    funding_source_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("funding_sources.id"), nullable=False,
    )
    allocated_amount: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    def to_dto(self) -> FundingAllocation:
        from procurement_kernel.domain.dtos import FundingAllocation

        return FundingAllocation(
            program_id=self.program_id,
            year=self.year,
            funding_source_id=self.funding_source_id,
            allocated_amount=self.allocated_amount,
        )
