"""
Module: procurement_kernel.models.org_unit
Responsibility: ORM persistence for the administrative hierarchy
    (Region <- Zone <- Woreda <- Facility) and user role assignments.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Each org unit has exactly one parent at the next level up.
    - A user has a single role record.  The populated scope column matches
      the admin level: facility_id for facility, woreda_id for woreda,
      zone_id for zone, region_id for regional, none for national.

The hierarchy is static reference data maintained outside the kernel; the
kernel only reads it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from procurement_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from procurement_kernel.domain.dtos import UserRoleRecord


class RegionModel(Base):
    __tablename__ = "regions"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    code: Mapped[str | None] = mapped_column(String(50), unique=True, nullable=True)

    zones: Mapped[list["ZoneModel"]] = relationship(back_populates="region")

    def __repr__(self) -> str:
        return f"<Region {self.name}>"


class ZoneModel(Base):
    __tablename__ = "zones"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    region_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("regions.id"), nullable=False, index=True,
    )

    region: Mapped[RegionModel] = relationship(back_populates="zones")
    woredas: Mapped[list["WoredaModel"]] = relationship(back_populates="zone")

    def __repr__(self) -> str:
        return f"<Zone {self.name}>"


class WoredaModel(Base):
    __tablename__ = "woredas"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    zone_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("zones.id"), nullable=False, index=True,
    )

    zone: Mapped[ZoneModel] = relationship(back_populates="woredas")
    facilities: Mapped[list["FacilityModel"]] = relationship(back_populates="woreda")

    def __repr__(self) -> str:
        return f"<Woreda {self.name}>"


class FacilityModel(Base):
    __tablename__ = "facilities"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    facility_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    woreda_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("woredas.id"), nullable=False, index=True,
    )

    woreda: Mapped[WoredaModel] = relationship(back_populates="facilities")

    def __repr__(self) -> str:
        return f"<Facility {self.name}>"


class UserRoleModel(Base):
    """A user's role and the root of the hierarchy subtree it covers."""

    __tablename__ = "user_roles"

    __table_args__ = (
        CheckConstraint(
            "admin_level IN ('facility', 'woreda', 'zone', 'regional', 'national')",
            name="ck_user_roles_valid_level",
        ),
        CheckConstraint(
            "(admin_level = 'facility' AND facility_id IS NOT NULL"
            " AND woreda_id IS NULL AND zone_id IS NULL AND region_id IS NULL)"
            " OR (admin_level = 'woreda' AND woreda_id IS NOT NULL"
            " AND facility_id IS NULL AND zone_id IS NULL AND region_id IS NULL)"
            " OR (admin_level = 'zone' AND zone_id IS NOT NULL"
            " AND facility_id IS NULL AND woreda_id IS NULL AND region_id IS NULL)"
            " OR (admin_level = 'regional' AND region_id IS NOT NULL"
            " AND facility_id IS NULL AND woreda_id IS NULL AND zone_id IS NULL)"
            " OR (admin_level = 'national' AND facility_id IS NULL"
            " AND woreda_id IS NULL AND zone_id IS NULL AND region_id IS NULL)",
            name="ck_user_roles_single_scope",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String(50), nullable=False)
    admin_level: Mapped[str] = mapped_column(String(20), nullable=False)
    facility_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("facilities.id"), nullable=True,
    )
    woreda_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("woredas.id"), nullable=True,
    )
    zone_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("zones.id"), nullable=True,
    )
    region_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("regions.id"), nullable=True,
    )

    def __repr__(self) -> str:
        return f"<UserRole {self.user_id} {self.role}@{self.admin_level}>"

    def to_dto(self) -> UserRoleRecord:
        from procurement_kernel.domain.dtos import UserRoleRecord

        return UserRoleRecord(
            user_id=self.user_id,
            role=self.role,
            admin_level=self.admin_level,
            facility_id=self.facility_id,
            woreda_id=self.woreda_id,
            zone_id=self.zone_id,
            region_id=self.region_id,
        )
