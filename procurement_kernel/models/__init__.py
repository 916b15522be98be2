"""ORM models for the procurement kernel."""

from procurement_kernel.models.org_unit import (
    FacilityModel,
    RegionModel,
    UserRoleModel,
    WoredaModel,
    ZoneModel,
)
from procurement_kernel.models.reference import (
    FundingAllocationModel,
    FundingSourceModel,
    ProgramModel,
    ProgramSettingsModel,
)
from procurement_kernel.models.request import ProcurementRequestModel, RequestItemModel
from procurement_kernel.models.transition import StageTransitionModel


def import_all_models() -> None:
    """No-op hook; importing this package registers every table on Base.metadata."""


__all__ = [
    "RegionModel",
    "ZoneModel",
    "WoredaModel",
    "FacilityModel",
    "UserRoleModel",
    "ProgramModel",
    "ProgramSettingsModel",
    "FundingSourceModel",
    "FundingAllocationModel",
    "ProcurementRequestModel",
    "RequestItemModel",
    "StageTransitionModel",
    "import_all_models",
]
