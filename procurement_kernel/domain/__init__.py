"""
Pure domain layer.

Value objects, the stage table and the permission matrix, with NO
dependencies on the ORM, the database or I/O (except SystemClock).
"""

from procurement_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from procurement_kernel.domain.dtos import (
    BudgetComparison,
    EarmarkedHeadroom,
    ForecastLine,
    FundingAllocation,
    ProcurementRequest,
    ProgramSettings,
    ReconciliationResult,
    RequestItem,
    RequestTotals,
    StageTransition,
    UserRoleRecord,
)
from procurement_kernel.domain.scope import (
    PERMISSION_MATRIX,
    Action,
    AdminLevel,
    Role,
    Scope,
    granted_actions,
    is_granted,
)
from procurement_kernel.domain.stages import (
    EDITABLE_STAGES,
    TERMINAL_STAGES,
    TRANSITIONS,
    RequestStage,
    action_for,
)

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ForecastLine",
    "UserRoleRecord",
    "RequestTotals",
    "RequestItem",
    "ProcurementRequest",
    "StageTransition",
    "ProgramSettings",
    "FundingAllocation",
    "EarmarkedHeadroom",
    "BudgetComparison",
    "ReconciliationResult",
    "AdminLevel",
    "Role",
    "Action",
    "Scope",
    "PERMISSION_MATRIX",
    "granted_actions",
    "is_granted",
    "RequestStage",
    "TRANSITIONS",
    "EDITABLE_STAGES",
    "TERMINAL_STAGES",
    "action_for",
]
