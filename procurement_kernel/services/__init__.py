"""Write-side services for the procurement kernel."""

from procurement_kernel.services.audit_trail import AuditTrail
from procurement_kernel.services.base import BaseService
from procurement_kernel.services.procurement_service import ProcurementService
from procurement_kernel.services.request_builder import RequestBuilder
from procurement_kernel.services.scope_resolver import ScopeResolver
from procurement_kernel.services.stage_machine import StageMachine
from procurement_kernel.services.totals_service import TotalsService

__all__ = [
    "BaseService",
    "ScopeResolver",
    "TotalsService",
    "RequestBuilder",
    "StageMachine",
    "AuditTrail",
    "ProcurementService",
]
