"""
procurement_kernel.services.scope_resolver -- Hierarchical facility scope and authorization.

Responsibility:
    Resolve a user's role record to the set of facilities it covers by
    descending the administrative hierarchy, and decide whether the user may
    perform an action on a request raised by a given facility.

Architecture position:
    Kernel > Services.  Reads org-unit and user-role tables; never writes.
    Consulted by RequestBuilder, StageMachine and the ProcurementService
    facade before any permission-gated operation.

Invariants enforced:
    - A role authorizes exactly the facilities reachable from its single
      populated scope id; national authorizes every facility.
    - Fail closed: no role record, an unknown level, or a missing scope id
      resolves to the empty scope (logged at WARNING).
    - can_act requires BOTH scope membership and a grant in the fixed
      permission matrix.
    - Facility-level roles may submit or revise only requests they own.
    - Traversals are cached on this instance only, keyed by
      (level, root id); nothing is cached at module level.

Failure modes:
    - PermissionDeniedError from ``authorize`` with the specific reason.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from procurement_kernel.domain.dtos import UserRoleRecord
from procurement_kernel.domain.scope import (
    OWNER_ACTIONS,
    SCOPE_ID_FIELD,
    Action,
    AdminLevel,
    Scope,
    granted_actions,
)
from procurement_kernel.exceptions import PermissionDeniedError
from procurement_kernel.logging_config import get_logger
from procurement_kernel.models.org_unit import (
    FacilityModel,
    UserRoleModel,
    WoredaModel,
    ZoneModel,
)

logger = get_logger("services.scope_resolver")

_MISSING = object()


def _facility_of(target: Any) -> UUID | None:
    """A request DTO/model, or a bare facility id."""
    if target is None or isinstance(target, UUID):
        return target
    return getattr(target, "facility_id", None)


class ScopeResolver:
    """
    Per-session scope resolver.

    Create one per session (or unit of work).  Call ``invalidate`` after a
    role reassignment so the next lookup re-reads the role and hierarchy.
    """

    def __init__(self, session: Session, cache_enabled: bool = True):
        self.session = session
        self.cache_enabled = cache_enabled
        self._scope_cache: dict[tuple[AdminLevel, UUID | None], Scope] = {}
        self._role_cache: dict[UUID, UserRoleRecord | None] = {}

    # ------------------------------------------------------------------
    # Role records
    # ------------------------------------------------------------------

    def role_for(self, user_id: UUID) -> UserRoleRecord | None:
        """The user's role record, or None if they have none."""
        if self.cache_enabled:
            cached = self._role_cache.get(user_id, _MISSING)
            if cached is not _MISSING:
                return cached

        model = self.session.execute(
            select(UserRoleModel).where(UserRoleModel.user_id == user_id)
        ).scalar_one_or_none()
        record = model.to_dto() if model is not None else None

        if self.cache_enabled:
            self._role_cache[user_id] = record
        return record

    def invalidate(self, user_id: UUID | None = None) -> None:
        """
        Drop cached lookups.

        With a user id, drops that user's role record and the scope it
        resolved to; without one, clears everything.
        """
        if user_id is None:
            self._scope_cache.clear()
            self._role_cache.clear()
            return

        record = self._role_cache.pop(user_id, None)
        if record is not None:
            level = AdminLevel.parse(record.admin_level)
            if level is not None:
                self._scope_cache.pop((level, self._root_id(record, level)), None)

    # ------------------------------------------------------------------
    # Scope resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _root_id(record: UserRoleRecord, level: AdminLevel) -> UUID | None:
        field = SCOPE_ID_FIELD.get(level)
        return getattr(record, field) if field else None

    def resolve(self, user_role: UserRoleRecord | None) -> Scope:
        """The facilities user_role covers.  Never raises; fails closed."""
        if user_role is None:
            logger.warning("scope_empty", extra={"reason": "no_role_record"})
            return Scope.empty()

        level = AdminLevel.parse(user_role.admin_level)
        if level is None:
            logger.warning(
                "scope_empty",
                extra={
                    "reason": "unknown_admin_level",
                    "user_id": str(user_role.user_id),
                    "admin_level": user_role.admin_level,
                },
            )
            return Scope.empty()

        if level is AdminLevel.NATIONAL:
            return Scope.national()

        root_id = self._root_id(user_role, level)
        if root_id is None:
            logger.warning(
                "scope_empty",
                extra={
                    "reason": "missing_scope_id",
                    "user_id": str(user_role.user_id),
                    "admin_level": level.value,
                },
            )
            return Scope.empty(level=level)

        key = (level, root_id)
        if self.cache_enabled and key in self._scope_cache:
            return self._scope_cache[key]

        scope = Scope(
            level=level,
            root_id=root_id,
            facility_ids=frozenset(self._descend(level, root_id)),
        )
        if self.cache_enabled:
            self._scope_cache[key] = scope

        logger.debug(
            "scope_resolved",
            extra={
                "admin_level": level.value,
                "root_id": str(root_id),
                "facility_count": len(scope.facility_ids),
            },
        )
        return scope

    def _descend(self, level: AdminLevel, root_id: UUID) -> list[UUID]:
        stmt = select(FacilityModel.id)
        if level is AdminLevel.FACILITY:
            stmt = stmt.where(FacilityModel.id == root_id)
        elif level is AdminLevel.WOREDA:
            stmt = stmt.where(FacilityModel.woreda_id == root_id)
        elif level is AdminLevel.ZONE:
            stmt = stmt.join(WoredaModel, FacilityModel.woreda_id == WoredaModel.id).where(
                WoredaModel.zone_id == root_id
            )
        elif level is AdminLevel.REGIONAL:
            stmt = (
                stmt.join(WoredaModel, FacilityModel.woreda_id == WoredaModel.id)
                .join(ZoneModel, WoredaModel.zone_id == ZoneModel.id)
                .where(ZoneModel.region_id == root_id)
            )
        else:
            return []
        return list(self.session.execute(stmt).scalars())

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def check(
        self,
        user_role: UserRoleRecord | None,
        target: Any,
        action: Action | str,
    ) -> tuple[bool, str]:
        """
        (allowed, reason) for action on target.

        target is a request (anything with ``facility_id``) or a facility id.
        """
        try:
            action = Action(action)
        except ValueError:
            return False, f"unknown action '{action}'"

        if user_role is None:
            return False, "no role record"

        level = AdminLevel.parse(user_role.admin_level)
        if level is None:
            return False, f"unknown admin level '{user_role.admin_level}'"

        if action not in granted_actions(level, user_role.role):
            return False, (
                f"role '{user_role.role}' at level '{level.value}' "
                f"is not permitted to {action.value}"
            )

        facility_id = _facility_of(target)
        if not self.resolve(user_role).contains(facility_id):
            return False, f"facility {facility_id} is outside the user's scope"

        owner_id = getattr(target, "owner_id", None)
        if (
            action in OWNER_ACTIONS
            and level is AdminLevel.FACILITY
            and owner_id is not None
            and owner_id != user_role.user_id
        ):
            return False, f"only the request owner may {action.value}"

        return True, ""

    def can_act(self, user_role: UserRoleRecord | None, target: Any, action: Action | str) -> bool:
        return self.check(user_role, target, action)[0]

    def explain(self, user_role: UserRoleRecord | None, target: Any, action: Action | str) -> str | None:
        """The denial reason, or None when allowed."""
        allowed, reason = self.check(user_role, target, action)
        return None if allowed else reason

    def authorize(self, user_id: UUID, target: Any, action: Action | str) -> UserRoleRecord:
        """
        Load user_id's role and require action on target.

        Raises:
            PermissionDeniedError: with the specific denial reason.
        """
        user_role = self.role_for(user_id)
        allowed, reason = self.check(user_role, target, action)
        if not allowed:
            request_id = getattr(target, "id", None)
            action_name = action.value if isinstance(action, Action) else str(action)
            logger.warning(
                "permission_denied",
                extra={
                    "user_id": str(user_id),
                    "action": action_name,
                    "reason": reason,
                    "target_request_id": str(request_id) if request_id else None,
                },
            )
            raise PermissionDeniedError(
                str(user_id),
                action_name,
                reason,
                request_id=str(request_id) if request_id else None,
            )
        return user_role
