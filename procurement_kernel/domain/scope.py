"""
Scope and permission types (``procurement_kernel.domain.scope``).

Responsibility
--------------
Pure value objects for authorization: the five administrative levels, the
fixed role set, the action vocabulary, the table-driven permission matrix,
and the ``Scope`` a role resolves to.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  Hierarchy
traversal lives in ``services/scope_resolver.py``.

Invariants enforced
-------------------
* A role at level L is granted an action only if (L, role, action) appears
  in ``PERMISSION_MATRIX``; ``viewer`` may view at any level.
* At facility level, ``OWNER_ACTIONS`` also require the actor to own the
  request.
* A ``Scope`` is either a wildcard (national) or an explicit frozen set of
  facility ids.  The empty scope contains nothing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import UUID


class AdminLevel(str, Enum):
    """Administrative tiers, most local first."""

    FACILITY = "facility"
    WOREDA = "woreda"
    ZONE = "zone"
    REGIONAL = "regional"
    NATIONAL = "national"

    @classmethod
    def parse(cls, value: str | AdminLevel | None) -> AdminLevel | None:
        """Return the level for value, or None if it is not a known level."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


class Role(str, Enum):
    FACILITY_LOGISTIC_OFFICER = "facility_logistic_officer"
    FACILITY_MANAGER = "facility_manager"
    FACILITY_ADMIN = "facility_admin"
    WOREDA_USER = "woreda_user"
    ZONE_USER = "zone_user"
    REGIONAL_USER = "regional_user"
    NATIONAL_USER = "national_user"
    PROGRAM_OFFICER = "program_officer"
    ADMIN = "admin"
    VIEWER = "viewer"


class Action(str, Enum):
    """Everything an actor can ask to do with a request."""

    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    SUBMIT = "submit"
    APPROVE = "approve"
    RETURN = "return"
    REVISE = "revise"
    START_PROCUREMENT = "start_procurement"
    COMPLETE = "complete"
    CANCEL = "cancel"


_FACILITY_ACTIONS = frozenset({
    Action.VIEW, Action.CREATE, Action.EDIT, Action.SUBMIT, Action.REVISE,
})
_REVIEW_ACTIONS = frozenset({Action.VIEW, Action.APPROVE, Action.RETURN})
_NATIONAL_ACTIONS = _REVIEW_ACTIONS | frozenset({
    Action.START_PROCUREMENT, Action.COMPLETE, Action.CANCEL,
})
ALL_ACTIONS: frozenset[Action] = frozenset(Action)

# Facility-level roles may take these only on requests they own
OWNER_ACTIONS = frozenset({Action.SUBMIT, Action.REVISE})

PERMISSION_MATRIX: dict[tuple[AdminLevel, Role], frozenset[Action]] = {
    (AdminLevel.FACILITY, Role.FACILITY_LOGISTIC_OFFICER): _FACILITY_ACTIONS,
    (AdminLevel.FACILITY, Role.FACILITY_MANAGER): _FACILITY_ACTIONS,
    (AdminLevel.FACILITY, Role.FACILITY_ADMIN): _FACILITY_ACTIONS,
    (AdminLevel.WOREDA, Role.WOREDA_USER): _REVIEW_ACTIONS,
    (AdminLevel.ZONE, Role.ZONE_USER): _REVIEW_ACTIONS,
    (AdminLevel.REGIONAL, Role.REGIONAL_USER): _REVIEW_ACTIONS,
    (AdminLevel.NATIONAL, Role.NATIONAL_USER): _NATIONAL_ACTIONS,
    (AdminLevel.NATIONAL, Role.PROGRAM_OFFICER): _NATIONAL_ACTIONS,
    (AdminLevel.NATIONAL, Role.ADMIN): ALL_ACTIONS,
}

# Roles granted the same actions at every level
ANY_LEVEL_GRANTS: dict[Role, frozenset[Action]] = {
    Role.VIEWER: frozenset({Action.VIEW}),
}

# Which role-record column holds the root of each level's subtree
SCOPE_ID_FIELD: dict[AdminLevel, str] = {
    AdminLevel.FACILITY: "facility_id",
    AdminLevel.WOREDA: "woreda_id",
    AdminLevel.ZONE: "zone_id",
    AdminLevel.REGIONAL: "region_id",
}


def granted_actions(level: AdminLevel | str | None, role: Role | str) -> frozenset[Action]:
    """Actions the matrix grants to role at level (empty if unknown)."""
    parsed_level = AdminLevel.parse(level)
    try:
        parsed_role = Role(role)
    except ValueError:
        return frozenset()
    if parsed_role in ANY_LEVEL_GRANTS:
        return ANY_LEVEL_GRANTS[parsed_role]
    if parsed_level is None:
        return frozenset()
    return PERMISSION_MATRIX.get((parsed_level, parsed_role), frozenset())


def is_granted(level: AdminLevel | str | None, role: Role | str, action: Action | str) -> bool:
    try:
        parsed_action = Action(action)
    except ValueError:
        return False
    return parsed_action in granted_actions(level, role)


@dataclass(frozen=True)
class Scope:
    """
    The set of facilities a role may see or act on.

    ``wildcard`` is True only for national roles; ``facility_ids`` is then
    empty and ignored.
    """

    level: AdminLevel | None
    root_id: UUID | None
    facility_ids: frozenset[UUID] = field(default_factory=frozenset)
    wildcard: bool = False

    @classmethod
    def empty(cls, level: AdminLevel | None = None, root_id: UUID | None = None) -> Scope:
        return cls(level=level, root_id=root_id)

    @classmethod
    def national(cls) -> Scope:
        return cls(level=AdminLevel.NATIONAL, root_id=None, wildcard=True)

    @property
    def is_empty(self) -> bool:
        return not self.wildcard and not self.facility_ids

    def contains(self, facility_id: UUID | None) -> bool:
        if facility_id is None:
            return False
        return self.wildcard or facility_id in self.facility_ids
