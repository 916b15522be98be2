"""
Typed Exception Hierarchy for the Procurement Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the kernel (request screens, review panels, batch repair jobs) must
react differently to a permission problem, a stale stage and a storage
failure.  Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        service.transition(request_id, "approved", actor_id=user_id)
    except StaleStageError as e:
        # Another reviewer moved the request first -- re-fetch and retry
        request = service.get_request(e.request_id, actor_id=user_id)
    except PermissionDeniedError as e:
        api_response(code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from ProcurementKernelError:

    ProcurementKernelError (base)
    |
    +-- ValidationError
    |   +-- EmptyRequestError
    |
    +-- PermissionDeniedError
    |
    +-- StageError
    |   +-- IllegalTransitionError
    |   +-- StaleStageError
    |   +-- ItemsFrozenError
    |
    +-- NotFoundError
    |   +-- RequestNotFoundError
    |   +-- ItemNotFoundError
    |   +-- ReferenceNotFoundError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- ImmutabilityViolationError
    |
    +-- PersistenceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category     | Code                    | When Raised                   | Retry?
-------------|-------------------------|-------------------------------|--------
Validation   | VALIDATION_ERROR        | Negative qty/price, bad input | No
             | EMPTY_REQUEST           | Draft with no selected lines  | No
-------------|-------------------------|-------------------------------|--------
Permission   | PERMISSION_DENIED       | Scope or role check failed    | No
-------------|-------------------------|-------------------------------|--------
Stage        | ILLEGAL_TRANSITION      | Edge not in transition table  | No
             | STALE_STAGE             | Compare-and-swap lost a race  | Re-fetch
             | ITEMS_FROZEN            | Item edit outside draft/ret.  | No
-------------|-------------------------|-------------------------------|--------
Not found    | REQUEST_NOT_FOUND       | Unknown request id            | No
             | ITEM_NOT_FOUND          | Unknown item id               | No
             | REFERENCE_NOT_FOUND     | Unknown program/source/unit   | No
-------------|-------------------------|-------------------------------|--------
Audit        | AUDIT_CHAIN_BROKEN      | Transition hash chain broken  | Never
             | IMMUTABILITY_VIOLATION  | Mutating an immutable record  | Never
-------------|-------------------------|-------------------------------|--------
Persistence  | PERSISTENCE_ERROR       | Storage failure               | Caller

===============================================================================
"""


class ProcurementKernelError(Exception):
    """
    Base exception for all procurement kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PROCUREMENT_KERNEL_ERROR"


# Validation-related exceptions


class ValidationError(ProcurementKernelError):
    """Caller-correctable input problem (negative amounts, malformed input)."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None, value: object = None):
        self.field = field
        self.value = value
        super().__init__(message)


class EmptyRequestError(ValidationError):
    """A draft was requested with no selected forecast lines."""

    code: str = "EMPTY_REQUEST"

    def __init__(self, program_id: str, year: int):
        self.program_id = program_id
        self.year = year
        super().__init__(
            f"Cannot create a request for program {program_id} / {year} "
            "without any selected forecast lines",
            field="selected_lines",
        )


# Permission-related exceptions


class PermissionDeniedError(ProcurementKernelError):
    """
    The actor may not perform the action on the request.

    Always carries the specific reason (outside scope, no role record, role
    not permitted for the action) -- never a generic failure.
    """

    code: str = "PERMISSION_DENIED"

    def __init__(self, user_id: str, action: str, reason: str, request_id: str | None = None):
        self.user_id = user_id
        self.action = action
        self.reason = reason
        self.request_id = request_id
        super().__init__(f"User {user_id} may not {action}: {reason}")


# Stage-related exceptions


class StageError(ProcurementKernelError):
    """Base exception for stage machine errors."""

    code: str = "STAGE_ERROR"


class IllegalTransitionError(StageError):
    """The requested stage is not a legal successor of the current stage."""

    code: str = "ILLEGAL_TRANSITION"

    def __init__(self, request_id: str, from_stage: str, to_stage: str):
        self.request_id = request_id
        self.from_stage = from_stage
        self.to_stage = to_stage
        super().__init__(
            f"Request {request_id}: no transition from '{from_stage}' to '{to_stage}'"
        )


class StaleStageError(StageError):
    """
    Optimistic compare-and-swap on current_stage found a different stage.

    Recoverable: re-fetch the request and retry, or show the conflict.
    """

    code: str = "STALE_STAGE"

    def __init__(self, request_id: str, expected_stage: str, actual_stage: str | None = None):
        self.request_id = request_id
        self.expected_stage = expected_stage
        self.actual_stage = actual_stage
        super().__init__(
            f"Request {request_id} is no longer in stage '{expected_stage}'"
            + (f" (now '{actual_stage}')" if actual_stage else "")
            + ": another actor already transitioned it"
        )


class ItemsFrozenError(StageError):
    """Items can only change while the request is in draft or returned."""

    code: str = "ITEMS_FROZEN"

    def __init__(self, request_id: str, stage: str):
        self.request_id = request_id
        self.stage = stage
        super().__init__(
            f"Items of request {request_id} are frozen in stage '{stage}'"
        )


# Lookup-related exceptions


class NotFoundError(ProcurementKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class RequestNotFoundError(NotFoundError):
    """Procurement request with given ID was not found."""

    code: str = "REQUEST_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Procurement request not found: {request_id}")


class ItemNotFoundError(NotFoundError):
    """Request item with given ID was not found."""

    code: str = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Request item not found: {item_id}")


class ReferenceNotFoundError(NotFoundError):
    """A referenced program, funding source or org unit does not exist."""

    code: str = "REFERENCE_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


# Audit-related exceptions


class AuditError(ProcurementKernelError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """The stage transition hash chain failed validation."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, request_id: str, sequence: int, expected_hash: str, actual_hash: str):
        self.request_id = request_id
        self.sequence = sequence
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Transition chain of request {request_id} broken at sequence {sequence}: "
            f"expected {expected_hash[:16]}..., got {actual_hash[:16]}..."
        )


class ImmutabilityViolationError(AuditError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Storage-related exceptions


class PersistenceError(ProcurementKernelError):
    """
    Storage failure while persisting a unit of work.

    The original SQLAlchemy error is chained as ``__cause__``.  The unit of
    work has been rolled back; totals may be repaired with
    ``TotalsService.reconcile`` if writes happened outside the facade.
    """

    code: str = "PERSISTENCE_ERROR"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Persistence failure during {operation}: {detail}")
