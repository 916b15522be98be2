"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Two request fields must not drift once written:

  - ``psm_percent`` is a snapshot of ProgramSettings taken when the draft is
    created.  Later settings changes must never reprice an existing request.
  - Request items are frozen while the request is under review.  Only a
    request in ``draft`` or ``returned`` may have its items edited.

The services check both rules first and raise friendly errors
(ValidationError, ItemsFrozenError).  The listeners here catch any code path
that goes around the services and writes through the ORM directly.

Stage transition rows are append-only from creation; their listeners live
next to the model in ``models/transition.py`` and are always active.

===============================================================================
HOW IT WORKS
===============================================================================

    session.flush()
         |
         v
    [before_update event] --> _check_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Item checks read the parent stage through the flush connection, so they see
the stage as stored, not a possibly stale in-session attribute.

===============================================================================
USAGE
===============================================================================

    init_engine_from_url() installs the listeners; to install them by hand:

    from procurement_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, select
from sqlalchemy.orm import attributes

from procurement_kernel.exceptions import ImmutabilityViolationError
from procurement_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Kept in sync with procurement_kernel.domain.stages.EDITABLE_STAGES; db/ must
# not import from domain/.
_EDITABLE_STAGE_VALUES = frozenset({"draft", "returned"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_psm_snapshot_immutability(mapper, connection, target):
    """Prevent changing psm_percent after the request row exists."""
    history = attributes.get_history(target, "psm_percent")
    if not history.deleted:
        return

    old = history.deleted[0]
    new = history.added[0] if history.added else None
    if old is not None and new is not None and old == new:
        return

    raise _blocked(
        "ProcurementRequest",
        str(target.id),
        "UPDATE",
        "psm_percent is a creation-time snapshot and cannot change",
    )


def _stored_stage(connection, request_id) -> str | None:
    from procurement_kernel.models.request import ProcurementRequestModel

    return connection.execute(
        select(ProcurementRequestModel.current_stage).where(
            ProcurementRequestModel.id == request_id
        )
    ).scalar_one_or_none()


def _check_item_update(mapper, connection, target):
    """Prevent item updates while the parent request is under review."""
    stage = _stored_stage(connection, target.request_id)
    if stage is not None and stage not in _EDITABLE_STAGE_VALUES:
        raise _blocked(
            "RequestItem",
            str(target.id),
            "UPDATE",
            f"Items cannot be modified while the request is '{stage}'",
        )


def _check_item_delete(mapper, connection, target):
    """Prevent item deletion while the parent request is under review."""
    stage = _stored_stage(connection, target.request_id)
    if stage is not None and stage not in _EDITABLE_STAGE_VALUES:
        raise _blocked(
            "RequestItem",
            str(target.id),
            "DELETE",
            f"Items cannot be deleted while the request is '{stage}'",
        )


def _check_item_insert(mapper, connection, target):
    """Prevent adding items to a request under review."""
    stage = _stored_stage(connection, target.request_id)
    if stage is not None and stage not in _EDITABLE_STAGE_VALUES:
        raise _blocked(
            "RequestItem",
            str(target.id),
            "INSERT",
            f"Items cannot be added while the request is '{stage}'",
        )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Safe to call more than once.
    """
    from procurement_kernel.models.request import (
        ProcurementRequestModel,
        RequestItemModel,
    )

    for target, name, fn in (
        (ProcurementRequestModel, "before_update", _check_psm_snapshot_immutability),
        (RequestItemModel, "before_update", _check_item_update),
        (RequestItemModel, "before_delete", _check_item_delete),
        (RequestItemModel, "before_insert", _check_item_insert),
    ):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    from procurement_kernel.models.request import (
        ProcurementRequestModel,
        RequestItemModel,
    )

    _safe_remove_listener(
        ProcurementRequestModel, "before_update", _check_psm_snapshot_immutability
    )
    _safe_remove_listener(RequestItemModel, "before_update", _check_item_update)
    _safe_remove_listener(RequestItemModel, "before_delete", _check_item_delete)
    _safe_remove_listener(RequestItemModel, "before_insert", _check_item_insert)
