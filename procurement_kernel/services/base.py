"""
BaseService -- abstract base for kernel write-side services.

Responsibility:
    Common constructor and session-handling contract.  Concrete services
    receive a SQLAlchemy ``Session`` and persist with ``session.flush()``,
    never ``session.commit()``.

Architecture position:
    Kernel > Services.  Every service in ``procurement_kernel/services/``
    except the ``ProcurementService`` facade extends this class.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or roll back.  The facade (or the test harness) owns
    commit/rollback, so an item edit and the request totals it changes are
    always committed together.
"""

from abc import ABC

from sqlalchemy.orm import Session

from procurement_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read models -- those belong in
          ``procurement_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
