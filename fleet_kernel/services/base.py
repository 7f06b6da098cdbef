"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every service in the kernel layer.  All concrete services receive a
    SQLAlchemy ``Session`` that they use via ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or rollback themselves.  The caller
      (FleetOperations or a test harness) owns commit/rollback, so a trip
      completion and the invoice it opens land together or not at all.
"""

from abc import ABC

from sqlalchemy.orm import Session

from fleet_kernel.db.store import RecordStore
from fleet_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """
    Abstract base class for all kernel services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and persists
        changes with ``flush()`` inside the active transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only reporting; that belongs in
          ``fleet_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.store = RecordStore(session)
        self.clock = clock or SystemClock()
