"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write service in the kernel.  All concrete services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The request
      layer (carbon_services) owns commit/rollback, so a purchase's wallet
      debit, pool debit, transaction row and audit event commit together.
    - Lost updates surface as OptimisticLockError: a StaleDataError raised
      by a version_id_col compare-and-swap is converted in ``_flush``.

Failure modes:
    - OptimisticLockError when a versioned row changed underneath us.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from carbon_kernel.db.base import Base
from carbon_kernel.exceptions import OptimisticLockError
from carbon_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel write services.

    Contract:
        Accepts a SQLAlchemy ``Session`` from the caller and uses
        ``session.flush()`` to persist changes within the active
        transaction.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-model queries -- those belong in
          ``carbon_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session

    def _flush(self, entity_type: str, entity_id) -> None:
        """Flush pending changes, translating a version conflict."""
        try:
            self.session.flush()
        except StaleDataError:
            logger.warning(
                "optimistic_lock_conflict",
                extra={"entity_type": entity_type, "entity_id": str(entity_id)},
            )
            raise OptimisticLockError(entity_type, str(entity_id)) from None
