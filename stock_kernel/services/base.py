"""
BaseService -- abstract base for the kernel's write-side services.

Responsibility:
    Provides the common constructor (session + clock) and the transaction
    boundary helper used by every public write method.

Architecture position:
    Kernel > Services -- imperative shell.  ProductCatalog and
    TransactionLedger extend this class.

Invariants enforced:
    Transaction boundaries: each public write method owns exactly one
    database transaction.  It commits on success and rolls back on any
    exception, so a failed operation leaves no partial state behind.  The
    boundary must be owned here (not by the caller) because the per-product
    lock has to stay held until the commit is visible to other sessions.

Failure modes:
    - Any exception inside ``_transaction()`` triggers ``session.rollback()``
      before it propagates unchanged.
"""

from abc import ABC
from contextlib import contextmanager
from typing import Generic, Iterator, TypeVar

from sqlalchemy.orm import Session

from stock_kernel.db.base import Base
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.logging_config import get_logger

ModelType = TypeVar("ModelType", bound=Base)

logger = get_logger("services.base")


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side services.

    Contract:
        Accepts a SQLAlchemy ``Session`` and an optional ``Clock``.  Read
        methods never commit; write methods wrap their work in
        ``_transaction()``.

    Non-goals:
        - Does NOT provide report queries -- those belong in
          ``stock_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        """Commit on normal exit; roll back and re-raise on exception."""
        try:
            yield self.session
            self.session.commit()
        except Exception:
            self.session.rollback()
            logger.debug("service_transaction_rolled_back")
            raise
