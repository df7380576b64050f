"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for ledger entries
    (``StockTransaction.seq``) and catalog positions (``Product.position``).
    Uses a dedicated counter table; the counter row is incremented with an
    UPDATE *before* it is read, so the writer lock is taken first on every
    backend (row lock on PostgreSQL, database write lock on SQLite).

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ProductCatalog and TransactionLedger inside their transactions.

Invariants enforced:
    - Sequence monotonicity: the locked counter row is the sole source of
      truth for the next value.  The aggregate-max-plus-one anti-pattern is
      never used.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError if two transactions race to create the same counter row.
      ``initialize_sequences()`` seeds the well-known counters at table
      creation so that path only runs for ad-hoc sequence names.
"""

from sqlalchemy import BigInteger, String, select, update
from sqlalchemy.orm import Mapped, Session, mapped_column

from stock_kernel.db.base import Base
from stock_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  The increment commits with the caller's transaction.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.

    Usage:
        seq = sequence_service.next_value(SequenceService.STOCK_TRANSACTION)
    """

    # Well-known sequence names
    STOCK_TRANSACTION = "stock_transaction"
    PRODUCT = "product"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              committed value for this sequence name.
            - The counter row stays locked until the transaction completes.
        """
        result = self._session.execute(
            update(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .values(current_value=SequenceCounter.current_value + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # First use of an unseeded sequence
            self._session.add(SequenceCounter(name=sequence_name, current_value=1))
            self._session.flush()
            logger.debug(
                "sequence_allocated",
                extra={"sequence_name": sequence_name, "value": 1},
            )
            return 1

        value = self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one()
        assert value > 0, "sequence value must be strictly positive"
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": value},
        )
        return value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if absent."""
        return self._session.execute(
            select(SequenceCounter.current_value).where(
                SequenceCounter.name == sequence_name
            )
        ).scalar_one_or_none()

    def initialize_sequences(self) -> None:
        """
        Seed all well-known sequences at zero.

        Called during database setup to ensure the counter rows exist.
        """
        for name in (self.STOCK_TRANSACTION, self.PRODUCT):
            existing = self.current_value(name)
            if existing is None:
                self._session.add(SequenceCounter(name=name, current_value=0))

        self._session.flush()
