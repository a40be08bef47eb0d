# Overview: Service-layer operations for the customer point ledger; encapsulates business logic and database work.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, PointHistory, POINT_HISTORY_TYPES, SOURCE_HISTORY_UNIQUE_CONSTRAINT
from loyalty.time_utils import utcnow
from .concurrency import has_pending_writes, lock_for_update, run_with_retry, unit_of_work
from .point_config import PointConfig, calculate_earned_points, calculate_expiry_date

"""
Point Ledger Invariants (authoritative)

- point_history is append-only; the only mutation is is_expired on earned rows.
- customers.points_balance == balance_snapshot of the customer's latest row.
- customers.points_balance >= 0; a movement that would go negative writes nothing.
- The history insert and the balance update happen in one transaction.
- At most one expired row per earned lot (unique source_history_id).
"""


class PointLedgerError(Exception):
    """Raised for point ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class CustomerNotFoundError(PointLedgerError):
    """The referenced customer does not exist."""


class InsufficientBalanceError(PointLedgerError):
    """The movement would drive the balance below zero."""


class DuplicateKeyError(PointLedgerError):
    """
    Another row already references the same source_history_id.

    The expiration job treats this as "already processed". Any other caller
    supplying source_history_id should treat it as a real conflict.
    """


class PointUsageError(PointLedgerError):
    """Redemption request violates the store's point usage rules."""


@dataclass
class PointTransaction:
    customer_id: int
    type: str
    amount: int
    description: str
    related_service: Optional[str] = None
    reservation_id: Optional[str] = None
    expires_at: Optional[datetime] = None
    source_history_id: Optional[int] = None


def _is_source_history_violation(exc: IntegrityError) -> bool:
    # SQLite names the column, PostgreSQL/MySQL name the constraint.
    message = str(exc.orig)
    return SOURCE_HISTORY_UNIQUE_CONSTRAINT in message or "source_history_id" in message


def _duplicate_source_error(source_history_id: int) -> DuplicateKeyError:
    return DuplicateKeyError(
        "Point history source already consumed",
        details={"source_history_id": source_history_id},
    )


def _validate_transaction(transaction: PointTransaction) -> None:
    if transaction.type not in POINT_HISTORY_TYPES:
        raise PointLedgerError(
            f"Invalid point transaction type: {transaction.type}",
            details={"allowed_types": list(POINT_HISTORY_TYPES)},
        )
    if isinstance(transaction.amount, bool) or not isinstance(transaction.amount, int):
        raise PointLedgerError("Point amount must be an integer")
    if transaction.amount == 0:
        raise PointLedgerError("Point amount must be non-zero")


def add_point_transaction(transaction: PointTransaction, session=None) -> PointHistory:
    """
    Append one history row and move the customer's balance.

    Must run inside a unit of work (see concurrency.unit_of_work); this
    function flushes but never commits, so the caller's commit or rollback
    decides the fate of both writes together.

    Raises:
        CustomerNotFoundError: customer missing, nothing written
        InsufficientBalanceError: balance would go negative, nothing written
        DuplicateKeyError: source_history_id already used; the session must
            be rolled back by the enclosing unit of work
        StaleDataError: another transaction moved the same balance first
            (Customer.version_id mismatch on the second flush); nothing is
            committed. apply_point_transaction retries it; direct callers
            must roll back and retry themselves.
    """
    session = session or db.session
    _validate_transaction(transaction)

    customer = lock_for_update(
        session.query(Customer).filter_by(id=transaction.customer_id)
    ).first()
    if not customer:
        raise CustomerNotFoundError(
            "Customer not found",
            details={"customer_id": transaction.customer_id},
        )

    # Checked under the customer lock so a second expiry of the same lot
    # reports DuplicateKeyError even when its balance check would also fail.
    # The unique constraint still guards the insert below.
    if transaction.source_history_id is not None:
        consumed = session.query(PointHistory.id).filter_by(
            source_history_id=transaction.source_history_id
        ).first()
        if consumed:
            raise _duplicate_source_error(transaction.source_history_id)

    new_balance = customer.points_balance + transaction.amount
    if new_balance < 0:
        raise InsufficientBalanceError(
            "Insufficient points",
            details={
                "customer_id": customer.id,
                "balance": customer.points_balance,
                "requested": transaction.amount,
            },
        )

    entry = PointHistory(
        customer_id=transaction.customer_id,
        type=transaction.type,
        amount=transaction.amount,
        description=transaction.description,
        related_service=transaction.related_service,
        reservation_id=transaction.reservation_id,
        balance_snapshot=new_balance,
        expires_at=transaction.expires_at,
        source_history_id=transaction.source_history_id,
    )
    session.add(entry)
    try:
        session.flush()  # surfaces the unique violation before the balance moves
    except IntegrityError as exc:
        if transaction.source_history_id is not None and _is_source_history_violation(exc):
            raise _duplicate_source_error(transaction.source_history_id) from exc
        raise

    customer.points_balance = new_balance
    session.flush()
    return entry


def apply_point_transaction(transaction: PointTransaction) -> PointHistory:
    """
    Run add_point_transaction in a unit of work (direct-call entry point).

    Lock and version conflicts are retried only when the unit of work is its
    own; joined to a caller's uncommitted writes, a retry would roll those
    back, so the error propagates to the caller instead.
    """
    if has_pending_writes():
        with unit_of_work() as session:
            return add_point_transaction(transaction, session)

    def _op():
        with unit_of_work() as session:
            return add_point_transaction(transaction, session)

    return run_with_retry(_op)


def earn_points(
    customer_id: int,
    amount_paid,
    config: PointConfig,
    *,
    description: str,
    related_service: str | None = None,
    reservation_id: str | None = None,
    now: datetime | None = None,
) -> PointHistory | None:
    """
    Credit points for a paid amount. Returns None (no write) when the amount
    earns nothing.
    """
    points = calculate_earned_points(amount_paid, config)
    if points <= 0:
        return None

    return apply_point_transaction(PointTransaction(
        customer_id=customer_id,
        type="earned",
        amount=points,
        description=description,
        related_service=related_service,
        reservation_id=reservation_id,
        expires_at=calculate_expiry_date(config, now or utcnow()),
    ))


def use_points(
    customer_id: int,
    points: int,
    config: PointConfig,
    *,
    description: str,
    reservation_id: str | None = None,
) -> PointHistory:
    """Redeem points; the request must meet the store minimum."""
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise PointUsageError("Points to use must be a positive integer")
    if points < config.min_points_to_use:
        raise PointUsageError(
            f"At least {config.min_points_to_use} points are required",
            details={"requested": points, "minimum": config.min_points_to_use},
        )

    return apply_point_transaction(PointTransaction(
        customer_id=customer_id,
        type="used",
        amount=-points,
        description=description,
        reservation_id=reservation_id,
    ))


def adjust_points(customer_id: int, amount: int, reason: str) -> PointHistory:
    """Manual correction by an administrator (either sign)."""
    return apply_point_transaction(PointTransaction(
        customer_id=customer_id,
        type="adjusted",
        amount=amount,
        description=reason,
    ))


def get_balance(customer_id: int) -> int:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if not customer:
        raise CustomerNotFoundError("Customer not found", details={"customer_id": customer_id})
    return customer.points_balance


def get_expiring_points(
    customer_id: int,
    before: datetime,
    now: datetime | None = None,
) -> PointHistory | None:
    """Earliest unexpired earned lot with now <= expires_at <= before."""
    now = now or utcnow()
    return (
        db.session.query(PointHistory)
        .filter(
            PointHistory.customer_id == customer_id,
            PointHistory.type == "earned",
            PointHistory.is_expired == False,  # noqa: E712
            PointHistory.expires_at >= now,
            PointHistory.expires_at <= before,
        )
        .order_by(PointHistory.expires_at.asc(), PointHistory.id.asc())
        .first()
    )


def get_expiring_points_within(customer_id: int, days: int, now: datetime | None = None) -> PointHistory | None:
    now = now or utcnow()
    return get_expiring_points(customer_id, now + timedelta(days=days), now=now)


def list_point_history(
    customer_id: int,
    *,
    type: str | None = None,
    limit: int = 20,
    offset: int = 0,
) -> tuple[list[PointHistory], int]:
    """Newest-first page of a customer's history plus the total row count."""
    q = db.session.query(PointHistory).filter(PointHistory.customer_id == customer_id)
    if type is not None:
        q = q.filter(PointHistory.type == type)

    total = q.count()
    rows = (
        q.order_by(PointHistory.created_at.desc(), PointHistory.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
