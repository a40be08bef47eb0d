# Overview: Batch expiration of earned point lots past their validity window.

"""
Point Expiration Batch

WHY: Earned points are valid for a store-configured number of months. A
cron trigger (or an operator) sweeps every lot whose expires_at has passed
and reverses it with an "expired" ledger entry.

GUARANTEES:
- Each lot is expired in its own unit of work; one bad lot never aborts
  the sweep.
- A lot is expired at most once no matter how many runs overlap or retry.
  The gate is the unique constraint on point_history.source_history_id,
  not an in-process lock: the losing run gets DuplicateKeyError and skips.
- Lots that failed, or became eligible after a run finished, are picked up
  by the next run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from flask import current_app
from sqlalchemy import update

from ..extensions import db
from ..models import PointHistory
from loyalty.time_utils import utcnow
from .concurrency import unit_of_work
from .point_ledger_service import (
    DuplicateKeyError,
    PointLedgerError,
    PointTransaction,
    add_point_transaction,
)


EXPIRED_DESCRIPTION_PREFIX = "Points expired: "


@dataclass(frozen=True)
class EligibleLot:
    """Detached snapshot of an earned lot; safe to use across rollbacks."""
    id: int
    customer_id: int
    amount: int
    description: str
    related_service: Optional[str]
    expires_at: Optional[datetime]


@dataclass
class ExpirationResult:
    processed_count: int = 0
    error_count: int = 0
    errors: list[dict] = field(default_factory=list)

    def record_error(self, customer_id: int, reason: str, details: dict | None = None) -> None:
        error = {"customer_id": customer_id, "reason": reason}
        if details:
            error["details"] = details
        self.errors.append(error)
        self.error_count += 1

    def to_dict(self) -> dict:
        payload = {
            "processedCount": self.processed_count,
            "errorCount": self.error_count,
        }
        if self.errors:
            payload["errors"] = []
            for e in self.errors:
                error = {"customerId": e["customer_id"], "reason": e["reason"]}
                if "details" in e:
                    error["details"] = e["details"]
                payload["errors"].append(error)
        return payload


def find_eligible_lots(now: datetime | None = None) -> list[EligibleLot]:
    """Earned, not yet expired lots with expires_at <= now, oldest first."""
    now = now or utcnow()
    rows = (
        db.session.query(PointHistory)
        .filter(
            PointHistory.type == "earned",
            PointHistory.is_expired == False,  # noqa: E712
            PointHistory.expires_at.isnot(None),
            PointHistory.expires_at <= now,
        )
        .order_by(PointHistory.expires_at.asc(), PointHistory.id.asc())
        .all()
    )
    return [
        EligibleLot(
            id=row.id,
            customer_id=row.customer_id,
            amount=row.amount,
            description=row.description,
            related_service=row.related_service,
            expires_at=row.expires_at,
        )
        for row in rows
    ]


def expire_lot(lot: EligibleLot) -> None:
    """
    Expire one lot: expired entry + is_expired flag, committed together.

    Raises whatever the ledger raises (DuplicateKeyError included); the
    unit of work has already rolled back when the exception escapes.
    """
    with unit_of_work() as session:
        add_point_transaction(
            PointTransaction(
                customer_id=lot.customer_id,
                type="expired",
                amount=-lot.amount,
                description=f"{EXPIRED_DESCRIPTION_PREFIX}{lot.description}",
                related_service=lot.related_service,
                source_history_id=lot.id,
            ),
            session,
        )
        session.execute(
            update(PointHistory)
            .where(PointHistory.id == lot.id)
            .values(is_expired=True)
        )


def expire_lots(lots: list[EligibleLot]) -> ExpirationResult:
    """Process lots sequentially, classifying each outcome."""
    result = ExpirationResult()

    for lot in lots:
        try:
            expire_lot(lot)
        except DuplicateKeyError:
            current_app.logger.warning(
                "Point lot already expired by a concurrent run (lot_id=%s, customer_id=%s)",
                lot.id,
                lot.customer_id,
            )
            continue
        except Exception as exc:
            current_app.logger.exception(
                "Failed to expire points for customer (lot_id=%s, customer_id=%s)",
                lot.id,
                lot.customer_id,
            )
            details = exc.details if isinstance(exc, PointLedgerError) else None
            result.record_error(lot.customer_id, str(exc), details)
            continue

        result.processed_count += 1

    return result


def run_expiration(now: datetime | None = None) -> ExpirationResult:
    """
    Expire every eligible earned lot as of `now` (default: current UTC time).

    A failure of the eligibility query propagates (nothing was processed);
    per-lot failures are reported in the result.
    """
    now = now or utcnow()
    lots = find_eligible_lots(now)
    current_app.logger.info("Point expiration started: %d eligible lot(s) as of %s", len(lots), now.isoformat())

    result = expire_lots(lots)

    current_app.logger.info(
        "Point expiration finished: processed=%d errors=%d skipped=%d",
        result.processed_count,
        result.error_count,
        len(lots) - result.processed_count - result.error_count,
    )
    return result
