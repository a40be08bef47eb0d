from __future__ import annotations

from ..extensions import db
from loyalty.time_utils import to_utc_z


# Name of the constraint that makes expiry idempotent. Referenced by the
# ledger when translating driver errors into DuplicateKeyError.
SOURCE_HISTORY_UNIQUE_CONSTRAINT = "uq_point_history_source_history_id"

POINT_HISTORY_TYPES = ("earned", "used", "expired", "adjusted")


class Customer(db.Model):
    """
    Customer master data with the denormalized point balance.

    points_balance is mutated only by point_ledger_service and always equals
    the balance_snapshot of the customer's most recent PointHistory row.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.CheckConstraint("points_balance >= 0", name="ck_customers_points_non_negative"),
        db.UniqueConstraint("email", name="uq_customers_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    points_balance = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}


class PointHistory(db.Model):
    """
    Append-only ledger of point movements.

    TRANSACTION TYPES:
    - earned: Points granted for a paid amount (may carry expires_at)
    - used: Points redeemed (negative)
    - expired: Reversal of an earned lot past its expiry (negative)
    - adjusted: Manual correction by an administrator (either sign)

    IMMUTABLE: Rows are never deleted. The only mutation is is_expired on
    an earned row, set in the same transaction that inserts the expired row
    pointing back to it through source_history_id.

    source_history_id is unique across the table: at most one expired row can
    ever reference a given earned lot, whatever the number of concurrent
    expiration runs.
    """
    __tablename__ = "point_history"
    __table_args__ = (
        db.UniqueConstraint("source_history_id", name=SOURCE_HISTORY_UNIQUE_CONSTRAINT),
        db.Index("ix_point_history_customer_created", "customer_id", "created_at"),
        db.Index("ix_point_history_expirable", "type", "is_expired", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)  # earned, used, expired, adjusted
    amount = db.Column(db.Integer, nullable=False)  # Positive for earned, negative for used/expired

    description = db.Column(db.String(255), nullable=False)
    related_service = db.Column(db.String(64), nullable=True)
    reservation_id = db.Column(db.String(64), nullable=True, index=True)

    balance_snapshot = db.Column(db.Integer, nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    source_history_id = db.Column(db.Integer, db.ForeignKey("point_history.id"), nullable=True)
    is_expired = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("point_history", lazy=True))
    source_history = db.relationship("PointHistory", remote_side=[id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount": self.amount,
            "description": self.description,
            "related_service": self.related_service,
            "reservation_id": self.reservation_id,
            "balance_snapshot": self.balance_snapshot,
            "expires_at": to_utc_z(self.expires_at),
            "source_history_id": self.source_history_id,
            "is_expired": self.is_expired,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
