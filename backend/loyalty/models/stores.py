from __future__ import annotations

from ..extensions import db


class Store(db.Model):
    """
    Store carrying the operator-editable point program settings.

    The point columns are nullable: a missing value means
    "use the program default" and is resolved by point_config, never here.
    point_earn_rate is a percentage (1 means 1% of the paid amount).
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)

    point_earn_rate = db.Column(db.Numeric(5, 2), nullable=True)
    point_expiration_months = db.Column(db.Integer, nullable=True)
    point_min_usage = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"
