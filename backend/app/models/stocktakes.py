from __future__ import annotations

from ..extensions import db
from app.time_utils import to_utc_z, utcnow


class StocktakeSession(db.Model):
    """
    One physical counting exercise ("phiếu kiểm kho").

    LIFECYCLE:
    1. draft: created, products being attached and counted
    2. in_progress / completed: informational, set through session updates
    3. balanced: counted quantities written to product stock (terminal)

    balanced_at / balanced_by are written only by the balance operation.
    """
    __tablename__ = "inventory_check_sessions"
    __table_args__ = (
        db.UniqueConstraint("session_code", name="uq_inventory_check_sessions_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # IAN<YYYYMMDD><HHMM>, with a -N suffix when the minute is already taken
    session_code = db.Column(db.String(32), nullable=False)

    branch_name = db.Column(db.String(255), nullable=False)
    staff_name = db.Column(db.String(255), nullable=False)

    # draft, in_progress, completed, balanced
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    notes = db.Column(db.Text, nullable=False, default="")
    tags = db.Column(db.Text, nullable=False, default="")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    balanced_at = db.Column(db.DateTime, nullable=True)
    balanced_by = db.Column(db.String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<StocktakeSession id={self.id} code={self.session_code!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_code": self.session_code,
            "branch_name": self.branch_name,
            "staff_name": self.staff_name,
            "status": self.status,
            "notes": self.notes,
            "tags": self.tags,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "balanced_at": to_utc_z(self.balanced_at),
            "balanced_by": self.balanced_by,
        }


class StocktakeItem(db.Model):
    """
    One product's line within a stocktake.

    system_quantity is the product's stock at attach time and never changes.
    actual_quantity / difference stay NULL (status "pending") until counted;
    after that status is "matched" when difference == 0, else "discrepancy".
    """
    __tablename__ = "inventory_check_items"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", name="uq_inventory_check_items_session_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("inventory_check_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    system_quantity = db.Column(db.Integer, nullable=False)
    actual_quantity = db.Column(db.Integer, nullable=True)

    # actual_quantity - system_quantity
    difference = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # pending, matched, discrepancy
    status = db.Column(db.String(16), nullable=False, default="pending")

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "session_id": self.session_id,
            "product_id": self.product_id,
            "system_quantity": self.system_quantity,
            "actual_quantity": self.actual_quantity,
            "difference": self.difference,
            "reason": self.reason,
            "notes": self.notes,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
