from __future__ import annotations

from ..extensions import db
from app.time_utils import utcnow


class Product(db.Model):
    """
    Product catalog row, reduced to what stocktaking needs.

    stock_quantity is the authoritative on-hand level. Stocktakes snapshot it
    when a product is attached and overwrite it (absolute set, never a delta)
    when the session is balanced.

    LOOKUP PATTERN:
    - Barcode scan: exact match on barcode wins over everything else
    - SKU lookup: exact match on sku
    - Free text: substring on name / sku / barcode
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=True, index=True)
    barcode = db.Column(db.String(64), nullable=True, index=True)

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)

    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r} stock={self.stock_quantity}>"


class StockMovement(db.Model):
    """
    Append-only trail of stock level changes.

    Balancing a stocktake writes one row per product whose stock actually
    changed, with quantity_change = new level - previous level.
    """
    __tablename__ = "stock_movements"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity_change = db.Column(db.Integer, nullable=False)

    # "stocktake" for balance writes; other sources may add their own types
    movement_type = db.Column(db.String(32), nullable=False, index=True)

    reason = db.Column(db.Text, nullable=True)

    # Source document, e.g. the stocktake session code
    reference = db.Column(db.String(64), nullable=True, index=True)

    created_at = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
