# backend/app/services/products_service.py
"""
Product catalog access used by stocktaking.

- ProductStockMutator: reads and overwrites Product.stock_quantity
- search_products: ranked free-text lookup for the "add product" picker
- list_products_paged: paginated browse with optional text filter

Stock values returned here are always the live catalog level, never a
session snapshot.
"""
from __future__ import annotations

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from ..models import Product, StockMovement
from app.time_utils import utcnow

DEFAULT_SEARCH_LIMIT = 20
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class ProductStockMutator:
    """Absolute stock writes against the product catalog."""

    def get_stock_quantity(self, s: Session, product_id: int) -> int | None:
        """Current stock, 0 when the column is NULL, None when the product does not exist."""
        row = s.execute(
            select(Product.id, Product.stock_quantity).where(Product.id == product_id)
        ).first()
        if row is None:
            return None
        return row.stock_quantity or 0

    def set_stock_quantity(self, s: Session, product_id: int, quantity: int) -> int | None:
        """
        Overwrite stock with quantity. Not a delta.

        Returns the previous quantity, or None when the product does not exist
        (nothing is written in that case).
        """
        previous = self.get_stock_quantity(s, product_id)
        if previous is None:
            return None
        s.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=quantity, updated_at=utcnow())
        )
        return previous

    def record_movement(
        self,
        s: Session,
        *,
        product_id: int,
        quantity_change: int,
        movement_type: str,
        reason: str | None = None,
        reference: str | None = None,
    ) -> StockMovement:
        movement = StockMovement(
            product_id=product_id,
            quantity_change=quantity_change,
            movement_type=movement_type,
            reason=reason,
            reference=reference,
        )
        s.add(movement)
        return movement


def _text_filter(term: str):
    pattern = f"%{term}%"
    return or_(
        Product.name.like(pattern),
        Product.sku.like(pattern),
        Product.barcode.like(pattern),
    )


def _product_row(row) -> dict:
    return {
        "id": row.id,
        "name": row.name,
        "sku": row.sku,
        "barcode": row.barcode,
        "stock_quantity": row.stock_quantity,
        "image_url": row.image_url,
    }


_PRODUCT_COLUMNS = (
    Product.id,
    Product.name,
    Product.sku,
    Product.barcode,
    func.coalesce(Product.stock_quantity, 0).label("stock_quantity"),
    Product.image_url,
)


def search_products(s: Session, query: str | None, *, limit: int = DEFAULT_SEARCH_LIMIT) -> list[dict]:
    """
    Ranked product lookup.

    Exact barcode first, then exact SKU, then name substring, then any other
    substring hit (sku/barcode); ties broken by name. Blank query returns [].
    """
    term = (query or "").strip()
    if not term:
        return []

    rank = case(
        (Product.barcode == term, 1),
        (Product.sku == term, 2),
        (Product.name.like(f"%{term}%"), 3),
        else_=4,
    )

    rows = s.execute(
        select(*_PRODUCT_COLUMNS)
        .where(or_(_text_filter(term), Product.barcode == term))
        .order_by(rank, Product.name.asc(), Product.id.asc())
        .limit(limit)
    ).all()
    return [_product_row(r) for r in rows]


def list_products_paged(
    s: Session,
    *,
    page: int | None = 1,
    per_page: int | None = None,
    query: str | None = None,
    max_per_page: int = MAX_PAGE_SIZE,
) -> dict:
    """
    Paginated product listing, newest first.

    Returns:
        Dict with 'items', 'count' and 'pagination' metadata.
    """
    per_page = min(per_page or DEFAULT_PAGE_SIZE, max_per_page)
    per_page = max(per_page, 1)
    page = max(page or 1, 1)  # Ensure page >= 1

    term = (query or "").strip()
    base_filter = _text_filter(term) if term else None

    count_stmt = select(func.count(Product.id))
    list_stmt = select(*_PRODUCT_COLUMNS)
    if base_filter is not None:
        count_stmt = count_stmt.where(base_filter)
        list_stmt = list_stmt.where(base_filter)

    total = s.execute(count_stmt).scalar_one()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = s.execute(
        list_stmt
        .order_by(Product.created_at.desc(), Product.name.asc(), Product.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()

    return {
        "items": [_product_row(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }
