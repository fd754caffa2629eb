# backend/app/routes/products.py
"""Product lookup routes used when attaching products to a stocktake."""

from flask import Blueprint, request

from app import get_stocktake_service
from app.decorators import returns_result

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/search")
@returns_result()
def search_products():
    """
    Ranked lookup by barcode, SKU or name.

    Query params:
    - q: str - search text; blank returns an empty list
    """
    return get_stocktake_service().search_products(request.args.get("q", ""))


@products_bp.get("")
@returns_result()
def list_products():
    """
    List products with pagination.

    Query params:
    - page: int (optional) - page number (1-indexed), default 1
    - per_page: int (optional) - items per page (default 20, max 100)
    - q: str (optional) - substring filter on name / sku / barcode
    """
    return get_stocktake_service().list_products_paged(
        page=request.args.get("page", type=int),
        page_size=request.args.get("per_page", type=int),
        query=request.args.get("q"),
    )
