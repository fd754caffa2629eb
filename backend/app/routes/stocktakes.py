# backend/app/routes/stocktakes.py
"""
Stocktake ("kiểm kho") API routes.
"""
from flask import Blueprint, request

from app import get_stocktake_service
from app.decorators import returns_result
from app.validation import ValidationError


stocktakes_bp = Blueprint("stocktakes", __name__, url_prefix="/api/stocktakes")


def _json_object() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@stocktakes_bp.route("", methods=["POST"])
@returns_result(201)
def create_stocktake():
    """
    Create a new draft stocktake session.

    Request body (all optional):
    {
        "branch_name": str,
        "staff_name": str,
        "notes": str,
        "tags": str
    }

    Returns:
        201: {"success": true, "data": {"session_id", "session_code"}}
    """
    data = _json_object()
    return get_stocktake_service().create_session(
        branch_name=data.get("branch_name"),
        staff_name=data.get("staff_name"),
        notes=data.get("notes"),
        tags=data.get("tags"),
    )


@stocktakes_bp.route("", methods=["GET"])
@returns_result()
def list_stocktakes():
    """
    List stocktake sessions, newest first.

    Query parameters:
        status: draft, in_progress, completed, balanced
        limit: Max results (default: all)
    """
    return get_stocktake_service().list_sessions(
        status=request.args.get("status"),
        limit=request.args.get("limit"),
    )


@stocktakes_bp.route("/<int:session_id>", methods=["GET"])
@returns_result()
def get_stocktake(session_id: int):
    """
    Session with its items (joined with product display fields) and a summary.

    Returns:
        200: {"success": true, "data": {"session", "items", "summary"}}
        404: Session not found
    """
    return get_stocktake_service().get_session_detail(session_id)


@stocktakes_bp.route("/<int:session_id>", methods=["PATCH"])
@returns_result()
def update_stocktake(session_id: int):
    """
    Partial update of status / notes / tags.

    Returns:
        200: Updated
        400: Unknown field, invalid status or empty body
        404: Session not found
        409: Session already balanced, or status "balanced" requested
    """
    data = _json_object()
    return get_stocktake_service().update_session(session_id, data)


@stocktakes_bp.route("/<int:session_id>/items", methods=["POST"])
@returns_result(201)
def attach_product(session_id: int):
    """
    Attach a product; its current stock becomes the item's system quantity.

    Request body:
    {
        "product_id": int
    }
    """
    data = _json_object()
    return get_stocktake_service().attach_product(session_id, data.get("product_id"))


@stocktakes_bp.route("/<int:session_id>/items/<int:product_id>", methods=["PUT"])
@returns_result()
def record_count(session_id: int, product_id: int):
    """
    Record the counted quantity for a product on the session.

    Request body:
    {
        "actual_quantity": int,
        "reason": str (optional),
        "notes": str (optional)
    }
    """
    data = _json_object()
    return get_stocktake_service().record_count(
        session_id,
        product_id,
        data.get("actual_quantity"),
        reason=data.get("reason"),
        notes=data.get("notes"),
    )


@stocktakes_bp.route("/<int:session_id>/items/<int:product_id>", methods=["DELETE"])
@returns_result()
def detach_product(session_id: int, product_id: int):
    """Remove a product from a session that is not yet balanced."""
    return get_stocktake_service().detach_product(session_id, product_id)


@stocktakes_bp.route("/<int:session_id>/balance", methods=["POST"])
@returns_result()
def balance_stocktake(session_id: int):
    """
    Write counted quantities to product stock and close the session.

    Request body:
    {
        "balanced_by": str
    }

    Returns:
        200: {"success": true, "message": ..., "data": {"updated_count", "session_code"}}
        400: Missing balanced_by
        404: Session not found
        409: Already balanced or nothing counted
    """
    data = _json_object()
    return get_stocktake_service().balance(session_id, data.get("balanced_by"))
