# Overview: Flask API routes for committed sales; list, inspect, edit and delete lines with stock compensation.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import handles_domain_errors
from ..extensions import db
from ..models import SaleGroup, SaleLine
from ..services import stock_ledger
from ..validation import ValidationError, parse_int, parse_price_cents, parse_str, parse_str_list


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
@handles_domain_errors("list sales")
def list_sales_route():
    """Committed sale lines of a store, newest first. Query: store_id, limit (default 100)."""
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    limit = parse_int(request.args.get("limit"), "limit", required=False, minimum=1) or 100

    lines = (
        db.session.query(SaleLine)
        .filter(SaleLine.store_id == store_id)
        .order_by(SaleLine.sold_at.desc(), SaleLine.id.desc())
        .limit(min(limit, 1000))
        .all()
    )
    return jsonify({"lines": [line.to_dict() for line in lines]}), 200


@sales_bp.get("/<int:group_id>")
@handles_domain_errors("get sale")
def get_sale_route(group_id: int):
    """Sale group with its lines."""
    group = db.session.get(SaleGroup, group_id)
    if not group:
        return jsonify({"error": "Sale not found"}), 404

    lines = db.session.query(SaleLine).filter_by(sale_group_id=group_id).order_by(SaleLine.id).all()
    return jsonify({
        "sale": group.to_dict(),
        "lines": [line.to_dict() for line in lines],
    }), 200


@sales_bp.patch("/lines/<int:line_id>")
@handles_domain_errors("edit sale line")
def edit_sale_line_route(line_id: int):
    """
    Edit a committed line; inventory moves by the quantity delta only.

    Body (any subset): {"quantity": 2, "codes": [...], "tags": [...],
                        "unit_price_cents": 15000, "payment_method": "Card"}
    """
    data = request.get_json() or {}
    if not data:
        raise ValidationError("Nothing to update")

    codes = parse_str_list(data.get("codes"), "codes")
    tags = parse_str_list(data.get("tags"), "tags")
    if tags is not None and codes is None:
        raise ValidationError("tags can only be changed together with codes")

    before = db.session.get(SaleLine, line_id)
    old_codes = before.to_dict()["codes"] if before else []

    line, delta = stock_ledger.edit_sale_line(
        line_id,
        quantity=parse_int(data.get("quantity"), "quantity", required=False, minimum=1),
        codes=codes,
        tags=tags,
        unit_price_cents=parse_price_cents(data.get("unit_price_cents"), "unit_price_cents", required=False),
        payment_method=parse_str(data.get("payment_method"), "payment_method", required=False, max_length=32),
    )

    if codes is not None:
        kept = {c.strip().lower() for c in codes if c and c.strip()}
        released = [c for c in old_codes if c.lower() not in kept]
        if released:
            current_app.extensions["scan_sessions"].forget_sold(line.store_id, released)

    return jsonify({"line": line.to_dict(), "quantity_delta": delta}), 200


@sales_bp.delete("/lines/<int:line_id>")
@handles_domain_errors("delete sale line")
def delete_sale_line_route(line_id: int):
    """Delete a committed line and restore its quantity to available stock."""
    snapshot = stock_ledger.delete_sale_line(line_id)
    current_app.extensions["scan_sessions"].forget_sold(snapshot["store_id"], snapshot["codes"])
    return jsonify({"deleted": snapshot}), 200
