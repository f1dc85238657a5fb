# Overview: Flask API routes for inventory counters and low-stock alerts.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import handles_domain_errors
from ..services.catalog_service import low_stock
from ..services.persistence import get_repository
from ..validation import parse_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@handles_domain_errors("list inventory")
def list_inventory_route():
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    records = get_repository().list_inventory(store_id)
    return jsonify({"inventory": [r.to_dict() for r in records]}), 200


@inventory_bp.get("/low-stock")
@handles_domain_errors("list low stock")
def low_stock_route():
    """Records below the threshold (query param or LOW_STOCK_THRESHOLD)."""
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    threshold = parse_int(request.args.get("threshold"), "threshold", required=False, minimum=1)
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    records = low_stock(store_id, threshold)
    return jsonify({"threshold": threshold, "inventory": [r.to_dict() for r in records]}), 200
