from flask import Blueprint, jsonify, request

from ..decorators import handles_domain_errors
from ..services.device_service import lookup_device
from ..validation import parse_int


devices_bp = Blueprint("devices", __name__, url_prefix="/api/devices")


@devices_bp.get("/<code>")
@handles_domain_errors("look up device")
def lookup_device_route(code: str):
    """Where is this unit code: owning product, tag, sold (and in which sale), debts."""
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    result = lookup_device(store_id, code)
    status = 200 if result["found"] else 404
    return jsonify({"device": result}), status
