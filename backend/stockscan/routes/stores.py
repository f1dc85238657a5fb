from flask import Blueprint, jsonify, request

from ..decorators import handles_domain_errors
from ..extensions import db
from ..models import Store
from ..services.persistence import unit_of_work
from ..validation import ValidationError, parse_str


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("")
def list_stores_route():
    stores = db.session.query(Store).order_by(Store.id).all()
    return jsonify({"stores": [s.to_dict() for s in stores]}), 200


@stores_bp.post("")
@handles_domain_errors("create store")
def create_store_route():
    data = request.get_json() or {}
    name = parse_str(data.get("name"), "name", max_length=255)
    code = parse_str(data.get("code"), "code", required=False, max_length=32) or None
    if code and db.session.query(Store).filter_by(code=code).first():
        raise ValidationError(f"Store code {code!r} already exists")

    with unit_of_work("create_store"):
        store = Store(name=name, code=code)
        db.session.add(store)
    return jsonify({"store": store.to_dict()}), 201
