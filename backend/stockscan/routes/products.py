# Overview: Flask API routes for the product catalog; unit codes, restock and store-wide code validation.

from flask import Blueprint, jsonify, request

from ..decorators import handles_domain_errors
from ..models import Product
from ..services import catalog_service
from ..services.persistence import get_repository
from ..validation import ValidationError, parse_int, parse_price_cents, parse_str, parse_str_list


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _product_payload(product: Product, repo) -> dict:
    payload = product.to_dict()
    record = repo.get_inventory_record(product.id, product.store_id)
    payload["available_qty"] = record.available_qty if record else 0
    return payload


@products_bp.get("")
@handles_domain_errors("list products")
def list_products_route():
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    repo = get_repository()
    products = repo.list_products(store_id)
    return jsonify({"products": [_product_payload(p, repo) for p in products]}), 200


@products_bp.get("/<int:product_id>")
@handles_domain_errors("get product")
def get_product_route(product_id: int):
    repo = get_repository()
    product = repo.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": _product_payload(product, repo)}), 200


@products_bp.post("")
@handles_domain_errors("create product")
def create_product_route():
    """
    Create a product; its inventory record is seeded with purchase_qty.

    Body: {"store_id", "name", "selling_price_cents", "purchase_price_cents",
           "purchase_qty", "supplier_name", "description", "codes", "tags"}
    """
    data = request.get_json() or {}
    product = catalog_service.create_product(
        parse_int(data.get("store_id"), "store_id", minimum=1),
        parse_str(data.get("name"), "name", max_length=255),
        selling_price_cents=parse_price_cents(data.get("selling_price_cents"), "selling_price_cents", required=False),
        purchase_price_cents=parse_price_cents(data.get("purchase_price_cents"), "purchase_price_cents", required=False),
        purchase_qty=parse_int(data.get("purchase_qty"), "purchase_qty", required=False, minimum=0),
        supplier_name=parse_str(data.get("supplier_name"), "supplier_name", required=False, max_length=255),
        description=parse_str(data.get("description"), "description", required=False),
        codes=parse_str_list(data.get("codes"), "codes") or [],
        tags=parse_str_list(data.get("tags"), "tags"),
    )
    return jsonify({"product": _product_payload(product, get_repository())}), 201


@products_bp.post("/<int:product_id>/codes")
@handles_domain_errors("add unit code")
def add_code_route(product_id: int):
    data = request.get_json() or {}
    product = catalog_service.add_code(
        product_id,
        parse_str(data.get("code"), "code"),
        parse_str(data.get("tag"), "tag", required=False, max_length=64) or "",
    )
    return jsonify({"product": product.to_dict()}), 201


@products_bp.delete("/<int:product_id>/codes/<code>")
@handles_domain_errors("remove unit code")
def remove_code_route(product_id: int, code: str):
    product = catalog_service.remove_code(product_id, code)
    return jsonify({"product": product.to_dict()}), 200


@products_bp.post("/<int:product_id>/restock")
@handles_domain_errors("restock product")
def restock_route(product_id: int):
    data = request.get_json() or {}
    quantity = parse_int(data.get("quantity"), "quantity", minimum=1)
    record = catalog_service.restock(product_id, quantity)
    return jsonify({"inventory": record.to_dict()}), 200


@products_bp.post("/validate-codes")
@handles_domain_errors("validate unit codes")
def validate_codes_route():
    """{"store_id", "codes", "product_id"?} -> {"valid": bool, "conflicts": {code: product_name}}"""
    data = request.get_json() or {}
    codes = parse_str_list(data.get("codes"), "codes", required=True)
    seen = set()
    duplicates = []
    for code in codes:
        key = code.strip().lower()
        if key and key in seen:
            duplicates.append(code.strip())
        seen.add(key)
    if duplicates:
        raise ValidationError(f"Duplicate codes: {', '.join(duplicates)}")

    conflicts = catalog_service.validate_store_codes(
        parse_int(data.get("store_id"), "store_id", minimum=1),
        codes,
        product_id=parse_int(data.get("product_id"), "product_id", required=False),
    )
    return jsonify({"valid": not conflicts, "conflicts": conflicts}), 200
