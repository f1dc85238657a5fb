# Overview: Flask API routes for unpaid-supplies (debt) records.

from flask import Blueprint, jsonify, request

from ..decorators import handles_domain_errors
from ..services import debt_service
from ..validation import ValidationError, parse_int, parse_str, parse_str_list


debts_bp = Blueprint("debts", __name__, url_prefix="/api/debts")


@debts_bp.get("")
@handles_domain_errors("list debts")
def list_debts_route():
    """Query: store_id, outstanding=1 to only list debts with a remaining balance."""
    store_id = parse_int(request.args.get("store_id"), "store_id", minimum=1)
    outstanding = request.args.get("outstanding", "").lower() in {"1", "true", "yes"}
    debts = debt_service.list_debts(store_id, outstanding_only=outstanding)
    return jsonify({
        "debts": [d.to_dict() for d in debts],
        "total_remaining_cents": sum(d.remaining_balance_cents for d in debts),
    }), 200


@debts_bp.delete("/<int:debt_id>")
@handles_domain_errors("delete debt")
def delete_debt_route(debt_id: int):
    debt_service.delete_debt(debt_id)
    return jsonify({"deleted": debt_id}), 200


@debts_bp.patch("/<int:debt_id>")
@handles_domain_errors("update debt")
def update_debt_route(debt_id: int):
    """
    Edit a committed debt in place.

    Body (any subset): {"customer_name": "...", "phone_number": "...", "supplier": "...",
                        "owed_cents": 1000, "deposited_cents": 400, "date": "2026-10-01",
                        "codes": [...], "tags": [...]}
    """
    data = request.get_json() or {}
    if not isinstance(data, dict) or not data:
        raise ValidationError("Nothing to update")

    fields = dict(data)
    if "codes" in fields:
        fields["codes"] = parse_str_list(data.get("codes"), "codes", required=True)
    if "tags" in fields:
        fields["tags"] = parse_str_list(data.get("tags"), "tags")
    for name in ("customer_name", "phone_number", "supplier"):
        if name in fields:
            fields[name] = parse_str(data.get(name), name, required=False)

    debt = debt_service.update_debt(debt_id, fields)
    return jsonify({"debt": debt.to_dict()}), 200
