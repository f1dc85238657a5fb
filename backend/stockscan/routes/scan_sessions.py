# Overview: Flask API routes for scanning sessions; input channels, draft edits, commit and close.

"""
Scanning session API.

A session lives in memory (app.extensions["scan_sessions"]) between
requests. Every mutating call answers with the full session state so the
client can redraw the draft and show new notices.
"""

from flask import Blueprint, current_app, jsonify, request

from ..decorators import handles_domain_errors
from ..scanning import ScanSource
from ..services.scan_session import KIND_CATALOG, KIND_SALE, KINDS, ScanSession
from ..validation import (
    ValidationError,
    parse_int,
    parse_keystrokes,
    parse_price_cents,
    parse_str,
    parse_str_list,
)


scan_sessions_bp = Blueprint("scan_sessions", __name__, url_prefix="/api/scan-sessions")


def _registry():
    return current_app.extensions["scan_sessions"]


def _session(session_id: str) -> ScanSession:
    return _registry().get(session_id)


def _state(session: ScanSession, status: int = 200, **extra):
    body = {"session": session.to_dict()}
    body.update(extra)
    return jsonify(body), status


def _mode(value) -> ScanSource:
    try:
        return ScanSource.parse(value)
    except ValueError as e:
        raise ValidationError(str(e)) from None


@scan_sessions_bp.post("")
@handles_domain_errors("open scan session")
def open_session_route():
    """
    Open a scanning session.

    Body: {"store_id": 1, "kind": "sale"|"debt"|"catalog", "mode": "manual"|"external"|"camera",
           "product_id": <required for catalog>}
    """
    data = request.get_json() or {}
    store_id = parse_int(data.get("store_id"), "store_id", minimum=1)
    kind = data.get("kind") or KIND_SALE
    if kind not in KINDS:
        raise ValidationError(f"kind must be one of {', '.join(KINDS)}")
    mode = _mode(data.get("mode") or ScanSource.MANUAL.value)
    product_id = parse_int(data.get("product_id"), "product_id", required=kind == KIND_CATALOG)

    cfg = current_app.config
    session = ScanSession(
        store_id,
        kind=kind,
        mode=mode,
        editing_product_id=product_id,
        key_gap_ms=cfg["SCANNER_KEY_GAP_MS"],
        camera_max_attempts=cfg["CAMERA_MAX_ATTEMPTS"],
        camera_backoff_seconds=cfg["CAMERA_RETRY_BACKOFF_SECONDS"],
        low_stock_threshold=cfg["LOW_STOCK_THRESHOLD"],
    )
    _registry().add(session)
    return _state(session, 201)


@scan_sessions_bp.get("/<session_id>")
@handles_domain_errors("get scan session")
def get_session_route(session_id: str):
    return _state(_session(session_id))


@scan_sessions_bp.delete("/<session_id>")
@handles_domain_errors("close scan session")
def close_session_route(session_id: str):
    session = _registry().close(session_id)
    return _state(session)


# ----------------------------------------------------------------------
# Input channels
# ----------------------------------------------------------------------

@scan_sessions_bp.post("/<session_id>/codes")
@handles_domain_errors("submit code")
def submit_code_route(session_id: str):
    """Manual entry: {"code": "..."}"""
    data = request.get_json() or {}
    code = data.get("code")
    if code is not None and not isinstance(code, str):
        raise ValidationError("code must be a string")

    session = _session(session_id)
    if not session.submit_manual(code or ""):
        return jsonify({"error": "Session is not in manual input mode", "mode": session.to_dict()["mode"]}), 409
    return _state(session)


@scan_sessions_bp.post("/<session_id>/keys")
@handles_domain_errors("feed keystrokes")
def feed_keys_route(session_id: str):
    """External scanner: {"keys": [{"key": "A", "at_ms": 0}, ..., {"key": "Enter", "at_ms": 40}]}"""
    data = request.get_json() or {}
    keys = parse_keystrokes(data.get("keys"))
    session = _session(session_id)
    if session.mode != ScanSource.EXTERNAL:
        return jsonify({"error": "Session is not in external scanner mode"}), 409
    emitted = session.feed_keys(keys)
    return _state(session, emitted=emitted)


@scan_sessions_bp.post("/<session_id>/camera")
@handles_domain_errors("deliver camera decodes")
def camera_codes_route(session_id: str):
    """Camera: {"codes": ["..."]} decoded on the client."""
    data = request.get_json() or {}
    codes = parse_str_list(data.get("codes"), "codes", required=True)
    session = _session(session_id)
    if session.mode != ScanSource.CAMERA:
        return jsonify({"error": "Session is not in camera mode"}), 409
    emitted = session.push_camera(codes)
    return _state(session, emitted=emitted)


@scan_sessions_bp.post("/<session_id>/camera/error")
@handles_domain_errors("report camera error")
def camera_error_route(session_id: str):
    """{"kind": "permission_denied"|"not_found"|"other", "message": "..."}"""
    data = request.get_json() or {}
    kind = parse_str(data.get("kind"), "kind")
    message = parse_str(data.get("message"), "message", required=False)
    session = _session(session_id)
    session.report_camera_error(kind, message)
    return _state(session)


@scan_sessions_bp.post("/<session_id>/mode")
@handles_domain_errors("switch input mode")
def switch_mode_route(session_id: str):
    data = request.get_json() or {}
    mode = _mode(data.get("mode"))
    session = _session(session_id)
    session.switch_mode(mode)
    return _state(session)


# ----------------------------------------------------------------------
# Draft edits
# ----------------------------------------------------------------------

@scan_sessions_bp.post("/<session_id>/lines")
@handles_domain_errors("add line")
def add_line_route(session_id: str):
    session = _session(session_id)
    session.add_line()
    return _state(session, 201)


@scan_sessions_bp.delete("/<session_id>/lines/<int:line_index>")
@handles_domain_errors("remove line")
def remove_line_route(session_id: str, line_index: int):
    session = _session(session_id)
    session.remove_line(line_index)
    return _state(session)


@scan_sessions_bp.patch("/<session_id>/lines/<int:line_index>")
@handles_domain_errors("edit line")
def edit_line_route(session_id: str, line_index: int):
    """
    Edit a draft line.

    Body (any subset): {"product_id": 3, "quantity": 2, "clear_quantity_override": true,
                        "unit_price_cents": 15000}
    """
    data = request.get_json() or {}
    session = _session(session_id)

    if "product_id" in data:
        session.bind_product(line_index, parse_int(data["product_id"], "product_id", minimum=1))
    if data.get("clear_quantity_override"):
        session.clear_quantity_override(line_index)
    if "quantity" in data:
        session.set_quantity(line_index, parse_int(data["quantity"], "quantity", minimum=1))
    if "unit_price_cents" in data:
        session.set_unit_price(line_index, parse_price_cents(data["unit_price_cents"], "unit_price_cents"))

    return _state(session)


@scan_sessions_bp.post("/<session_id>/lines/<int:line_index>/slots")
@handles_domain_errors("add code slot")
def add_slot_route(session_id: str, line_index: int):
    session = _session(session_id)
    session.add_code_slot(line_index)
    return _state(session, 201)


@scan_sessions_bp.delete("/<session_id>/lines/<int:line_index>/slots/<int:slot_index>")
@handles_domain_errors("remove code slot")
def remove_slot_route(session_id: str, line_index: int, slot_index: int):
    session = _session(session_id)
    session.remove_code_slot(line_index, slot_index)
    return _state(session)


@scan_sessions_bp.put("/<session_id>/lines/<int:line_index>/slots/<int:slot_index>/tag")
@handles_domain_errors("set tag")
def set_tag_route(session_id: str, line_index: int, slot_index: int):
    data = request.get_json() or {}
    tag = parse_str(data.get("tag"), "tag", required=False, max_length=64) or ""
    session = _session(session_id)
    session.set_tag(line_index, slot_index, tag)
    return _state(session)


@scan_sessions_bp.post("/<session_id>/cursor")
@handles_domain_errors("move cursor")
def move_cursor_route(session_id: str):
    data = request.get_json() or {}
    line_index = parse_int(data.get("line_index"), "line_index", minimum=0)
    slot_index = parse_int(data.get("slot_index"), "slot_index", required=False, minimum=0) or 0
    session = _session(session_id)
    session.move_cursor(line_index, slot_index)
    return _state(session)


# ----------------------------------------------------------------------
# Commit
# ----------------------------------------------------------------------

@scan_sessions_bp.post("/<session_id>/commit")
@handles_domain_errors("commit scan session")
def commit_route(session_id: str):
    """
    Commit the draft.

    sale:    {"payment_method": "Cash"}
    debt:    {"entries": [{"customer_name": ..., "owed_cents": ..., ...}, ...]}
    catalog: {}
    """
    data = request.get_json() or {}
    entries = data.get("entries")
    if entries is not None and (not isinstance(entries, list) or not all(isinstance(e, dict) for e in entries)):
        raise ValidationError("entries must be a list of objects")

    payment_method = parse_str(data.get("payment_method"), "payment_method", required=False, max_length=32)

    session = _session(session_id)
    result = session.commit(payment_method=payment_method, entries=entries)
    return _state(session, 201, result=result)


@scan_sessions_bp.post("/<session_id>/reset")
@handles_domain_errors("reset scan session")
def reset_route(session_id: str):
    session = _session(session_id)
    session.new_transaction()
    return _state(session)
