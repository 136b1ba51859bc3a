# Overview: Flask API routes for guest service requests; parses input and returns JSON responses.

from flask import Blueprint, current_app, jsonify, request, g

from ..decorators import require_auth, require_permission
from ..errors import EastgateError
from ..permissions import (
    ASSIGN_SERVICE_REQUEST,
    CREATE_SERVICE_REQUEST,
    UPDATE_SERVICE_REQUEST,
    VIEW_SERVICE_REQUESTS,
)
from ..services import service_request_service
from ..services.branch_service import ensure_branch_access, resolve_branch_id
from ..validation import coerce_int


service_requests_bp = Blueprint("service_requests", __name__, url_prefix="/api/service-requests")


@service_requests_bp.post("")
@require_auth
@require_permission(CREATE_SERVICE_REQUEST)
def create_service_request_route():
    data = request.get_json(silent=True) or {}
    try:
        branch_id = resolve_branch_id(data.get("branch_id"))
        req = service_request_service.create_service_request(
            branch_id=branch_id,
            guest_name=data.get("guest_name"),
            room_number=data.get("room_number"),
            request_type=data.get("type"),
            description=data.get("description"),
            priority=data.get("priority"),
            created_by_user_id=g.current_user.id,
        )
        return jsonify({"request": req.to_dict()}), 201
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create service request")
        return jsonify({"error": "Internal server error"}), 500


@service_requests_bp.get("")
@require_auth
@require_permission(VIEW_SERVICE_REQUESTS)
def list_service_requests_route():
    args = request.args
    try:
        branch_id = resolve_branch_id(args.get("branch_id"), required=False)
        assigned = args.get("assigned_to_user_id")
        requests_ = service_request_service.list_service_requests(
            branch_id,
            status=args.get("status"),
            assigned_to_user_id=coerce_int(assigned, "assigned_to_user_id") if assigned else None,
            open_only=args.get("open_only", "").lower() in ("1", "true"),
        )
        return jsonify({"requests": [r.to_dict() for r in requests_], "count": len(requests_)}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status


@service_requests_bp.post("/<int:request_id>/status")
@require_auth
@require_permission(UPDATE_SERVICE_REQUEST)
def advance_service_request_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(service_request_service.get_service_request(request_id).branch_id)
        req, changed = service_request_service.advance_service_request_status(
            request_id,
            data.get("status"),
            actor_user_id=g.current_user.id,
            expected_status=data.get("expected_status"),
        )
        return jsonify({"request": req.to_dict(), "changed": changed}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update service request")
        return jsonify({"error": "Internal server error"}), 500


@service_requests_bp.post("/<int:request_id>/assign")
@require_auth
@require_permission(ASSIGN_SERVICE_REQUEST)
def assign_service_request_route(request_id: int):
    data = request.get_json(silent=True) or {}
    try:
        ensure_branch_access(service_request_service.get_service_request(request_id).branch_id)
        req = service_request_service.assign_service_request(
            request_id,
            coerce_int(data.get("user_id"), "user_id"),
            actor_user_id=g.current_user.id,
        )
        return jsonify({"request": req.to_dict()}), 200
    except EastgateError as e:
        return jsonify(e.to_dict()), e.http_status
