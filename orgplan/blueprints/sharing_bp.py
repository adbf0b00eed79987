"""
Sharing Blueprint — permission entries and view-only share links.

Endpoints:
    GET    /api/v1/sharing/me               — caller identity + permission
    GET    /api/v1/sharing/users            — list permission entries
    POST   /api/v1/sharing/users            — add an entry {email, permission}
    PUT    /api/v1/sharing/users/<email>    — change an entry {permission}
    DELETE /api/v1/sharing/users/<email>    — remove an entry
    POST   /api/v1/sharing/links            — issue a 24h view link
"""

from flask import Blueprint, request

from orgplan.blueprints import result_response
from orgplan.services.context import build_plan_service

sharing_bp = Blueprint("sharing", __name__, url_prefix="/api/v1/sharing")


@sharing_bp.route("/me", methods=["GET"])
def me():
    return result_response(build_plan_service().current_user())


@sharing_bp.route("/users", methods=["GET"])
def list_users():
    return result_response(build_plan_service().list_shared_users())


@sharing_bp.route("/users", methods=["POST"])
def add_user():
    data = request.get_json(silent=True) or {}
    result = build_plan_service().add_shared_user(data.get("email"), data.get("permission", "view"))
    return result_response(result, success_status=201)


@sharing_bp.route("/users/<email>", methods=["PUT"])
def update_user(email):
    data = request.get_json(silent=True) or {}
    return result_response(build_plan_service().update_user_permission(email, data.get("permission")))


@sharing_bp.route("/users/<email>", methods=["DELETE"])
def remove_user(email):
    return result_response(build_plan_service().remove_shared_user(email))


@sharing_bp.route("/links", methods=["POST"])
def create_link():
    return result_response(build_plan_service().generate_share_link(), success_status=201)
