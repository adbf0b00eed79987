"""
Plan Blueprint — chart data for the front-end.

Endpoints:
    GET    /api/v1/plans                    — every plan plus the caller
    GET    /api/v1/plans/<id>               — one plan
    PUT    /api/v1/plans/<id>               — create or replace a plan
    DELETE /api/v1/plans/<id>               — delete a plan (not "current")
    PATCH  /api/v1/plans/<id>/nodes         — partial node updates
    GET    /api/v1/plans/<id>/export        — CSV text + filename as JSON
    GET    /api/v1/plans/<id>/export.csv    — CSV download
"""

import io

from flask import Blueprint, request, send_file

from orgplan.blueprints import result_response
from orgplan.services.context import build_plan_service

plan_bp = Blueprint("plans", __name__, url_prefix="/api/v1/plans")


@plan_bp.route("", methods=["GET"])
def list_plans():
    return result_response(build_plan_service().list_all_plans())


@plan_bp.route("/<plan_id>", methods=["GET"])
def get_plan(plan_id):
    return result_response(build_plan_service().get_plan(plan_id))


@plan_bp.route("/<plan_id>", methods=["PUT"])
def save_plan(plan_id):
    """Replace the plan's metadata and full node list."""
    data = request.get_json(silent=True)
    return result_response(build_plan_service().save_plan(plan_id, data))


@plan_bp.route("/<plan_id>", methods=["DELETE"])
def delete_plan(plan_id):
    return result_response(build_plan_service().delete_plan(plan_id))


@plan_bp.route("/<plan_id>/nodes", methods=["PATCH"])
def batch_update_nodes(plan_id):
    """Apply ``{"updates": [{"id": ..., <field>: <value>}, ...]}``."""
    data = request.get_json(silent=True) or {}
    return result_response(build_plan_service().batch_update_nodes(plan_id, data.get("updates")))


@plan_bp.route("/<plan_id>/export", methods=["GET"])
def export_plan(plan_id):
    return result_response(build_plan_service().export_csv(plan_id))


@plan_bp.route("/<plan_id>/export.csv", methods=["GET"])
def download_plan_csv(plan_id):
    result = build_plan_service().export_csv(plan_id)
    if not result["success"]:
        return result_response(result)
    export = result["data"]
    return send_file(
        io.BytesIO(export["csv"].encode("utf-8")),
        download_name=export["filename"],
        as_attachment=True,
        mimetype="text/csv",
    )
