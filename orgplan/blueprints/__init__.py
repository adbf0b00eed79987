"""
Shared helpers for the planner blueprints.

Service results are ``{"success": bool, "data"|"error": ...}`` dicts; the
views return them unchanged as JSON and pick the status code from
``error_type``.
"""

from flask import jsonify

ERROR_STATUS = {
    "validation": 422,
    "authorization": 403,
    "not_found": 404,
    "conflict": 409,
    "token": 403,
    "store": 503,
}


def result_response(result: dict, success_status: int = 200):
    """Turn a service result into a ``(response, status)`` pair."""
    if result.get("success"):
        return jsonify(result), success_status
    return jsonify(result), ERROR_STATUS.get(result.get("error_type"), 500)
