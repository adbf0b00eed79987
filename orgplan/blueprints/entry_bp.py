"""
Entry page blueprint.

``GET /`` serves the HTML shell of the chart editor. Share-link visitors
arrive with ``?token=``; the identity middleware has already rejected bad
tokens, so anything reaching this view is allowed in and only needs its
effective permission embedded for the front-end.
"""

from flask import Blueprint, g, render_template_string

from orgplan.services.context import build_plan_service

entry_bp = Blueprint("entry", __name__)

ENTRY_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <title>Org Chart Planner</title>
</head>
<body>
  <div id="app"
       data-permission="{{ user.permission }}"
       data-email="{{ user.email or '' }}"
       data-share-link="{{ 'true' if user.via_share_link else 'false' }}"
       data-share-token="{{ share_token or '' }}"></div>
  <noscript>The org chart planner needs JavaScript.</noscript>
</body>
</html>
"""


@entry_bp.route("/", methods=["GET"])
def index():
    result = build_plan_service().current_user()
    if not result["success"]:
        return render_template_string(
            "<h1>Service unavailable</h1><p>{{ error }}</p>", error=result["error"],
        ), 503
    return render_template_string(ENTRY_HTML, user=result["data"], share_token=g.share_token), 200
