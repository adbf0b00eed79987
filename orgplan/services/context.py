"""
Service wiring.

Long-lived collaborators (settings, tabular store, cache, access sync queue)
are created once by ``init_planner`` and kept in
``app.extensions["orgplan"]``. Request-scoped services are assembled from
them plus the identity resolved for the current request.

Usage (inside a view):
    svc = build_plan_service()
    result = svc.list_all_plans()
"""

import logging

from flask import current_app, g, request

from orgplan.services.access_sync import (
    AccessSyncQueue,
    HttpAccessGrantor,
    LoggingAccessGrantor,
)
from orgplan.services.cache_service import CacheService, build_backend
from orgplan.services.permission_store import PermissionStore
from orgplan.services.plan_repository import PlanRepository
from orgplan.services.plan_service import PlanService
from orgplan.services.property_store import PropertyStore
from orgplan.services.share_tokens import ShareTokenIssuer
from orgplan.store import build_store

logger = logging.getLogger(__name__)

EXTENSION_KEY = "orgplan"


def init_planner(app, settings) -> dict:
    """Create the shared collaborators and register them on *app*."""
    if settings.access_sync_url:
        grantor = HttpAccessGrantor(settings.access_sync_url)
    else:
        grantor = LoggingAccessGrantor()

    ext = {
        "settings": settings,
        "store": build_store(settings),
        "cache": CacheService(build_backend(app.config.get("REDIS_URL")), settings.plan_cache_ttl),
        "access_sync": AccessSyncQueue(
            grantor,
            max_attempts=settings.access_sync_max_attempts,
            backoff=settings.access_sync_backoff,
            eager=settings.access_sync_eager,
        ),
    }
    app.extensions[EXTENSION_KEY] = ext
    logger.info(
        "Planner initialised: store=%s cache=%s access_sync=%s",
        settings.store_backend,
        ext["cache"].health_check().get("backend"),
        type(grantor).__name__,
    )
    return ext


def planner_extension(app=None) -> dict:
    return (app or current_app).extensions[EXTENSION_KEY]


def build_plan_repository(app=None) -> PlanRepository:
    ext = planner_extension(app)
    settings = ext["settings"]
    return PlanRepository(
        ext["store"],
        ext["cache"],
        cache_ttl=settings.plan_cache_ttl,
        strict_tree=settings.strict_tree_validation,
    )


def build_permission_store(caller_email=None, app=None) -> PermissionStore:
    ext = planner_extension(app)
    return PermissionStore(
        ext["store"],
        ext["access_sync"],
        caller_email=caller_email,
        bootstrap_owner=ext["settings"].bootstrap_owner_email,
    )


def build_token_issuer(app=None) -> ShareTokenIssuer:
    settings = planner_extension(app)["settings"]
    return ShareTokenIssuer(PropertyStore(), base_url=settings.public_base_url or request.url_root)


def build_plan_service() -> PlanService:
    """Assemble a ``PlanService`` for the current request.

    Share-link visitors are treated as anonymous: their own identity (if any)
    is ignored and they act with the token's view permission.
    """
    via_share_link = bool(getattr(g, "share_permission", None))
    caller = None if via_share_link else getattr(g, "user_email", None)
    return PlanService(
        build_plan_repository(),
        build_permission_store(caller),
        build_token_issuer(),
        via_share_link=via_share_link,
    )
