# ziproute/routes/planner.py
"""Route planner routes and blueprint configuration."""

import logging
from typing import Callable, Optional

from flask import Blueprint, jsonify, request, session

from ziproute.api.config import get_mapbox_config, get_planner_config
from ziproute.api.errors import ZipRouteError
from ziproute.api.export import build_export_links
from ziproute.api.llm import extract_addresses, seed_fields
from ziproute.api.models import Identity
from ziproute.api.services.planner_service import PlannerSessionManager
from ziproute.api.services.usage_service import (
    UsageMeter,
    create_store,
    is_pro,
    max_stops,
    require_feature,
)
from ziproute.api.traffic import DEFAULT_GRADIENT

logger = logging.getLogger(__name__)

SESSION_KEY = "planner_session_id"


def guest_identity() -> Identity:
    """Identity used when no authentication collaborator is wired in."""
    return Identity()


def _error_response(error: ZipRouteError):
    body = {"error": error.message}
    cooldown = getattr(error, "cooldown_until", None)
    if cooldown:
        body["cooldownUntil"] = cooldown
    return jsonify(body), error.status_code


def create_planner_blueprint(manager: Optional[PlannerSessionManager] = None,
                             usage_meter: Optional[UsageMeter] = None,
                             identity_provider: Callable[[], Identity] = guest_identity,
                             save_route: Optional[Callable] = None,
                             extractor: Callable = extract_addresses):
    """Create and configure the planner blueprint.

    Args:
        manager: Planning sessions, one per browser session
        usage_meter: Daily usage limiter checked before each optimize run
        identity_provider: Returns the current user's Identity
        save_route: Persistence callback taking (name, stops)
        extractor: AI address extraction function

    Returns:
        Configured Flask Blueprint
    """
    manager = manager or PlannerSessionManager()
    usage_meter = usage_meter or UsageMeter(create_store())

    planner_bp = Blueprint("planner", __name__, url_prefix="/planner")

    def current_planner():
        session_id = session.get(SESSION_KEY)
        if not session_id:
            session_id = manager.new_session_id()
            session[SESSION_KEY] = session_id
            session.modified = True
        return manager.get(session_id)

    @planner_bp.errorhandler(ZipRouteError)
    def handle_route_error(error):
        logger.warning(f"{type(error).__name__}: {error.message}")
        return _error_response(error)

    @planner_bp.route("/api/optimize", methods=["POST"])
    def api_optimize():
        """Optimize a start address plus destinations."""
        data = request.get_json(silent=True) or {}
        identity = identity_provider()

        # Gate first so a blocked user never reaches the providers
        usage = usage_meter.check(identity)

        try:
            planner = current_planner()
            result = planner.optimize(
                data.get("start", ""),
                data.get("destinations") or [],
                stabilize_destinations=data.get("stabilize"),
                max_destinations=max_stops(identity.plan),
            )
        except ZipRouteError:
            raise
        except Exception:
            logger.exception("Optimize run failed")
            return jsonify({"error": "Failed to compute route"}), 500

        payload = result.to_dict()
        payload["exportLinks"] = build_export_links(result.stops, planner.config.get("max_per_leg", 11))
        payload["usage"] = {"count": usage["count"], "nudge": usage["nudge"]}
        return jsonify(payload)

    @planner_bp.route("/api/route")
    def api_route():
        """Return the currently displayed route."""
        planner = manager.peek(session.get(SESSION_KEY))
        if planner is None or planner.current_route is None:
            return jsonify({"error": "No route yet"}), 404
        return jsonify(planner.current_route.to_dict())

    @planner_bp.route("/api/route", methods=["DELETE"])
    def api_reset_route():
        planner = manager.peek(session.get(SESSION_KEY))
        if planner is not None:
            planner.reset()
        return jsonify({"status": "ok"})

    @planner_bp.route("/api/export", methods=["POST"])
    def api_export():
        """Maps deep links for the current route."""
        data = request.get_json(silent=True) or {}
        require_feature("export_gmaps", identity_provider().plan)

        planner = manager.peek(session.get(SESSION_KEY))
        if planner is None or planner.current_route is None:
            return jsonify({"error": "Optimize a route before exporting it."}), 404

        try:
            max_per_leg = int(data["max_per_leg"]) if data.get("max_per_leg") else None
            links = planner.export_links(max_per_leg)
        except (TypeError, ValueError) as e:
            return jsonify({"error": str(e)}), 400
        return jsonify({"links": links})

    @planner_bp.route("/api/extract", methods=["POST"])
    def api_extract():
        """Pull addresses out of pasted text to seed the form fields."""
        data = request.get_json(silent=True) or {}
        text = data.get("text")
        if not text or not isinstance(text, str):
            return jsonify({"error": "text is required"}), 400

        addresses = extractor(text, data.get("bookmarks") or [])
        if not addresses:
            return jsonify({"error": "No addresses found in the text."}), 422

        start, destinations = seed_fields(addresses)
        return jsonify({
            "start": start,
            "destinations": destinations,
            "addresses": [a.to_dict() for a in addresses],
        })

    @planner_bp.route("/api/routes", methods=["POST"])
    def api_save_route():
        """Save the current route through the persistence collaborator."""
        require_feature("save_route", identity_provider().plan)
        if save_route is None:
            return jsonify({"error": "Saving routes is not configured"}), 501

        planner = manager.peek(session.get(SESSION_KEY))
        if planner is None:
            return jsonify({"error": "Optimize a route before saving it."}), 404

        data = request.get_json(silent=True) or {}
        saved = planner.save_current(data.get("name", ""), save_route)
        return jsonify({"status": "saved", "route": saved}), 201

    @planner_bp.route("/api/usage")
    def api_usage():
        identity = identity_provider()
        return jsonify({
            "plan": identity.plan,
            "isPro": is_pro(identity.plan),
            "maxStops": max_stops(identity.plan),
            "remainingUses": usage_meter.remaining(identity),
            "cooldownUntil": usage_meter.cooldown_until(identity),
        })

    @planner_bp.route("/api/config")
    def api_config():
        """Return map configuration for the frontend."""
        mapbox = get_mapbox_config()
        if not mapbox.get("token"):
            return jsonify({"error": "No Mapbox token configured"}), 500
        return jsonify({
            "mapbox_token": mapbox["token"],
            "default_gradient": DEFAULT_GRADIENT,
            "max_per_leg": get_planner_config()["max_per_leg"],
        })

    @planner_bp.route("/health")
    def health():
        """Health check endpoint."""
        return jsonify({"status": "ok", "service": "planner"})

    return planner_bp


__all__ = ["create_planner_blueprint", "guest_identity"]
