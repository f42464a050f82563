# Overview: Flask API routes for sales analytics and the dashboard summary.

from flask import Blueprint, request, jsonify, current_app

from ..errors import MedistoreError
from ..services import analytics_service
from ..validation import normalize_email


analytics_bp = Blueprint("analytics", __name__, url_prefix="/api")


@analytics_bp.post("/analytics/sales")
def sales_analytics_route():
    """
    Sales summary for a period.

    Body: store_email, period (today | yesterday | thisWeek | thisMonth |
    thisYear | custom), start_date/end_date for custom.
    """
    try:
        data = request.get_json(silent=True) or {}
        result = analytics_service.get_sales_analytics(
            normalize_email(data.get("store_email")),
            data.get("period") or "today",
            data.get("start_date"),
            data.get("end_date"),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute sales analytics")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.post("/analytics/top-selling")
def top_selling_route():
    try:
        data = request.get_json(silent=True) or {}
        items = analytics_service.get_top_selling(
            normalize_email(data.get("store_email")),
            data.get("period") or "thisMonth",
            data.get("limit", 10),
            start=data.get("start_date"),
            end=data.get("end_date"),
        )
        return jsonify({"items": items}), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to rank top-selling medicines")
        return jsonify({"error": "Internal server error"}), 500


@analytics_bp.post("/dashboard")
def dashboard_route():
    try:
        data = request.get_json(silent=True) or {}
        stats = analytics_service.dashboard_stats(normalize_email(data.get("store_email")))
        return jsonify(stats), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build dashboard stats")
        return jsonify({"error": "Internal server error"}), 500
