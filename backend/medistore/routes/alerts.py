# Overview: Flask API routes for expiry and low-stock alerts.

from flask import Blueprint, request, jsonify, current_app

from ..errors import MedistoreError
from ..services import stock_service
from ..validation import normalize_email


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.post("/expiring")
def expiring_route():
    try:
        data = request.get_json(silent=True) or {}
        result = stock_service.expiring_stock(
            normalize_email(data.get("store_email")),
            data.get("days", 90),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list expiring stock")
        return jsonify({"error": "Internal server error"}), 500


@alerts_bp.post("/low-stock")
def low_stock_route():
    try:
        data = request.get_json(silent=True) or {}
        result = stock_service.low_stock(
            normalize_email(data.get("store_email")),
            data.get("threshold", 10),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500
