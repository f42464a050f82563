# Overview: Flask API routes for store profile reads and the medicine catalog.

from flask import Blueprint, request, jsonify, current_app

from ..errors import MedistoreError
from ..services import catalog_service, store_service
from ..validation import normalize_email


stores_bp = Blueprint("stores", __name__, url_prefix="/api")


@stores_bp.post("/store")
def store_data_route():
    """Store profile, its stock and its billing history (newest first)."""
    try:
        data = request.get_json(silent=True) or {}
        result = store_service.get_store_data(
            normalize_email(data.get("store_email")),
            data.get("history_limit"),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load store data")
        return jsonify({"error": "Internal server error"}), 500


@stores_bp.post("/medicines")
def list_medicines_route():
    try:
        data = request.get_json(silent=True) or {}
        items = catalog_service.list_medicines(data.get("med_type"))
        return jsonify({"items": items, "count": len(items)}), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list medicines")
        return jsonify({"error": "Internal server error"}), 500
