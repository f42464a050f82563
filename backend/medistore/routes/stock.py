# Overview: Flask API routes for stock management; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import MedistoreError
from ..services import stock_service
from ..validation import normalize_email


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/add")
def add_stock_route():
    """
    Add medicine to stock.

    Body: store_email, med_data {med_id, name?, price_per_tab?, ...}, quantity,
    batch_number?, expiry_date?, purchase_price?
    """
    try:
        data = request.get_json(silent=True) or {}
        medicine_data = data.get("med_data") or {"med_id": data.get("med_id")}
        result = stock_service.add_to_stock(
            normalize_email(data.get("store_email")),
            medicine_data,
            data.get("quantity"),
            batch_number=data.get("batch_number"),
            expiry_date=data.get("expiry_date"),
            purchase_price=data.get("purchase_price"),
        )
        return jsonify(result), 201 if result["action"] == "added" else 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/remove")
def remove_stock_route():
    try:
        data = request.get_json(silent=True) or {}
        result = stock_service.remove_from_stock(
            normalize_email(data.get("store_email")),
            data.get("med_id"),
            data.get("quantity"),
            batch_number=data.get("batch_number"),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/update")
def update_stock_route():
    """Body: store_email, med_id, batch_number?, updates {...}."""
    try:
        data = request.get_json(silent=True) or {}
        result = stock_service.update_stock_item(
            normalize_email(data.get("store_email")),
            data.get("med_id"),
            data.get("updates") or {},
            batch_number=data.get("batch_number"),
        )
        return jsonify(result), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update stock item")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/list")
def list_stock_route():
    try:
        data = request.get_json(silent=True) or {}
        items = stock_service.list_stock(normalize_email(data.get("store_email")))
        return jsonify({"items": items, "count": len(items)}), 200

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock")
        return jsonify({"error": "Internal server error"}), 500
