# Overview: Flask API route for point-of-sale billing; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import MedistoreError
from ..services import billing_service
from ..validation import normalize_email, parse_customer, parse_line_items


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")


@billing_bp.post("")
def create_billing_route():
    """
    Create a bill and deduct stock atomically.

    Body: store_email, customer_name, customer_age, customer_phone,
    line_items (list or JSON string), optional total_amount.
    """
    try:
        data = request.get_json(silent=True) or {}
        store_email = normalize_email(data.get("store_email"))
        customer = parse_customer(data.get("customer_name"), data.get("customer_age"), data.get("customer_phone"))
        line_items = parse_line_items(data.get("line_items"))

        record = billing_service.create_billing(
            store_email,
            customer,
            line_items,
            data.get("total_amount"),
        )
        return jsonify({"billing": billing_service.billing_summary(record)}), 201

    except MedistoreError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create billing")
        return jsonify({"error": "Internal server error"}), 500
