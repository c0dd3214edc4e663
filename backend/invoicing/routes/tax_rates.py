# Overview: Flask API routes for tenant tax rates.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, require_ledger_context
from ..errors import LedgerError
from ..services import tax_rate_service


tax_rates_bp = Blueprint("tax_rates", __name__, url_prefix="/api/tax-rates")


@tax_rates_bp.get("/")
@require_ledger_context
def list_tax_rates_route():
    """Query params: includeInactive=true"""
    try:
        include_inactive = request.args.get("includeInactive", "").lower() == "true"
        rates = tax_rate_service.list_tax_rates(g.ledger_ctx, include_inactive=include_inactive)
        return jsonify({"taxRates": [r.to_dict() for r in rates]}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list tax rates")
        return jsonify({"error": "Failed to list tax rates"}), 500


@tax_rates_bp.post("/")
@require_ledger_context
def create_tax_rate_route():
    """
    Request body: {"name": "GST 18%", "rate": 18, "isDefault": true, "branchId": 3?}
    """
    try:
        rate = tax_rate_service.create_tax_rate(g.ledger_ctx, request.get_json(silent=True) or {})
        return jsonify({"taxRate": rate.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create tax rate")
        return jsonify({"error": "Failed to create tax rate"}), 500


@tax_rates_bp.put("/<int:tax_rate_id>")
@require_ledger_context
def update_tax_rate_route(tax_rate_id: int):
    try:
        rate = tax_rate_service.update_tax_rate(g.ledger_ctx, tax_rate_id, request.get_json(silent=True) or {})
        return jsonify({"taxRate": rate.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update tax rate")
        return jsonify({"error": "Failed to update tax rate"}), 500
