# Overview: Flask API routes for customer spend metrics.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import ledger_error_response, require_ledger_context
from ..errors import LedgerError, NotFoundError
from ..services import customer_metrics_service


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("/<int:customer_id>/recalculate-metrics")
@require_ledger_context
def recalculate_metrics_route(customer_id: int):
    """Recompute totalSpent / totalOrders / averageOrderValue from invoices."""
    try:
        customer = customer_metrics_service.recompute_customer_metrics(g.ledger_ctx.tenant_id, customer_id)
        if customer is None:
            raise NotFoundError("Customer")
        return jsonify({"customer": customer.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to recalculate customer metrics")
        return jsonify({"error": "Failed to recalculate customer metrics"}), 500
