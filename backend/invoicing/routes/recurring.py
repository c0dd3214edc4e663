# Overview: Flask API route that triggers the recurring invoice sweep.

from flask import Blueprint, current_app, g, jsonify

from ..decorators import ledger_error_response, query_date, require_ledger_context
from ..errors import LedgerError
from ..services import recurring_service


recurring_bp = Blueprint("recurring", __name__, url_prefix="/api/recurring")


@recurring_bp.post("/sweep")
@require_ledger_context
def run_sweep_route():
    """
    Generate due recurring invoices for the whole tenant.

    Query params: today (ISO date, optional; defaults to the server's UTC date)

    Returns 200 even when some templates failed; failures are listed under
    "errors" and summarized in "warning".
    """
    try:
        today = query_date("today")
        result = recurring_service.run_recurring_sweep(g.ledger_ctx, today=today)
        return jsonify(result.to_dict(today)), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Recurring sweep failed")
        return jsonify({"error": "Recurring sweep failed"}), 500
