# Overview: Flask API routes for invoices; parses input and returns JSON responses.

"""
Invoice API Routes

DESIGN:
- Every route runs under @require_ledger_context (tenant/branch/user headers)
- Services raise typed LedgerErrors; routes map them to JSON + status code
- Listing invoices first runs the recurring sweep when
  RECURRING_SWEEP_ON_ACCESS is enabled
- Dates in query strings are ISO-8601 (YYYY-MM-DD)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, query_date, query_int, require_ledger_context
from ..errors import LedgerError, PartialSweepFailure, ValidationError
from ..services import invoice_service, ledger_service, payment_service, recurring_service


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data


# =============================================================================
# COLLECTION
# =============================================================================

@invoices_bp.get("/")
@require_ledger_context
def list_invoices_route():
    """
    List invoices for the tenant (and branch, unless X-Branch-Id is "all").

    Query params: status, customerId, startDate, endDate, limit
    """
    ctx = g.ledger_ctx
    try:
        sweep_warning = None
        if current_app.config.get("RECURRING_SWEEP_ON_ACCESS"):
            try:
                sweep = recurring_service.run_recurring_sweep(ctx)
            except Exception:
                current_app.logger.exception("Recurring sweep failed before listing invoices")
                sweep_warning = {"error": "Recurring sweep failed", "code": PartialSweepFailure.code}
            else:
                if sweep.failure is not None:
                    sweep_warning = sweep.failure.to_dict()

        invoices = invoice_service.list_invoices(
            ctx,
            status=request.args.get("status") or None,
            customer_id=query_int("customerId"),
            start_date=query_date("startDate"),
            end_date=query_date("endDate"),
            limit=query_int("limit"),
        )
        body = {"invoices": [inv.to_dict() for inv in invoices], "count": len(invoices)}
        if sweep_warning:
            body["warning"] = sweep_warning
        return jsonify(body), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Failed to list invoices"}), 500


@invoices_bp.post("/")
@require_ledger_context
def create_invoice_route():
    """
    Create an invoice in the X-Branch-Id branch.

    Request body (camelCase):
    {
        "customerName": "Acme",
        "items": [{"description": "Design", "quantity": 2, "rate": 50}],
        "discountType": "percentage", "discountValue": 10,
        "taxRate": 18,
        "dueDate": "2026-11-30",
        "status": "draft" | "pending"
    }

    Returns:
        201: Invoice created
        400: Invalid input
        404: Unknown branch or customer
    """
    try:
        invoice = invoice_service.create_invoice(g.ledger_ctx, _json_body())
        return jsonify({"invoice": invoice.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Failed to create invoice"}), 500


@invoices_bp.get("/stats")
@require_ledger_context
def invoice_stats_route():
    """Aggregate totals and per-status counts. Query params: startDate, endDate, customerId."""
    try:
        stats = invoice_service.get_invoice_stats(
            g.ledger_ctx,
            start_date=query_date("startDate"),
            end_date=query_date("endDate"),
            customer_id=query_int("customerId"),
        )
        return jsonify({"stats": stats.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute invoice stats")
        return jsonify({"error": "Failed to compute invoice stats"}), 500


@invoices_bp.get("/overdue")
@require_ledger_context
def overdue_invoices_route():
    try:
        invoices = invoice_service.get_overdue_invoices(g.ledger_ctx)
        return jsonify({"invoices": [inv.to_dict() for inv in invoices], "count": len(invoices)}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list overdue invoices")
        return jsonify({"error": "Failed to list overdue invoices"}), 500


@invoices_bp.get("/recurring")
@require_ledger_context
def recurring_invoices_route():
    try:
        invoices = invoice_service.get_recurring_invoices(g.ledger_ctx)
        return jsonify({"invoices": [inv.to_dict() for inv in invoices], "count": len(invoices)}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list recurring invoices")
        return jsonify({"error": "Failed to list recurring invoices"}), 500


# =============================================================================
# SINGLE INVOICE
# =============================================================================

@invoices_bp.get("/<invoice_id>")
@require_ledger_context
def get_invoice_route(invoice_id: str):
    try:
        invoice = invoice_service.get_invoice(g.ledger_ctx, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Failed to get invoice"}), 500


@invoices_bp.route("/<invoice_id>", methods=["PUT", "PATCH"])
@require_ledger_context
def update_invoice_route(invoice_id: str):
    """
    Patch invoice fields. Money is recomputed when items/discount/tax change.

    Returns:
        200: Updated invoice
        400: Invalid input or disallowed status change
        404: Invoice not found
        409: Concurrent modification
    """
    try:
        invoice = invoice_service.update_invoice(g.ledger_ctx, invoice_id, _json_body())
        return jsonify({"invoice": invoice.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update invoice")
        return jsonify({"error": "Failed to update invoice"}), 500


@invoices_bp.delete("/<invoice_id>")
@require_ledger_context
def delete_invoice_route(invoice_id: str):
    """Delete an invoice together with its payments."""
    try:
        invoice_service.delete_invoice(g.ledger_ctx, invoice_id)
        return jsonify({"deleted": True, "id": invoice_id}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete invoice")
        return jsonify({"error": "Failed to delete invoice"}), 500


@invoices_bp.route("/<invoice_id>/status", methods=["POST", "PATCH"])
@require_ledger_context
def set_invoice_status_route(invoice_id: str):
    """
    Explicit status change.

    Request body: {"status": "pending" | "draft" | "cancelled"}
    """
    try:
        status = _json_body().get("status")
        if not status:
            raise ValidationError("status is required", field="status")
        invoice = invoice_service.set_invoice_status(g.ledger_ctx, invoice_id, status)
        return jsonify({"invoice": invoice.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change invoice status")
        return jsonify({"error": "Failed to change invoice status"}), 500


@invoices_bp.post("/<invoice_id>/duplicate")
@require_ledger_context
def duplicate_invoice_route(invoice_id: str):
    try:
        invoice = invoice_service.duplicate_invoice(g.ledger_ctx, invoice_id)
        return jsonify({"invoice": invoice.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to duplicate invoice")
        return jsonify({"error": "Failed to duplicate invoice"}), 500


@invoices_bp.get("/<invoice_id>/events")
@require_ledger_context
def invoice_events_route(invoice_id: str):
    """Audit trail for an invoice (survives invoice deletion)."""
    try:
        events = ledger_service.get_invoice_events(g.ledger_ctx, invoice_id)
        return jsonify({"events": [ev.to_dict() for ev in events]}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get invoice events")
        return jsonify({"error": "Failed to get invoice events"}), 500


# =============================================================================
# PAYMENTS ON AN INVOICE
# =============================================================================

@invoices_bp.get("/<invoice_id>/payments")
@require_ledger_context
def invoice_payments_route(invoice_id: str):
    try:
        payments = payment_service.get_invoice_payments(g.ledger_ctx, invoice_id)
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get invoice payments")
        return jsonify({"error": "Failed to get invoice payments"}), 500


@invoices_bp.post("/<invoice_id>/payments")
@require_ledger_context
def apply_payment_route(invoice_id: str):
    """
    Record a payment against an invoice.

    Request body:
    {
        "amount": 500,
        "method": "cash" | "card" | "bank_transfer" | "upi" | "cheque" | "online",
        "reference": "UTR-123",   (optional)
        "notes": "...",           (optional)
        "paymentDate": "2026-10-19T10:00:00Z"  (optional, defaults to now)
    }

    Returns:
        201: Payment and the updated invoice
        400: Invalid amount/method, or invoice does not accept payments
        404: Invoice not found
        409: Concurrent modification survived retries
    """
    try:
        data = _json_body()
        payment = payment_service.apply_payment(
            g.ledger_ctx,
            invoice_id,
            amount=data.get("amount"),
            method=data.get("method"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            payment_date=data.get("paymentDate"),
        )
        invoice = invoice_service.get_invoice(g.ledger_ctx, invoice_id)
        return jsonify({"payment": payment.to_dict(), "invoice": invoice.to_dict()}), 201

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to apply payment")
        return jsonify({"error": "Failed to apply payment"}), 500
