# Overview: Flask API routes for payments; listing, amendment and reversal.

"""
Payment API Routes

Payments are recorded through POST /api/invoices/<id>/payments; this
blueprint covers everything after that.

DESIGN:
- DELETE reverses a payment: the invoice balance and status are rolled back
  in the same transaction
- PUT with a new amount moves the invoice balance by the difference
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import ledger_error_response, query_date, query_int, require_ledger_context
from ..errors import LedgerError, ValidationError
from ..services import payment_service


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.get("/")
@require_ledger_context
def list_payments_route():
    """Query params: invoiceId, customerId, method, startDate, endDate, limit"""
    try:
        payments = payment_service.list_payments(
            g.ledger_ctx,
            invoice_id=request.args.get("invoiceId") or None,
            customer_id=query_int("customerId"),
            method=request.args.get("method") or None,
            start_date=query_date("startDate"),
            end_date=query_date("endDate"),
            limit=query_int("limit"),
        )
        return jsonify({"payments": [p.to_dict() for p in payments], "count": len(payments)}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Failed to list payments"}), 500


@payments_bp.get("/<payment_id>")
@require_ledger_context
def get_payment_route(payment_id: str):
    try:
        payment = payment_service.get_payment(g.ledger_ctx, payment_id)
        return jsonify({"payment": payment.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get payment")
        return jsonify({"error": "Failed to get payment"}), 500


@payments_bp.put("/<payment_id>")
@require_ledger_context
def update_payment_route(payment_id: str):
    """
    Amend a payment.

    Request body (any of): amount, method, reference, notes, paymentDate
    """
    try:
        data = request.get_json(silent=True)
        if data is not None and not isinstance(data, dict):
            raise ValidationError("Invalid JSON payload")
        payment = payment_service.update_payment(g.ledger_ctx, payment_id, data or {})
        return jsonify({"payment": payment.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update payment")
        return jsonify({"error": "Failed to update payment"}), 500


@payments_bp.delete("/<payment_id>")
@require_ledger_context
def reverse_payment_route(payment_id: str):
    """
    Reverse (delete) a payment.

    Returns:
        200: The invoice after the reversal
        404: Payment not found
    """
    try:
        invoice = payment_service.reverse_payment(g.ledger_ctx, payment_id)
        return jsonify({"reversed": True, "id": payment_id, "invoice": invoice.to_dict()}), 200

    except LedgerError as e:
        return ledger_error_response(e)
    except Exception:
        current_app.logger.exception("Failed to reverse payment")
        return jsonify({"error": "Failed to reverse payment"}), 500
