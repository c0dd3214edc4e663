# Overview: Request decorators and shared error responses for API routes.

from __future__ import annotations

from datetime import date
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request

from .errors import LedgerError, ValidationError
from .services.tenant_service import ALL_BRANCHES, build_context
from .time_utils import parse_iso_date


def ledger_error_response(exc: LedgerError):
    """Typed ledger failure -> (json, status)."""
    return jsonify(exc.to_dict()), exc.status_code


def _header_int(name: str) -> Optional[int]:
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name)


def require_ledger_context(f):
    """
    Build the LedgerContext for the request.

    Headers:
    - X-Tenant-Id (required)
    - X-Branch-Id: integer branch id, "all" or absent for every branch
    - X-User-Id (optional, recorded on ledger events)

    Sets g.ledger_ctx. Returns 400 for a missing/malformed tenant header and
    404 when the tenant or branch is unknown (or foreign).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            tenant_id = _header_int("X-Tenant-Id")
            if tenant_id is None:
                return jsonify({"error": "X-Tenant-Id header is required", "code": ValidationError.code}), 400

            raw_branch = (request.headers.get("X-Branch-Id") or "").strip()
            if raw_branch.lower() == ALL_BRANCHES or not raw_branch:
                branch_id = None
            else:
                branch_id = _header_int("X-Branch-Id")

            g.ledger_ctx = build_context(
                tenant_id=tenant_id,
                branch_id=branch_id,
                user_id=_header_int("X-User-Id"),
            )
        except LedgerError as e:
            current_app.logger.warning("Rejected ledger context for %s: %s", request.path, e.message)
            return ledger_error_response(e)

        return f(*args, **kwargs)

    return decorated_function


def query_date(name: str) -> Optional[date]:
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date", field=name)


def query_int(name: str) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer", field=name)
