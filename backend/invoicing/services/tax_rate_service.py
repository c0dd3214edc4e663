# Overview: Tenant tax rates and default-rate resolution for new invoices.

from __future__ import annotations

import logging
from decimal import Decimal

from ..errors import NotFoundError
from ..extensions import db
from ..models import TaxRate
from ..validation import ModelValidationPolicy, enforce_rules_tax_rate, validate_payload
from ..field_maps import FieldMapping
from .tenant_service import LedgerContext, log_cross_tenant_lookup, require_branch_in_tenant

logger = logging.getLogger(__name__)

TAX_RATE_FIELDS = (
    FieldMapping("name", "name"),
    FieldMapping("rate", "rate"),
    FieldMapping("description", "description"),
    FieldMapping("isDefault", "is_default"),
    FieldMapping("isActive", "is_active"),
    FieldMapping("branchId", "branch_id"),
)

TAX_RATE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "rate", "description", "is_default", "is_active", "branch_id"}),
    required_on_create=frozenset({"name", "rate"}),
)


def _clear_other_defaults(tenant_id: int, branch_id: int | None, keep_id: int | None) -> None:
    query = db.session.query(TaxRate).filter(
        TaxRate.tenant_id == tenant_id,
        TaxRate.is_default.is_(True),
    )
    if branch_id is None:
        query = query.filter(TaxRate.branch_id.is_(None))
    else:
        query = query.filter(TaxRate.branch_id == branch_id)
    if keep_id is not None:
        query = query.filter(TaxRate.id != keep_id)
    for rate in query.all():
        rate.is_default = False


def list_tax_rates(ctx: LedgerContext, *, include_inactive: bool = False) -> list[TaxRate]:
    query = db.session.query(TaxRate).filter(TaxRate.tenant_id == ctx.tenant_id)
    if ctx.branch_id is not None:
        query = query.filter((TaxRate.branch_id.is_(None)) | (TaxRate.branch_id == ctx.branch_id))
    if not include_inactive:
        query = query.filter(TaxRate.is_active.is_(True))
    return query.order_by(TaxRate.name, TaxRate.id).all()


def get_tax_rate(ctx: LedgerContext, tax_rate_id: int) -> TaxRate:
    rate = db.session.get(TaxRate, tax_rate_id)
    if rate is None:
        raise NotFoundError("Tax rate")
    if rate.tenant_id != ctx.tenant_id:
        log_cross_tenant_lookup("TaxRate", tax_rate_id, owner_tenant_id=rate.tenant_id, tenant_id=ctx.tenant_id)
        raise NotFoundError("Tax rate")
    return rate


def create_tax_rate(ctx: LedgerContext, payload: dict) -> TaxRate:
    patch = validate_payload(
        model=TaxRate,
        fields=TAX_RATE_FIELDS,
        payload=payload,
        policy=TAX_RATE_POLICY,
        partial=False,
    )
    enforce_rules_tax_rate(patch)

    if patch.get("branch_id") is not None:
        require_branch_in_tenant(patch["branch_id"], ctx.tenant_id)

    rate = TaxRate(tenant_id=ctx.tenant_id, **patch)
    db.session.add(rate)
    db.session.flush()
    if rate.is_default:
        _clear_other_defaults(ctx.tenant_id, rate.branch_id, keep_id=rate.id)
    db.session.commit()

    logger.info("Tax rate %s (%s%%) created for tenant %s", rate.name, rate.rate, ctx.tenant_id)
    return rate


def update_tax_rate(ctx: LedgerContext, tax_rate_id: int, payload: dict) -> TaxRate:
    rate = get_tax_rate(ctx, tax_rate_id)
    patch = validate_payload(
        model=TaxRate,
        fields=TAX_RATE_FIELDS,
        payload=payload,
        policy=TAX_RATE_POLICY,
        partial=True,
    )
    enforce_rules_tax_rate(patch)

    if patch.get("branch_id") is not None:
        require_branch_in_tenant(patch["branch_id"], ctx.tenant_id)

    for key, value in patch.items():
        setattr(rate, key, value)

    db.session.flush()
    if rate.is_default:
        _clear_other_defaults(ctx.tenant_id, rate.branch_id, keep_id=rate.id)
    db.session.commit()
    return rate


def resolve_default_tax_rate(tenant_id: int, branch_id: int | None) -> Decimal:
    """
    Rate applied when an invoice omits taxRate.

    A branch-specific default wins over a tenant-wide one; no default -> 0.
    """
    query = db.session.query(TaxRate).filter(
        TaxRate.tenant_id == tenant_id,
        TaxRate.is_default.is_(True),
        TaxRate.is_active.is_(True),
    )
    if branch_id is not None:
        branch_default = query.filter(TaxRate.branch_id == branch_id).first()
        if branch_default:
            return Decimal(branch_default.rate)
    tenant_default = query.filter(TaxRate.branch_id.is_(None)).first()
    if tenant_default:
        return Decimal(tenant_default.rate)
    return Decimal("0")
