"""
Tenant Context and Scoping Helpers

Every ledger call receives an explicit LedgerContext instead of reading
ambient session state. Branch ids coming from a caller are validated against
the tenant; a foreign branch looks exactly like a missing one to the caller,
and the difference is only written to the log.

USAGE:
    ctx = build_context(tenant_id=1, branch_id=3, user_id=7)
    invoice = invoice_service.create_invoice(ctx, payload)

    # Owner dashboards: all branches
    ctx = build_context(tenant_id=1, branch_id=ALL_BRANCHES)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Union

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Branch, Tenant

logger = logging.getLogger(__name__)

ALL_BRANCHES = "all"


@dataclass(frozen=True)
class LedgerContext:
    """Request-scoped caller identity. branch_id None means all branches."""
    tenant_id: int
    branch_id: Optional[int] = None
    user_id: Optional[int] = None

    def require_branch(self) -> int:
        if self.branch_id is None:
            raise ValidationError("A specific branch is required for this operation", field="branchId")
        return self.branch_id


def require_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant or not tenant.is_active:
        logger.warning("Tenant %s missing or inactive", tenant_id)
        raise NotFoundError("Tenant")
    return tenant


def require_branch_in_tenant(branch_id: int, tenant_id: int) -> Branch:
    """
    Validate that a branch belongs to the tenant.

    Raises NotFoundError for both unknown and foreign branches.
    """
    branch = db.session.get(Branch, branch_id)

    if not branch:
        logger.warning("Branch %s not found (tenant %s)", branch_id, tenant_id)
        raise NotFoundError("Branch")

    if branch.tenant_id != tenant_id:
        log_cross_tenant_lookup("Branch", branch_id, owner_tenant_id=branch.tenant_id, tenant_id=tenant_id)
        raise NotFoundError("Branch")

    return branch


def build_context(
    tenant_id: int,
    branch_id: Union[int, str, None] = None,
    user_id: Optional[int] = None,
) -> LedgerContext:
    """Validate ids and build a LedgerContext. "all" / None -> every branch."""
    require_tenant(tenant_id)
    if branch_id == ALL_BRANCHES or branch_id is None:
        return LedgerContext(tenant_id=tenant_id, branch_id=None, user_id=user_id)
    require_branch_in_tenant(int(branch_id), tenant_id)
    return LedgerContext(tenant_id=tenant_id, branch_id=int(branch_id), user_id=user_id)


def log_cross_tenant_lookup(resource: str, resource_id, *, owner_tenant_id: int, tenant_id: int) -> None:
    logger.warning(
        "Cross-tenant lookup denied: %s %s belongs to tenant %s, requested by tenant %s",
        resource,
        resource_id,
        owner_tenant_id,
        tenant_id,
    )


def scoped_query(model, ctx: LedgerContext, *, honor_branch: bool = True):
    """Query for a tenant-owned model, narrowed to ctx.branch_id when set."""
    query = db.session.query(model).filter(model.tenant_id == ctx.tenant_id)
    if honor_branch and ctx.branch_id is not None:
        query = query.filter(model.branch_id == ctx.branch_id)
    return query
