"""
Pytest fixtures for invoicing ledger tests.

Provides test database setup, two tenants with branches, ledger contexts,
and a test client.
"""

from datetime import date

import pytest

from invoicing import create_app
from invoicing.extensions import db
from invoicing.models import Branch, Customer, Tenant
from invoicing.services.tenant_service import LedgerContext

TODAY = date(2026, 10, 19)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RECURRING_SWEEP_ON_ACCESS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def branch_a(db_session, tenant_a):
    branch = Branch(tenant_id=tenant_a.id, name="Branch A1", code="A1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, tenant_a):
    branch = Branch(tenant_id=tenant_a.id, name="Branch A2", code="A2")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_b(db_session, tenant_b):
    branch = Branch(tenant_id=tenant_b.id, name="Branch B1", code="B1")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def ctx_a(tenant_a, branch_a):
    """Tenant A, Branch A1."""
    return LedgerContext(tenant_id=tenant_a.id, branch_id=branch_a.id, user_id=7)


@pytest.fixture(scope='function')
def ctx_a_all(tenant_a, branch_a):
    """Tenant A, every branch."""
    return LedgerContext(tenant_id=tenant_a.id, branch_id=None, user_id=7)


@pytest.fixture(scope='function')
def ctx_b(tenant_b, branch_b):
    """Tenant B, Branch B1."""
    return LedgerContext(tenant_id=tenant_b.id, branch_id=branch_b.id, user_id=9)


@pytest.fixture(scope='function')
def customer_a(db_session, tenant_a, branch_a):
    customer = Customer(tenant_id=tenant_a.id, branch_id=branch_a.id, name="Ravi Traders", email="ravi@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


def _invoice_payload(**overrides) -> dict:
    """Minimal valid create payload (camelCase wire format)."""
    payload = {
        "customerName": "Ravi Traders",
        "items": [{"description": "Consulting", "quantity": 2, "rate": 50}],
        "issueDate": "2026-10-19",
        "dueDate": "2026-11-18",
    }
    payload.update(overrides)
    return payload


def _headers_for(ctx: LedgerContext) -> dict:
    headers = {"X-Tenant-Id": str(ctx.tenant_id)}
    headers["X-Branch-Id"] = "all" if ctx.branch_id is None else str(ctx.branch_id)
    if ctx.user_id is not None:
        headers["X-User-Id"] = str(ctx.user_id)
    return headers


@pytest.fixture
def invoice_payload():
    return _invoice_payload


@pytest.fixture
def headers_for():
    return _headers_for
