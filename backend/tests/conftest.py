"""
Pytest fixtures for packdesk backend tests.

Provides an in-memory database, two tenants with owners, admins, packers
and products, identity/token builders and the test client.
"""

import time

import pytest
from jose import jwt

from packdesk import create_app
from packdesk.extensions import db
from packdesk.models import Tenant, User, Product
from packdesk.services.identity_service import identity_from_claims
from packdesk.services.rate_limit_service import init_rate_limiter

NS = "https://packdesk.app/"
TEST_SECRET = "test-identity-secret"

OWNER_A = "auth0|owner-a"
ADMIN_A = "auth0|admin-a"
PACKER_A = "auth0|packer-a"
OWNER_B = "auth0|owner-b"
ADMIN_B = "auth0|admin-b"


def build_claims(subject, tenant_id=None, roles=None, extra=None) -> dict:
    """Claim set in the identity provider's namespaced format."""
    claims = {"sub": subject}
    if tenant_id is not None:
        claims[f"{NS}tenantId"] = tenant_id
    if roles is not None:
        claims[f"{NS}roles"] = list(roles)
    if extra:
        claims.update(extra)
    return claims


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'IDENTITY_SECRET': TEST_SECRET,
        'IDENTITY_ALGORITHMS': ['HS256'],
        'IDENTITY_AUDIENCE': None,
        'IDENTITY_ISSUER': None,
        'IDENTITY_CLAIM_NAMESPACE': NS,
        'RATE_LIMIT_BACKEND': 'memory',
        'ORDER_CREATE_RATE_LIMIT': 1000,
        'ORDER_CREATE_RATE_WINDOW_SECONDS': 60,
        'LOW_STOCK_THRESHOLD': 5,
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
        db.session.expunge_all()

        # Fresh in-memory counters per test
        init_rate_limiter(app)

        yield db.session

        # Cleanup after test
        db.session.rollback()


# =============================================================================
# TENANTS AND USERS
# =============================================================================


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A, owned by OWNER_A."""
    tenant = Tenant(name="Tenant A - Acme Parcels", slug="acme", owner_subject=OWNER_A, is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B, owned by OWNER_B."""
    tenant = Tenant(name="Tenant B - Beta Goods", slug="beta", owner_subject=OWNER_B, is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


def _staff(db_session, subject, tenant, role):
    user = User(subject=subject, tenant_id=tenant.id, role=role, email=f"{role}@example.com", is_active=True)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user_a(db_session, tenant_a):
    return _staff(db_session, ADMIN_A, tenant_a, "admin")


@pytest.fixture(scope='function')
def packer_user_a(db_session, tenant_a):
    return _staff(db_session, PACKER_A, tenant_a, "packer")


@pytest.fixture(scope='function')
def admin_user_b(db_session, tenant_b):
    return _staff(db_session, ADMIN_B, tenant_b, "admin")


# =============================================================================
# IDENTITIES
# =============================================================================


@pytest.fixture(scope='function')
def make_identity():
    """Build a verified Identity straight from claims (no token round trip)."""
    def _make(subject, tenant_id=None, roles=None, extra=None):
        return identity_from_claims(build_claims(subject, tenant_id, roles, extra), NS)
    return _make


@pytest.fixture(scope='function')
def owner_a(make_identity, tenant_a):
    return make_identity(OWNER_A, tenant_a.id, ["owner"])


@pytest.fixture(scope='function')
def admin_a(make_identity, tenant_a, admin_user_a):
    return make_identity(ADMIN_A, tenant_a.id, ["admin"])


@pytest.fixture(scope='function')
def packer_a(make_identity, tenant_a, packer_user_a):
    return make_identity(PACKER_A, tenant_a.id, ["packer"])


@pytest.fixture(scope='function')
def owner_b(make_identity, tenant_b):
    return make_identity(OWNER_B, tenant_b.id, ["owner"])


# =============================================================================
# PRODUCTS
# =============================================================================


def _product(db_session, tenant, sku, name, stock, cost_cents, price_cents, location):
    product = Product(
        tenant_id=tenant.id,
        sku=sku,
        name=name,
        cost_cents=cost_cents,
        price_cents=price_cents,
        profit_margin_cents=price_cents - cost_cents,
        stock_quantity=stock,
        warehouse_location=location,
        packing_instructions="Wrap in bubble film",
        weight_grams=350,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Product in Tenant A with 10 units on hand."""
    return _product(db_session, tenant_a, "MUG-001", "Ceramic Mug", 10, 400, 1000, "A-01-03")


@pytest.fixture(scope='function')
def product_a2(db_session, tenant_a, product_a):
    """Second Tenant A product with 5 units; always created after product_a."""
    return _product(db_session, tenant_a, "BOX-002", "Gift Box", 5, 150, 500, "A-02-01")


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Product in Tenant B."""
    return _product(db_session, tenant_b, "MUG-001", "Beta Mug", 20, 300, 900, "B-01-01")


@pytest.fixture(scope='function')
def order_payload():
    """Valid create-order body for the given items."""
    def _make(*items, **overrides):
        payload = {
            "customer_name": "Dana Buyer",
            "customer_email": "dana@example.com",
            "recipient_name": "Dana Buyer",
            "recipient_phone": "+1 555 0100",
            "recipient_address": "12 Harbour Road",
            "recipient_city": "Springfield",
            "recipient_province": "ON",
            "recipient_postal_code": "K1A 0B1",
            "recipient_country": "CA",
            "items": [{"product_id": pid, "quantity": qty} for pid, qty in items],
        }
        payload.update(overrides)
        return payload
    return _make


# =============================================================================
# HTTP HELPERS
# =============================================================================


@pytest.fixture(scope='function')
def token_for(app):
    """Mint a signed bearer token the way the identity provider would."""
    def _make(subject, tenant_id=None, roles=None, extra=None, expires_in=3600, secret=TEST_SECRET):
        claims = build_claims(subject, tenant_id, roles, extra)
        claims["exp"] = int(time.time()) + expires_in
        return jwt.encode(claims, secret, algorithm="HS256")
    return _make


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_a_headers(token_for, tenant_a):
    return auth_headers(token_for(OWNER_A, tenant_a.id, ["owner"]))


@pytest.fixture(scope='function')
def admin_a_headers(token_for, tenant_a, admin_user_a):
    return auth_headers(token_for(ADMIN_A, tenant_a.id, ["admin"]))


@pytest.fixture(scope='function')
def packer_a_headers(token_for, tenant_a, packer_user_a):
    return auth_headers(token_for(PACKER_A, tenant_a.id, ["packer"]))
