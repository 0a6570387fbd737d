"""
Pytest fixtures for AgroConsult backend tests.

Provides test database setup, two-tenant fixtures (company A with an assigned
analyst, company B without one), caller identities, and test client helpers.
"""

import json

import pytest
from agroconsult import create_app
from agroconsult.extensions import db
from agroconsult.identity import (
    AdminIdentity,
    AnalystIdentity,
    CompanyIdentity,
    CompanyUserIdentity,
)
from agroconsult.models import (
    Company,
    CompanyUser,
    InventoryItem,
    InventoryStock,
    Subscription,
    SubscriptionPlan,
    User,
)
from agroconsult.services.session_service import issue_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'FRONTEND_URL': 'http://frontend.test',
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
def admin_user(db_session):
    user = User(name="Root Admin", email="admin@test.local", role="admin")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def analyst_user(db_session):
    """Analyst assigned to company A."""
    user = User(name="Alice Analyst", email="alice@test.local", role="analyst")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def other_analyst(db_session):
    """Analyst with no assigned companies."""
    user = User(name="Bob Analyst", email="bob@test.local", role="analyst")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def company_a(db_session, analyst_user):
    company = Company(
        name="Fazenda A",
        company_name="Fazenda A Ltda",
        email="a@farm.test",
        analyst_id=analyst_user.id,
    )
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    company = Company(name="Fazenda B", email="b@farm.test")
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def member_a(db_session, company_a):
    """Company user (sub-user) of company A."""
    member = CompanyUser(company_id=company_a.id, name="Carlos Operator", email="carlos@farm.test")
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def member_b(db_session, company_b):
    member = CompanyUser(company_id=company_b.id, name="Dana Operator", email="dana@farm.test")
    db_session.add(member)
    db_session.commit()
    return member


@pytest.fixture(scope='function')
def stock_a(db_session, company_a, analyst_user):
    stock = InventoryStock(company_id=company_a.id, analyst_id=analyst_user.id, name="Main Barn")
    db_session.add(stock)
    db_session.commit()
    return stock


@pytest.fixture(scope='function')
def stock_b(db_session, company_b):
    stock = InventoryStock(company_id=company_b.id, name="B Warehouse")
    db_session.add(stock)
    db_session.commit()
    return stock


@pytest.fixture(scope='function')
def item_a(db_session, stock_a):
    """Fertilizer in company A with 100 units on hand."""
    item = InventoryItem(
        stock_id=stock_a.id,
        item_name="Fertilizer",
        unit="kg",
        current_quantity=100,
        minimum_quantity=10,
        unit_cost=2.5,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, stock_b):
    item = InventoryItem(stock_id=stock_b.id, item_name="Seed", unit="bag", current_quantity=20)
    db_session.add(item)
    db_session.commit()
    return item


# =============================================================================
# Identities
# =============================================================================


@pytest.fixture(scope='function')
def admin(admin_user):
    return AdminIdentity(id=admin_user.id)


@pytest.fixture(scope='function')
def analyst(analyst_user):
    return AnalystIdentity(id=analyst_user.id)


@pytest.fixture(scope='function')
def stranger_analyst(other_analyst):
    return AnalystIdentity(id=other_analyst.id)


@pytest.fixture(scope='function')
def owner_a(company_a):
    """Company A logged in as itself."""
    return CompanyIdentity(id=company_a.id)


@pytest.fixture(scope='function')
def owner_b(company_b):
    return CompanyIdentity(id=company_b.id)


@pytest.fixture(scope='function')
def requester_a(member_a):
    return CompanyUserIdentity(id=member_a.id, employer_id=member_a.company_id)


@pytest.fixture(scope='function')
def requester_b(member_b):
    return CompanyUserIdentity(id=member_b.id, employer_id=member_b.company_id)


# =============================================================================
# Helpers
# =============================================================================


def subscribe(company, permissions, status="active", name="Plan"):
    """Attach a plan to a company. permissions may be a dict or raw text."""
    raw = permissions if permissions is None or isinstance(permissions, str) else json.dumps(permissions)
    plan = SubscriptionPlan(name=name, permissions=raw)
    db.session.add(plan)
    db.session.flush()
    sub = Subscription(company_id=company.id, plan_id=plan.id, status=status)
    db.session.add(sub)
    db.session.commit()
    return sub


def issue_token(principal_type: str, principal_id: str) -> str:
    """Helper to get a bearer token for a principal."""
    _, token = issue_session(principal_type, principal_id)
    return token


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
