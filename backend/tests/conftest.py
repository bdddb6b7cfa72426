"""
Pytest fixtures for kasir backend tests.

Provides the app on an in-memory database, a per-test clean session, the
Flask test client and tenant header helpers.
"""

import pytest

from kasir import create_app
from kasir.decorators import COMPANY_HEADER, USER_HEADER
from kasir.extensions import db


COMPANY_A = "ACME"
COMPANY_B = "BETA"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'KASIR_RETRY_BACKOFF_SECONDS': 0,
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


def tenant_headers(company_id: str = COMPANY_A, user_id: str = "cashier-1") -> dict:
    """Helper to create the headers the auth gateway forwards."""
    return {COMPANY_HEADER: company_id, USER_HEADER: user_id}
