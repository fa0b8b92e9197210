import pytest
from datetime import date
import uuid

from config import TestConfig
from ledger import create_app, database
from ledger.database import get_session
from ledger.models import Company, Product
from ledger.services.invoice_service import create_invoice


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app(TestConfig)
    return app


@pytest.fixture(scope='function', autouse=True)
def tables(app):
    """Fresh schema for every test."""
    database.create_all()
    yield
    get_session().remove()
    database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(tables):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(scope='function')
def company1(session):
    """Create first test company."""
    suffix = str(uuid.uuid4())[:8]
    company = Company(title=f'Test Company 1 {suffix}')
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def company2(session):
    """Create second test company for isolation tests."""
    suffix = str(uuid.uuid4())[:8]
    company = Company(title=f'Test Company 2 {suffix}')
    session.add(company)
    session.commit()
    return company


@pytest.fixture(scope='function')
def product_x(session, company1):
    """Product of company1 with no stock."""
    product = Product(
        company_id=company1.id,
        name='Product X',
        quantity_in_stock=0,
        low_limit_alert=2
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_y(session, company1):
    """Second product of company1 with no stock."""
    product = Product(
        company_id=company1.id,
        name='Product Y',
        quantity_in_stock=0
    )
    session.add(product)
    session.commit()
    return product


@pytest.fixture(scope='function')
def make_invoice(session):
    """Factory: create an invoice awaiting approval through the service."""
    def _make(company, invoice_type, lines, invoice_date=None):
        payload = {
            'invoice_type': invoice_type,
            'date': invoice_date or date(2024, 1, 15),
            'lines': [
                {'product_id': product.id, 'quantity': qty, 'price': price, 'tax': tax}
                for product, qty, price, tax in lines
            ],
        }
        return create_invoice(payload, session, company.id)
    return _make
