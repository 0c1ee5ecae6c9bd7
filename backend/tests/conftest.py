"""
Pytest fixtures for SalonERP backend tests.

Provides an in-memory database, a test client and a small salon:
two branches, a stylist assigned to both, a client, a service and a product.
"""

import pytest

from salonerp import create_app
from salonerp.extensions import db
from salonerp.models import (
    Location,
    StaffMember,
    StaffLocation,
    Client,
    ServiceCategory,
    Service,
    Product,
    ProductLocation,
)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ALLOW_NEGATIVE_STOCK': False,
        'STAFF_EMAIL_DOMAIN': 'salon.test',
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

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def location_a(db_session):
    location = Location(name="Downtown Salon", kind="branch", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def location_b(db_session):
    location = Location(name="Uptown Salon", kind="branch", is_active=True)
    db_session.add(location)
    db_session.commit()
    return location


@pytest.fixture(scope='function')
def stylist(db_session, location_a, location_b):
    """Stylist working at both branches."""
    staff = StaffMember(name="Jane Smith", employee_number="EMP-007", job_role="stylist")
    staff.location_links.append(StaffLocation(location_id=location_a.id, is_active=True))
    staff.location_links.append(StaffLocation(location_id=location_b.id, is_active=True))
    db_session.add(staff)
    db_session.commit()
    return staff


@pytest.fixture(scope='function')
def salon_client(db_session):
    record = Client(name="Alex Doe", email="alex@example.com", phone="555-0100")
    db_session.add(record)
    db_session.commit()
    return record


@pytest.fixture(scope='function')
def haircut(db_session):
    category = ServiceCategory(name="Hair")
    db_session.add(category)
    db_session.flush()
    service = Service(category_id=category.id, name="Haircut", duration=60, price_cents=4500)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def shampoo(db_session):
    product = Product(sku="SH-001", name="Shampoo", price_cents=1250, cost_cents=600)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def set_stock(db_session):
    """Seed a stock row directly: set_stock(product, location, 10)."""
    def _set(product, location, stock):
        row = db_session.query(ProductLocation).filter_by(
            product_id=product.id,
            location_id=location.id,
        ).first()
        if row is None:
            row = ProductLocation(product_id=product.id, location_id=location.id, stock=stock)
            db_session.add(row)
        else:
            row.stock = stock
        db_session.commit()
        return row
    return _set


@pytest.fixture(scope='function')
def stock_of(db_session):
    """Read current stock straight from the database."""
    def _get(product, location):
        value = db_session.query(ProductLocation.stock).filter_by(
            product_id=product.id,
            location_id=location.id,
        ).scalar()
        return value
    return _get
