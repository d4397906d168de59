import pytest
from decimal import Decimal

from medsupply import create_app
from medsupply.database import get_session, create_schema, drop_schema
from medsupply.services import catalog_service, order_service
from medsupply.services.remote_store import InMemoryDocumentStore
from medsupply.services.sync_service import ProductRecord


@pytest.fixture(scope='function')
def remote_store():
    """Fresh in-process remote document store."""
    return InMemoryDocumentStore()


@pytest.fixture(scope='function')
def app(remote_store):
    """Application on an in-memory SQLite database with inline remote sync."""
    app = create_app('config.TestConfig', remote_store=remote_store)
    with app.app_context():
        create_schema()
        yield app
        get_session().remove()
        drop_schema()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def sync(app):
    """Sync context (adapter, dispatcher, coordinator, reconciliation)."""
    return app.extensions['medsupply']


@pytest.fixture(scope='function')
def paracetamol(session):
    """Paracetamol: price 15.50, stock 100, min stock 20."""
    return catalog_service.create_product(
        session,
        name='Paracetamol',
        category='Medicamentos',
        price=Decimal('15.50'),
        stock=100,
        min_stock=20
    )


@pytest.fixture(scope='function')
def jeringas(session):
    return catalog_service.create_product(
        session,
        name='Jeringas 5ml',
        category='Insumos',
        price=Decimal('2.30'),
        stock=500,
        min_stock=100
    )


@pytest.fixture(scope='function')
def remote_catalog(sync, paracetamol, jeringas):
    """Mirror the local fixture products in the remote store."""
    for product in (paracetamol, jeringas):
        sync.adapter.upsert_product_record(ProductRecord.from_model(product))
    return sync.store


@pytest.fixture(scope='function')
def pending_order(session, paracetamol):
    """Order for Ana (Lima) with 30 x Paracetamol, placed without remote sync."""
    result = order_service.place_order(session, 'Ana', 'Lima', [(paracetamol, 30)])
    return result.data['order']
