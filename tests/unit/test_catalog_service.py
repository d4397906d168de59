"""
Unit tests for the catalog store service.
"""

import pytest
from decimal import Decimal
from medsupply.events import low_stock_detected, products_changed
from medsupply.exceptions import NotFoundError
from medsupply.services import catalog_service, order_service


class TestCreateAndList:

    def test_create_product_defaults(self, session):
        product = catalog_service.create_product(session, 'Alcohol en Gel', 'Insumos', '12.5', 30, 20)

        assert product.id is not None
        assert product.price == Decimal('12.50')
        assert product.active is True
        assert product.description == 'Producto médico'

    def test_list_active_excludes_inactive(self, session, paracetamol, jeringas):
        catalog_service.deactivate_product(session, jeringas)

        names = [p.name for p in catalog_service.list_active_products(session)]
        assert names == ['Paracetamol']

    def test_get_product_not_found(self, session):
        with pytest.raises(NotFoundError):
            catalog_service.get_product(session, 999)

    def test_get_active_product_by_name_is_case_sensitive(self, session, paracetamol):
        assert catalog_service.get_active_product_by_name(session, 'Paracetamol') is not None
        assert catalog_service.get_active_product_by_name(session, 'paracetamol') is None


class TestLowStock:
    """Active products with stock <= min_stock."""

    def test_boundary_is_included(self, session):
        at_min = catalog_service.create_product(session, 'En el mínimo', 'Insumos', 1, 20, 20)
        below = catalog_service.create_product(session, 'Debajo', 'Insumos', 1, 5, 25)
        catalog_service.create_product(session, 'Encima', 'Insumos', 1, 21, 20)
        inactive = catalog_service.create_product(session, 'Inactivo', 'Insumos', 1, 0, 10)
        catalog_service.deactivate_product(session, inactive)

        low = {p.id for p in catalog_service.list_low_stock_products(session)}
        assert low == {at_min.id, below.id}

    def test_update_stock_emits_low_stock_signal(self, session, paracetamol):
        received = []

        def receiver(sender, **kwargs):
            received.append(kwargs)

        with low_stock_detected.connected_to(receiver):
            catalog_service.update_stock(session, paracetamol, 20)

        assert received == [{
            'product_id': paracetamol.id,
            'name': 'Paracetamol',
            'stock': 20,
            'min_stock': 20,
        }]

    def test_update_stock_accepts_negative(self, session, paracetamol):
        catalog_service.update_stock(session, paracetamol, -3)
        session.expire_all()
        assert catalog_service.get_product(session, paracetamol.id).stock == -3


class TestSearch:

    def test_search_name_case_insensitive(self, session, paracetamol, jeringas):
        results = catalog_service.search_products(session, 'PARACET')
        assert [p.name for p in results] == ['Paracetamol']

    def test_search_matches_category(self, session, paracetamol, jeringas):
        results = catalog_service.search_products(session, 'insum')
        assert [p.name for p in results] == ['Jeringas 5ml']

    def test_search_escapes_wildcards(self, session, paracetamol):
        assert catalog_service.search_products(session, '%') == []

    def test_empty_search_lists_all(self, session, paracetamol, jeringas):
        assert len(catalog_service.search_products(session, '  ')) == 2

    def test_list_by_category(self, session, paracetamol, jeringas):
        results = catalog_service.list_products_by_category(session, 'Medicamentos')
        assert [p.name for p in results] == ['Paracetamol']


class TestDeactivate:

    def test_deactivate_unreferenced_product(self, session, jeringas):
        changed = []

        def receiver(sender, **kwargs):
            changed.append(kwargs['reason'])

        with products_changed.connected_to(receiver):
            assert catalog_service.deactivate_product(session, jeringas) is True

        assert jeringas.active is False
        assert changed == ['deactivated']

    def test_deactivate_refused_with_order_lines(self, session, paracetamol):
        order_service.place_order(session, 'Ana', 'Lima', [(paracetamol, 1)])

        assert catalog_service.deactivate_product(session, paracetamol) is False
        assert paracetamol.active is True


class TestSeedCatalog:

    def test_seed_creates_initial_products_once(self, session):
        created = catalog_service.seed_catalog(session)

        assert created == len(catalog_service.SEED_PRODUCTS)
        assert catalog_service.seed_catalog(session) == 0
        assert len(catalog_service.list_active_products(session)) == created

    def test_seed_skipped_when_catalog_not_empty(self, session, paracetamol):
        assert catalog_service.seed_catalog(session) == 0
