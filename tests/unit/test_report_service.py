"""
Unit tests for reports, cache invalidation and formatters.
"""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch
from medsupply.models import OrderStatus
from medsupply.services import catalog_service, order_service, report_service
from medsupply.services.cache_service import get_cache
from medsupply.utils.formatters import money_pe, datetime_pe


def place(session, product, client, destination, qty):
    return order_service.place_order(session, client, destination, [(product, qty)]).data['order']


class TestReports:

    def test_statistics(self, session, paracetamol, jeringas):
        catalog_service.update_stock(session, jeringas, 100)
        place(session, paracetamol, 'Ana', 'Lima', 1)

        assert report_service.get_statistics(session) == {
            'active_products': 2,
            'orders': 1,
            'low_stock_products': 1,
        }

    def test_inventory(self, session, paracetamol, jeringas):
        report = report_service.get_inventory_report(session)

        assert report['products'] == 2
        assert report['categories'] == ['Insumos', 'Medicamentos']
        assert report['stock_value'] == Decimal('2700.00')
        assert report['low_stock'] == []

    def test_orders_by_status(self, session, paracetamol):
        place(session, paracetamol, 'Ana', 'Lima', 2)
        shipped = place(session, paracetamol, 'Luis', 'Piura', 4)
        order_service.set_status(session, shipped, OrderStatus.SHIPPED)

        report = report_service.get_orders_report(session)

        assert report['orders'] == 2
        assert report['by_status']['Pendiente'] == 1
        assert report['by_status']['Enviado'] == 1
        assert report['by_status']['Cancelado'] == 0
        assert report['sales_total'] == Decimal('93.00')

    def test_destinations_sorted_by_amount(self, session, paracetamol):
        place(session, paracetamol, 'Ana', 'Lima', 1)
        place(session, paracetamol, 'Luis', 'Cusco', 3)
        place(session, paracetamol, 'Eva', 'Lima', 1)

        rows = report_service.get_destination_report(session)['destinations']

        assert rows == [
            {'destination': 'Cusco', 'orders': 1, 'total': Decimal('46.50')},
            {'destination': 'Lima', 'orders': 2, 'total': Decimal('31.00')},
        ]
        assert len(report_service.get_destination_report(session, limit=1)['destinations']) == 1

    def test_empty_reports(self, session):
        assert report_service.get_orders_report(session)['sales_total'] == Decimal('0.00')
        assert report_service.get_destination_report(session) == {'destinations': []}


class TestCacheInvalidation:

    def test_disabled_cache_degrades_to_direct_calls(self, app):
        cache = get_cache()
        assert cache.is_available() is False
        assert cache.get('reports', 'statistics') is None
        assert cache.memoize('reports', 'x', lambda: {'n': 1}) == {'n': 1}

    def test_changes_invalidate_reports(self, session):
        with patch.object(get_cache(), 'invalidate_module', return_value=0) as invalidate:
            catalog_service.create_product(session, 'Guantes', 'Insumos', 1, 10, 5)

        invalidate.assert_called_with('reports')

    def test_memoized_report_is_served_from_cache(self, session, paracetamol):
        cache = get_cache()
        with patch.object(cache, 'get', return_value={'active_products': 99}) as cached:
            assert report_service.get_statistics(session) == {'active_products': 99}
        cached.assert_called_once_with('reports', 'statistics')


def test_money_pe():
    assert money_pe(Decimal('465')) == 'S/. 465.00'
    assert money_pe(1234.567) == 'S/. 1,234.57'
    assert money_pe(None) == '-'
    assert money_pe('abc') == '-'


def test_datetime_pe():
    assert datetime_pe(datetime(2024, 5, 17, 14, 3, 9)) == '17/05/2024 14:03'
    assert datetime_pe(date(2024, 5, 17)) == '17/05/2024'
    assert datetime_pe(None) == '-'
