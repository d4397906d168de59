"""
Unit tests for the stock ledger: line attachment and stock restoration.
"""

import pytest
from decimal import Decimal
from medsupply.exceptions import ValidationError, InsufficientStockError
from medsupply.models import OrderLine
from medsupply.services import order_service
from medsupply.services.stock_ledger_service import attach_line, restore_for_order, recalculate_total
from medsupply.services.sync_dispatcher import RemoteOutcome


@pytest.fixture
def empty_order(session):
    return order_service.create_order(session, 'Ana', 'Lima')


class TestAttachLine:

    def test_decrements_stock_and_snapshots_price(self, session, empty_order, paracetamol):
        result = attach_line(session, empty_order, paracetamol, 30)

        line = result.data['line']
        assert result.local_ok
        assert result.data['new_stock'] == 70
        assert paracetamol.stock == 70
        assert line.unit_price == Decimal('15.50')
        assert line.line_total == Decimal('465.00')
        assert empty_order.total == Decimal('465.00')

    def test_price_change_does_not_alter_existing_line(self, session, empty_order, paracetamol):
        attach_line(session, empty_order, paracetamol, 2)
        paracetamol.price = Decimal('20.00')
        session.commit()
        attach_line(session, empty_order, paracetamol, 1)

        assert empty_order.total == Decimal('51.00')

    @pytest.mark.parametrize('quantity', [0, -5])
    def test_rejects_non_positive_quantity(self, session, empty_order, paracetamol, quantity):
        with pytest.raises(ValidationError):
            attach_line(session, empty_order, paracetamol, quantity)
        assert paracetamol.stock == 100

    def test_negative_stock_is_applied_with_warning(self, session, empty_order, paracetamol):
        result = attach_line(session, empty_order, paracetamol, 120)

        assert paracetamol.stock == -20
        assert result.local_ok
        assert any('negativo' in w for w in result.warnings)

    def test_negative_stock_refused_when_not_allowed(self, session, empty_order, paracetamol):
        with pytest.raises(InsufficientStockError):
            attach_line(session, empty_order, paracetamol, 120, allow_negative=False)
        assert paracetamol.stock == 100

    def test_without_sync_remote_is_skipped(self, session, empty_order, paracetamol):
        result = attach_line(session, empty_order, paracetamol, 1)
        assert result.remote is RemoteOutcome.SKIPPED

    def test_remote_stock_updated(self, session, sync, remote_catalog, empty_order, paracetamol):
        result = attach_line(session, empty_order, paracetamol, 10, sync=sync)

        assert result.remote is RemoteOutcome.SUCCESS
        (_, doc), = remote_catalog.query('products', nombre='Paracetamol')
        assert doc['stock'] == 90

    def test_remote_missing_product_keeps_local_change(self, session, sync, empty_order, paracetamol):
        result = attach_line(session, empty_order, paracetamol, 10, sync=sync)

        assert result.local_ok
        assert result.remote is RemoteOutcome.FAILED
        assert paracetamol.stock == 90
        assert result.warnings


class TestRestore:

    def test_stock_conservation(self, session, empty_order, paracetamol, jeringas):
        attach_line(session, empty_order, paracetamol, 30)
        attach_line(session, empty_order, jeringas, 120)
        attach_line(session, empty_order, paracetamol, 5)

        restored = restore_for_order(session, empty_order)

        assert paracetamol.stock == 100
        assert jeringas.stock == 500
        assert [r['quantity'] for r in restored] == [30, 120, 5]
        assert restored[0]['old_stock'] == 65

    def test_restore_without_lines_is_noop(self, session, empty_order, paracetamol):
        assert restore_for_order(session, empty_order) == []
        assert paracetamol.stock == 100

    def test_restore_does_not_remove_lines(self, session, empty_order, paracetamol):
        attach_line(session, empty_order, paracetamol, 3)
        restore_for_order(session, empty_order)

        count = session.query(OrderLine).filter(OrderLine.order_id == empty_order.id).count()
        assert count == 1


def test_recalculate_total(session, empty_order, paracetamol, jeringas):
    attach_line(session, empty_order, paracetamol, 2)
    attach_line(session, empty_order, jeringas, 3)

    empty_order.total = Decimal('0')
    assert recalculate_total(empty_order) == Decimal('37.90')
