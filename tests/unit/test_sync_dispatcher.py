"""
Unit tests for the sync dispatcher and the two-part operation result.
"""

import threading
import time
import pytest
from datetime import datetime
from decimal import Decimal
from prometheus_client import REGISTRY
from medsupply.exceptions import NetworkError
from medsupply.models import OrderStatus
from medsupply.services.remote_store import InMemoryDocumentStore
from medsupply.services.sync_dispatcher import SyncDispatcher, OperationResult, RemoteOutcome
from medsupply.services.sync_service import (
    RemoteSyncAdapter, OrderRecord, OrderLineRecord, order_lane, product_lane
)


def sync_count(operation, outcome):
    return REGISTRY.get_sample_value(
        'medsupply_sync_operations_total',
        {'operation': operation, 'outcome': outcome}
    ) or 0


def failing():
    raise NetworkError('sin conexión')


@pytest.fixture
def threaded():
    dispatcher = SyncDispatcher(max_workers=2)
    yield dispatcher
    dispatcher.shutdown()


class TestOperationResult:

    def test_without_futures_remote_is_skipped(self):
        result = OperationResult(message='ok')
        assert result.remote is RemoteOutcome.SKIPPED
        assert result.to_dict() == {
            'local': 'success',
            'remote': 'skipped',
            'message': 'ok',
            'remote_messages': [],
            'warnings': [],
        }

    def test_failure_becomes_warning(self):
        dispatcher = SyncDispatcher(inline=True)
        result = OperationResult()
        result.track(dispatcher.submit('test_fail', failing))
        result.track(dispatcher.submit('test_ok', lambda: 'hecho'))

        assert result.remote is RemoteOutcome.FAILED
        assert result.remote_messages == ['hecho']
        assert result.warnings == ['Sincronización remota fallida: sin conexión']

    def test_wait_resolves_once(self):
        dispatcher = SyncDispatcher(inline=True)
        result = OperationResult(futures=[dispatcher.submit('test_ok', lambda: 'hecho')])

        assert result.wait() is RemoteOutcome.SUCCESS
        assert result.remote_messages == ['hecho']


class TestInlineDispatcher:

    def test_errors_never_reach_caller(self):
        future = SyncDispatcher(inline=True).submit('test_inline_fail', failing)

        assert future.done()
        assert isinstance(future.exception(), NetworkError)

    def test_on_done_callback(self):
        seen = []
        SyncDispatcher(inline=True).submit('test_inline_ok', lambda x: x * 2, 21, on_done=lambda f: seen.append(f.result()))
        assert seen == [42]

    def test_metrics_per_outcome(self):
        ok_before = sync_count('test_metrics', 'success')
        failed_before = sync_count('test_metrics', 'failed')
        dispatcher = SyncDispatcher(inline=True)

        dispatcher.submit('test_metrics', lambda: None)
        dispatcher.submit('test_metrics', failing)

        assert sync_count('test_metrics', 'success') == ok_before + 1
        assert sync_count('test_metrics', 'failed') == failed_before + 1


class TestThreadedDispatcher:

    def test_pending_until_remote_completes(self, threaded):
        release = threading.Event()
        result = OperationResult()
        result.track(threaded.submit('test_slow', lambda: release.wait(5) and 'listo'))

        assert result.remote is RemoteOutcome.PENDING
        assert result.to_dict()['remote'] == 'pending'

        release.set()
        assert result.wait(timeout=5) is RemoteOutcome.SUCCESS
        assert result.remote_messages == ['listo']

    def test_failure_in_worker(self, threaded):
        result = OperationResult(futures=[threaded.submit('test_worker_fail', failing)])
        assert result.wait(timeout=5) is RemoteOutcome.FAILED
        assert len(result.warnings) == 1


class SlowFirstWriteStore(InMemoryDocumentStore):
    """Remote store whose first write of the given kind takes longer than the rest."""

    def __init__(self, slow_method, delay=0.3):
        super().__init__()
        self.slow_method = slow_method
        self.delay = delay
        self._slowed = False

    def _maybe_sleep(self, method):
        if method == self.slow_method and not self._slowed:
            self._slowed = True
            time.sleep(self.delay)

    def set(self, collection, doc_id, data, merge=True):
        self._maybe_sleep('set')
        super().set(collection, doc_id, data, merge)

    def update(self, collection, doc_id, fields):
        self._maybe_sleep('update')
        super().update(collection, doc_id, fields)


class TestKeyedLanes:

    @pytest.fixture
    def dispatcher(self):
        dispatcher = SyncDispatcher(max_workers=4)
        yield dispatcher
        dispatcher.shutdown()

    def test_stock_updates_keep_submission_order(self, dispatcher):
        """Two orders in a row: 100 -> 70 -> 40, the remote ends at 40."""
        store = SlowFirstWriteStore('update')
        adapter = RemoteSyncAdapter(store)
        adapter.upsert_product('Paracetamol', 'Medicamentos', Decimal('15.50'), 100, 20)

        first = dispatcher.submit('update_product_stock', adapter.update_product_stock,
                                  'Paracetamol', 70, key=product_lane('Paracetamol'))
        second = dispatcher.submit('update_product_stock', adapter.update_product_stock,
                                   'Paracetamol', 40, key=product_lane('Paracetamol'))

        assert second.result(timeout=5)
        assert first.done() and first.exception() is None
        (_, doc), = store.query('products', nombre='Paracetamol')
        assert doc['stock'] == 40

    def test_status_update_waits_for_upsert(self, dispatcher):
        """Shipped then Delivered: the status update lands on the upserted record."""
        store = SlowFirstWriteStore('set')
        adapter = RemoteSyncAdapter(store)
        shipped = OrderRecord(
            client='Ana', destination='Lima', created_at=datetime(2024, 5, 17, 14, 3, 9),
            total=Decimal('465.00'), status=OrderStatus.SHIPPED,
            lines=(OrderLineRecord(product_id=1, name='Paracetamol', quantity=30, unit_price=Decimal('15.50')),)
        )

        upsert = dispatcher.submit('upsert_order', adapter.upsert_order, shipped,
                                   key=order_lane(shipped))
        status = dispatcher.submit('update_order_status', adapter.update_order_status,
                                   shipped, OrderStatus.DELIVERED, key=order_lane(shipped))

        assert status.exception(timeout=5) is None
        assert upsert.exception() is None
        assert store.get('orders', adapter.key_for(shipped))['estado'] == 'Entregado'

    def test_failed_call_does_not_block_its_lane(self, dispatcher):
        first = dispatcher.submit('test_lane_fail', failing, key='lane')
        second = dispatcher.submit('test_lane_ok', lambda: 'hecho', key='lane')

        assert second.result(timeout=5) == 'hecho'
        assert isinstance(first.exception(), NetworkError)

    def test_other_lanes_are_not_blocked(self, dispatcher):
        release = threading.Event()
        blocked = dispatcher.submit('test_lane_slow', lambda: release.wait(5), key='a')
        other = dispatcher.submit('test_lane_ok', lambda: 'hecho', key='b')

        assert other.result(timeout=5) == 'hecho'
        assert not blocked.done()
        release.set()
        assert blocked.result(timeout=5) is True
