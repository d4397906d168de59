"""
Reconciliation job: batch sync between the local stores and the remote one.

- push_catalog: upsert every local active product remotely (fan-out/fan-in)
- pull_new_products: create local products for remote-only names
- reconcile_orders: re-upsert Shipped and Delivered orders
"""
import logging
import random
from concurrent.futures import wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

from medsupply.exceptions import MedSupplyError
from medsupply.models import Order, OrderStatus, Product
from medsupply.services import catalog_service
from medsupply.services.sync_dispatcher import SyncDispatcher
from medsupply.services.sync_service import (
    RemoteSyncAdapter, ProductRecord, RemoteProduct, OrderRecord, order_lane, product_lane
)

logger = logging.getLogger(__name__)

RECONCILED_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)


@dataclass
class SyncSummary:
    """Aggregate of one fan-out batch."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'attempted': self.attempted,
            'succeeded': self.succeeded,
            'failed': self.failed,
            'errors': list(self.errors),
        }


@dataclass
class FullSyncReport:
    pushed: SyncSummary
    pulled: int
    orders: SyncSummary

    def to_dict(self) -> dict:
        return {
            'products_pushed': self.pushed.to_dict(),
            'products_pulled': self.pulled,
            'orders': self.orders.to_dict(),
        }


class ReconciliationJob:
    """Bidirectional batch sync between local and remote stores."""

    def __init__(
        self,
        adapter: RemoteSyncAdapter,
        dispatcher: SyncDispatcher,
        rng: Optional[random.Random] = None,
        stock_range: Tuple[int, int] = (10, 100),
        min_stock_range: Tuple[int, int] = (5, 25)
    ):
        self.adapter = adapter
        self.dispatcher = dispatcher
        self.rng = rng or random.Random()
        self.stock_range = stock_range
        self.min_stock_range = min_stock_range

    def _fan_out(self, operation: str, calls: Iterable[Tuple[str, str, Callable, tuple]]) -> SyncSummary:
        """Submit every (label, lane, fn, args) call, wait for all of them, then count outcomes."""
        pending = [
            (label, self.dispatcher.submit(operation, fn, *args, key=lane))
            for label, lane, fn, args in calls
        ]
        summary = SyncSummary(attempted=len(pending))
        if not pending:
            return summary

        wait([future for _, future in pending])
        for label, future in pending:
            exc = future.exception()
            if exc is None:
                summary.succeeded += 1
            else:
                summary.failed += 1
                summary.errors.append(f'{label}: {exc}')
        return summary

    def push_catalog(self, products: Sequence[Product]) -> SyncSummary:
        """
        Upsert every active product in the remote catalog.

        Items are independent: one failure never stops the others.
        """
        records = [ProductRecord.from_model(p) for p in products if p.active]
        summary = self._fan_out('upsert_product', (
            (record.name, product_lane(record.name), self.adapter.upsert_product_record, (record,))
            for record in records
        ))
        logger.info(
            f"[RECON] Catalog push: {summary.succeeded}/{summary.attempted} ok, {summary.failed} failed"
        )
        return summary

    def _placeholder_stock(self) -> Tuple[int, int]:
        return (
            self.rng.randint(*self.stock_range),
            self.rng.randint(*self.min_stock_range),
        )

    def pull_new_products(self, session, remote_products: Sequence[RemoteProduct]) -> int:
        """
        Create local products for remote products missing locally.

        Matching is by exact (case-sensitive) name against the local active
        list. Remote records carry no usable stock in this direction, so new
        products get random placeholder stock and minimum stock.

        Returns:
            Number of local products created
        """
        local_names = {p.name for p in catalog_service.list_active_products(session)}

        created = 0
        for remote in remote_products:
            if remote.name in local_names:
                logger.debug(f"[RECON] Skipping {remote.name}: already in local catalog")
                continue
            stock, min_stock = self._placeholder_stock()
            catalog_service.create_product(
                session,
                name=remote.name,
                category=remote.category,
                price=remote.price,
                stock=stock,
                min_stock=min_stock,
                description=remote.description,
            )
            local_names.add(remote.name)
            created += 1
            logger.info(f"[RECON] Pulled {remote.name} (stock {stock}, min {min_stock})")

        return created

    def reconcile_orders(self, orders: Sequence[Order]) -> SyncSummary:
        """Upsert every Shipped or Delivered order at its deterministic key."""
        records = [OrderRecord.from_model(o) for o in orders if o.status in RECONCILED_STATUSES]
        summary = self._fan_out('upsert_order', (
            (self.adapter.key_for(record), order_lane(record), self.adapter.upsert_order, (record,))
            for record in records
        ))
        logger.info(
            f"[RECON] Orders: {summary.succeeded}/{summary.attempted} ok, {summary.failed} failed"
        )
        return summary

    def full_sync(self, session) -> FullSyncReport:
        """
        Push the catalog, pull remote-only products, then reconcile orders.

        A failing remote read leaves the pull count at 0 and is reported in the
        push summary errors instead of aborting the batch.
        """
        pushed = self.push_catalog(catalog_service.list_active_products(session))

        pulled = 0
        try:
            remote_products = self.adapter.fetch_remote_products()
        except MedSupplyError as e:
            logger.warning(f"[RECON] Could not read remote catalog: {e}")
            pushed.errors.append(f'fetch_remote_products: {e}')
        else:
            pulled = self.pull_new_products(session, remote_products)

        orders = session.query(Order).filter(Order.status.in_(RECONCILED_STATUSES)).all()
        return FullSyncReport(pushed=pushed, pulled=pulled, orders=self.reconcile_orders(orders))
