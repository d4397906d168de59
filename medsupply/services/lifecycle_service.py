"""
Order lifecycle coordinator.

Validates status transitions and triggers remote sync at the points the
lifecycle defines: entering Shipped upserts the full remote order, later
transitions of an order that was shipped update the remote status only.
Remote failures never undo the local change; they show up in the remote half
of the OperationResult.
"""
import logging

from medsupply.models import Order, OrderStatus
from medsupply.models.timestamps import utc_now
from medsupply.exceptions import InvalidTransitionError
from medsupply.events import order_shipped
from medsupply.services import order_service
from medsupply.services.stock_ledger_service import dispatch_stock_sync
from medsupply.services.sync_dispatcher import OperationResult, SyncDispatcher
from medsupply.services.sync_service import RemoteSyncAdapter, OrderRecord, order_lane

logger = logging.getLogger(__name__)


def validate_transition(current: OrderStatus, target: OrderStatus) -> None:
    """
    Raises:
        InvalidTransitionError: From a terminal state, or to the same state
    """
    if not current.can_transition_to(target):
        raise InvalidTransitionError(current.value, target.value)


class OrderLifecycleCoordinator:
    """Drives order status changes and the remote sync they trigger."""

    def __init__(self, adapter: RemoteSyncAdapter, dispatcher: SyncDispatcher):
        self.adapter = adapter
        self.dispatcher = dispatcher

    def transition(self, session, order: Order, new_status) -> OperationResult:
        """
        Move `order` to `new_status`.

        The status is committed locally before any remote call is dispatched.

        Raises:
            InvalidTransitionError: If the lifecycle forbids the change
            StorageError: If the local write fails
        """
        target = OrderStatus.parse(new_status)
        previous = order.status
        validate_transition(previous, target)

        if target is OrderStatus.SHIPPED and order.shipped_at is None:
            order.shipped_at = utc_now()
        order_service.set_status(session, order, target)
        logger.info(f"[LIFECYCLE] Order #{order.id}: {previous.value} -> {target.value}")

        result = OperationResult(
            message=f'Estado actualizado a: {target.value}',
            data={'order': order, 'previous': previous}
        )

        record = OrderRecord.from_model(order)
        if target is OrderStatus.SHIPPED:
            result.track(self.dispatcher.submit(
                'upsert_order', self.adapter.upsert_order, record, key=order_lane(record)
            ))
            order_shipped.send(__name__, order_id=order.id, remote_key=self.adapter.key_for(record))
        elif order.shipped_at is not None:
            result.track(self.dispatcher.submit(
                'update_order_status',
                self.adapter.update_order_status,
                record,
                target,
                key=order_lane(record)
            ))

        return result

    def resync_order(self, session, order: Order) -> OperationResult:
        """Manual re-sync: upsert the full remote order at its key."""
        record = OrderRecord.from_model(order)
        result = OperationResult(
            message=f'Pedido #{order.id} reenviado',
            data={'order': order, 'remote_key': self.adapter.key_for(record)}
        )
        result.track(self.dispatcher.submit(
            'upsert_order', self.adapter.upsert_order, record, key=order_lane(record)
        ))
        return result

    def delete_order(self, session, order: Order) -> OperationResult:
        """
        Delete an order (not allowed once Delivered) restoring its stock.

        Restored stock levels are then propagated to the remote catalog.

        Raises:
            OrderNotDeletableError: If the order is Delivered
            StorageError: If the local transaction fails
        """
        products = {line.product_id: line.product for line in order.lines}
        details = order_service.delete_order(session, order)

        result = OperationResult(
            message=f"Pedido #{details['order_id']} eliminado y stock restaurado",
            data=details
        )
        for product in products.values():
            dispatch_stock_sync(self, result, product)
        return result
