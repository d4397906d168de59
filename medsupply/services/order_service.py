"""
Order store service.
Creation, listing, status writes and deletion with stock restoration.
"""
import logging
from decimal import Decimal
from typing import List, Sequence, Tuple
from medsupply.models import Order, OrderLine, OrderStatus, Product, DESTINATIONS
from medsupply.exceptions import (
    ValidationError, NotFoundError, OrderNotDeletableError, MedSupplyError, StorageError
)
from medsupply.events import orders_changed, products_changed
from medsupply.services.catalog_service import commit_or_raise, notify_low_stock
from medsupply.services.stock_ledger_service import attach_line, restore_for_order, dispatch_stock_sync
from medsupply.services.sync_dispatcher import OperationResult
from medsupply.utils.formatters import datetime_pe

logger = logging.getLogger(__name__)

OrderItems = Sequence[Tuple[Product, int]]


def validate_order_request(client: str, destination: str, items: OrderItems) -> None:
    """
    Caller-side checks run before an order is created.

    Raises:
        ValidationError: With every problem found
    """
    errors = []
    if not client or not client.strip():
        errors.append('Por favor ingrese el nombre del cliente')
    if destination not in DESTINATIONS:
        errors.append(f'Destino inválido: {destination}')
    if any(int(qty) < 0 for _, qty in items):
        errors.append('La cantidad no puede ser negativa')
    if not any(int(qty) > 0 for _, qty in items):
        errors.append('Por favor seleccione al menos un producto')

    if errors:
        raise ValidationError(errors[0], errors=errors)


def validate_stock_for_order(items: OrderItems) -> List[str]:
    """
    Check requested quantities against current stock.

    Quantities of a product listed more than once are added up before the
    check.

    Returns:
        One message per product short on stock (empty list when all fit)
    """
    requested = {}
    for product, qty in items:
        qty = int(qty)
        if qty > 0:
            requested[product] = requested.get(product, 0) + qty

    return [
        f'{product.name} (Disponible: {product.stock}, Solicitado: {qty})'
        for product, qty in requested.items()
        if qty > product.stock
    ]


def create_order(session, client: str, destination: str, total=0, commit: bool = True) -> Order:
    """
    Persist a new Pending order.

    Client and destination are not validated here.

    Raises:
        StorageError: If the order cannot be persisted
    """
    order = Order(
        client=client,
        destination=destination,
        total=Decimal(str(total)).quantize(Decimal('0.01')),
        status=OrderStatus.PENDING
    )
    session.add(order)
    if commit:
        commit_or_raise(session, 'crear pedido')
        orders_changed.send(__name__, order_id=order.id, reason='created')
    return order


def get_order(session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f'Pedido #{order_id} no encontrado')
    return order


def list_orders(session) -> List[Order]:
    """All orders, newest first."""
    return session.query(Order).order_by(Order.created_at.desc(), Order.id.desc()).all()


def list_orders_by_status(session, status) -> List[Order]:
    status = OrderStatus.parse(status)
    return session.query(Order).filter(
        Order.status == status
    ).order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order_lines(session, order: Order) -> List[OrderLine]:
    return session.query(OrderLine).filter(
        OrderLine.order_id == order.id
    ).order_by(OrderLine.id).all()


def set_status(session, order: Order, new_status) -> Order:
    """Overwrite the status. Transition rules live in the lifecycle coordinator."""
    order.status = OrderStatus.parse(new_status)
    commit_or_raise(session, 'actualizar estado del pedido')
    orders_changed.send(__name__, order_id=order.id, reason='status')
    return order


def delete_order(session, order: Order) -> dict:
    """
    Delete an order after restoring the stock of all its lines.

    Restoration and removal share one transaction: if either fails nothing
    is applied.

    Returns:
        dict with order_id and restored_products

    Raises:
        OrderNotDeletableError: If the order is Delivered
        StorageError: If the local transaction fails
    """
    if order.status is OrderStatus.DELIVERED:
        raise OrderNotDeletableError(order.id, order.status.value)

    order_id = order.id
    try:
        restored = restore_for_order(session, order, commit=False)
        session.delete(order)
        commit_or_raise(session, 'eliminar pedido')
    except MedSupplyError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.error(f"[ORDERS] Unexpected error deleting order #{order_id}: {e}")
        raise StorageError(f'Error al eliminar pedido: {e}') from e

    logger.info(f"[ORDERS] Order #{order_id} deleted, {len(restored)} lines restored")
    orders_changed.send(__name__, order_id=order_id, reason='deleted')
    if restored:
        products_changed.send(__name__, product_ids=[r['product_id'] for r in restored], reason='restored')

    return {
        'order_id': order_id,
        'restored_products': restored,
    }


def place_order(
    session,
    client: str,
    destination: str,
    items: OrderItems,
    sync=None,
    allow_negative: bool = True
) -> OperationResult:
    """
    Full create-order flow: validate, create, attach lines, persist once.

    Remote stock updates are dispatched after the local commit.

    Raises:
        ValidationError: Invalid request or insufficient stock
        StorageError: If the local transaction fails
    """
    validate_order_request(client, destination, items)
    problems = validate_stock_for_order(items)
    if problems:
        raise ValidationError('Stock insuficiente', errors=problems)

    line_warnings = []
    try:
        order = create_order(session, client.strip(), destination, commit=False)
        for product, qty in items:
            if int(qty) > 0:
                line_warnings.extend(attach_line(
                    session, order, product, qty, allow_negative=allow_negative, commit=False
                ).warnings)
        commit_or_raise(session, 'crear pedido')
    except MedSupplyError:
        session.rollback()
        raise

    touched = {line.product_id: line.product for line in order.lines}
    logger.info(f"[ORDERS] Order #{order.id} for {order.client}: {len(order.lines)} lines, total {order.total}")
    orders_changed.send(__name__, order_id=order.id, reason='created')
    products_changed.send(__name__, product_ids=list(touched), reason='order_line')

    result = OperationResult(
        message=f'Pedido #{order.id} creado',
        data={'order': order}
    )
    result.warnings.extend(line_warnings)
    for product in touched.values():
        notify_low_stock(product)
        dispatch_stock_sync(sync, result, product)
    return result


def order_summary(order: Order) -> dict:
    """Line count, total units and total amount of an order."""
    return {
        'products': len(order.lines),
        'units': sum(line.quantity for line in order.lines),
        'total': order.total,
    }


def order_to_dict(order: Order, include_lines: bool = True) -> dict:
    data = {
        'id': order.id,
        'client': order.client,
        'destination': order.destination,
        'total': str(order.total),
        'status': order.status.value,
        'status_description': order.status.description,
        'created_at': order.created_at.isoformat() if order.created_at else None,
        'shipped_at': order.shipped_at.isoformat() if order.shipped_at else None,
        'created_at_display': datetime_pe(order.created_at),
        'shipped_at_display': datetime_pe(order.shipped_at),
    }
    if include_lines:
        data['lines'] = [
            {
                'id': line.id,
                'product_id': line.product_id,
                'product_name': line.product.name if line.product else None,
                'quantity': line.quantity,
                'unit_price': str(line.unit_price),
                'line_total': str(line.line_total),
            }
            for line in order.lines
        ]
    return data
