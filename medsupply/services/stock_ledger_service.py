"""
Stock ledger operations.

Single choke point coupling order lines to product stock: attaching a line
decrements stock, deleting an order restores it. Local writes are
authoritative; remote propagation is best-effort and never rolls them back.
"""
import logging
from decimal import Decimal
from typing import List, Dict, Any
from medsupply.models import Order, OrderLine, Product
from medsupply.exceptions import ValidationError, InsufficientStockError
from medsupply.events import orders_changed, products_changed
from medsupply.services.catalog_service import update_stock, commit_or_raise, notify_low_stock
from medsupply.services.sync_dispatcher import OperationResult
from medsupply.services.sync_service import product_lane

logger = logging.getLogger(__name__)


def recalculate_total(order: Order) -> Decimal:
    """Order total = sum of line totals (price snapshot at line creation)."""
    total = sum((Decimal(line.line_total) for line in order.lines), Decimal('0.00'))
    order.total = total.quantize(Decimal('0.01'))
    return order.total


def dispatch_stock_sync(sync, result: OperationResult, product: Product) -> None:
    """Queue a remote stock update for `product` and track it on `result`."""
    if sync is None:
        return
    result.track(sync.dispatcher.submit(
        'update_product_stock',
        sync.adapter.update_product_stock,
        product.name,
        product.stock,
        key=product_lane(product.name)
    ))


def attach_line(
    session,
    order: Order,
    product: Product,
    quantity: int,
    sync=None,
    allow_negative: bool = True,
    commit: bool = True
) -> OperationResult:
    """
    Create an order line and decrement the product's stock.

    Callers are expected to check `quantity <= product.stock` beforehand. When
    the decrement leaves stock negative it is still applied and logged as a
    warning, unless `allow_negative` is False.

    Args:
        session: SQLAlchemy session
        order: Owning order
        product: Referenced product
        quantity: Units (> 0)
        sync: Sync context (adapter + dispatcher); None keeps the change local
        allow_negative: Apply decrements that leave negative stock
        commit: Persist immediately (remote propagation only happens on commit)

    Returns:
        OperationResult with data['line'] and data['new_stock']

    Raises:
        ValidationError: If quantity is not positive
        InsufficientStockError: If stock would go negative and allow_negative is False
        StorageError: If the local write fails
    """
    quantity = int(quantity)
    if quantity <= 0:
        raise ValidationError('La cantidad debe ser mayor a 0')

    new_stock = product.stock - quantity
    if new_stock < 0 and not allow_negative:
        raise InsufficientStockError(product.name, quantity, product.stock)

    unit_price = Decimal(product.price)
    line = OrderLine(
        order=order,
        product=product,
        quantity=quantity,
        unit_price=unit_price,
        line_total=(unit_price * quantity).quantize(Decimal('0.01'))
    )
    session.add(line)

    if new_stock < 0:
        logger.warning(
            f"[LEDGER] Stock of {product.name} goes negative: {product.stock} - {quantity} = {new_stock}"
        )

    update_stock(session, product, new_stock, commit=False)
    recalculate_total(order)

    result = OperationResult(
        message=f'Stock descontado: {product.name} - {quantity} unidades. Stock nuevo: {new_stock}',
        data={'line': line, 'new_stock': new_stock}
    )
    if new_stock < 0:
        result.warnings.append(f'El stock de {product.name} quedó negativo ({new_stock})')

    if commit:
        commit_or_raise(session, 'agregar detalle de pedido')
        logger.info(f"[LEDGER] {result.message}")
        products_changed.send(__name__, product_ids=[product.id], reason='order_line')
        orders_changed.send(__name__, order_id=order.id, reason='line_attached')
        notify_low_stock(product)
        dispatch_stock_sync(sync, result, product)

    return result


def restore_for_order(session, order: Order, commit: bool = True) -> List[Dict[str, Any]]:
    """
    Give back the stock of every line of `order`.

    Lines are read from the database before anything is removed, so running it
    against an order whose lines are already gone restores nothing.

    Returns:
        One dict per line: product_id, product_name, quantity, old_stock, new_stock
    """
    lines = session.query(OrderLine).filter(
        OrderLine.order_id == order.id
    ).order_by(OrderLine.id).all()

    restored = []
    for line in lines:
        product = line.product
        old_stock = product.stock
        update_stock(session, product, old_stock + line.quantity, commit=False)
        restored.append({
            'product_id': product.id,
            'product_name': product.name,
            'quantity': line.quantity,
            'old_stock': old_stock,
            'new_stock': product.stock,
        })
        logger.info(
            f"[LEDGER] Stock restored: {product.name} + {line.quantity} units. New stock: {product.stock}"
        )

    if commit and restored:
        commit_or_raise(session, 'restaurar stock')
        products_changed.send(__name__, product_ids=[r['product_id'] for r in restored], reason='restored')

    return restored
