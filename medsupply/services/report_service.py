"""
Report service.
Aggregated figures for the statistics and reports endpoints, cached in Redis
and invalidated whenever the catalog or the orders change.
"""
import logging
from decimal import Decimal
from typing import Optional

from flask import current_app
from sqlalchemy import func

from medsupply.models import Order, OrderStatus, Product
from medsupply.events import products_changed, orders_changed
from medsupply.services.cache_service import get_cache

logger = logging.getLogger(__name__)

CACHE_MODULE = 'reports'
TOP_DESTINATIONS = 5


def _cached(key: str, loader):
    """Memoize `loader()` under the reports module (straight call if cache is down)."""
    try:
        cache = get_cache()
    except RuntimeError:
        return loader()
    ttl = current_app.config.get('CACHE_REPORTS_TTL', 120)
    return cache.memoize(CACHE_MODULE, key, loader, ttl=ttl)


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(Decimal('0.01'))


def get_statistics(session) -> dict:
    """Counters shown on the main menu."""
    def load():
        active = session.query(func.count(Product.id)).filter(Product.active.is_(True)).scalar() or 0
        low_stock = session.query(func.count(Product.id)).filter(
            Product.active.is_(True),
            Product.stock <= Product.min_stock
        ).scalar() or 0
        orders = session.query(func.count(Order.id)).scalar() or 0
        return {
            'active_products': active,
            'orders': orders,
            'low_stock_products': low_stock,
        }
    return _cached('statistics', load)


def get_inventory_report(session) -> dict:
    """
    Inventory summary of the active catalog.

    Returns:
        dict with products, categories (sorted names), stock_value
        (sum of price x stock) and low_stock (names with stock <= min_stock)
    """
    def load():
        products = session.query(Product).filter(Product.active.is_(True)).order_by(Product.name).all()
        stock_value = sum((Decimal(p.price) * p.stock for p in products), Decimal('0'))
        return {
            'products': len(products),
            'categories': sorted({p.category for p in products}),
            'stock_value': _money(stock_value),
            'low_stock': [
                {'name': p.name, 'stock': p.stock, 'min_stock': p.min_stock}
                for p in products if p.is_low_stock
            ],
        }
    return _cached('inventory', load)


def get_orders_report(session) -> dict:
    """Order count per status and total sales."""
    def load():
        rows = session.query(
            Order.status,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0)
        ).group_by(Order.status).all()

        by_status = {status.value: 0 for status in OrderStatus}
        sales_total = Decimal('0')
        for status, count, amount in rows:
            by_status[status.value] = count
            sales_total += Decimal(str(amount))

        return {
            'orders': sum(by_status.values()),
            'by_status': by_status,
            'sales_total': _money(sales_total),
        }
    return _cached('orders', load)


def get_destination_report(session, limit: Optional[int] = TOP_DESTINATIONS) -> dict:
    """Orders and amount per destination, highest amount first."""
    def load():
        rows = session.query(
            Order.destination,
            func.count(Order.id),
            func.coalesce(func.sum(Order.total), 0)
        ).group_by(Order.destination).all()

        destinations = sorted(
            (
                {'destination': destination, 'orders': count, 'total': _money(amount)}
                for destination, count, amount in rows
            ),
            key=lambda row: (-row['total'], row['destination'])
        )
        return {'destinations': destinations}

    report = _cached('destinations', load)
    if limit is not None:
        report = {'destinations': report['destinations'][:limit]}
    return report


def invalidate_reports(sender=None, **kwargs) -> int:
    """Drop every cached report."""
    try:
        cache = get_cache()
    except RuntimeError:
        return 0
    return cache.invalidate_module(CACHE_MODULE)


def connect_report_invalidation() -> None:
    """Subscribe cache invalidation to the change signals."""
    products_changed.connect(invalidate_reports, weak=False)
    orders_changed.connect(invalidate_reports, weak=False)
