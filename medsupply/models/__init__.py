"""Models package - exports all SQLAlchemy models."""
from medsupply.models.product import Product, PRODUCT_CATEGORIES, DEFAULT_DESCRIPTION
from medsupply.models.order import Order, OrderStatus, DESTINATIONS
from medsupply.models.order_line import OrderLine

__all__ = [
    'Product', 'PRODUCT_CATEGORIES', 'DEFAULT_DESCRIPTION',
    'Order', 'OrderStatus', 'DESTINATIONS',
    'OrderLine',
]
