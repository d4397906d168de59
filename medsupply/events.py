"""
Application signals.

Emitted by the services after local changes are committed. Receivers get the
sender (the emitting module name) plus keyword payloads:

- products_changed: product_ids (list[int]), reason (str)
- orders_changed: order_id (int), reason (str)
- low_stock_detected: product_id (int), name (str), stock (int), min_stock (int)
- order_shipped: order_id (int), remote_key (str)
"""
from blinker import Namespace

_signals = Namespace()

products_changed = _signals.signal('products-changed')
orders_changed = _signals.signal('orders-changed')
low_stock_detected = _signals.signal('low-stock-detected')
order_shipped = _signals.signal('order-shipped')
