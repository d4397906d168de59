"""Orders blueprint: order creation, lifecycle transitions, re-sync and deletion."""
import logging
from typing import Any, Dict, List, Tuple

from flask import Blueprint, current_app, jsonify, request

from medsupply.database import get_session
from medsupply.exceptions import ValidationError
from medsupply.models import DESTINATIONS, OrderStatus, Product
from medsupply.services import catalog_service, order_service
from medsupply.services.order_service import order_to_dict, order_summary
from medsupply.services.sync_context import get_sync
from medsupply.services.sync_service import order_key
from medsupply.utils.responses import json_body, operation_response

logger = logging.getLogger(__name__)

orders_bp = Blueprint('orders', __name__, url_prefix='/orders')


def _resolve_items(session, raw_items: Any) -> List[Tuple[Product, int]]:
    """
    Turn [{product_id, quantity}, ...] into (Product, quantity) pairs.

    Repeated product ids are merged into one line.
    """
    if not isinstance(raw_items, list):
        raise ValidationError('Por favor seleccione al menos un producto')

    quantities: Dict[int, int] = {}
    for item in raw_items:
        try:
            product_id = int(item['product_id'])
            quantity = int(item.get('quantity', 0))
        except (KeyError, TypeError, ValueError):
            raise ValidationError('Cada producto requiere product_id y quantity enteros')
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    items = []
    for product_id, quantity in quantities.items():
        product = catalog_service.get_product(session, product_id)
        if not product.active:
            raise ValidationError(f'El producto {product.name} no está activo')
        items.append((product, quantity))
    return items


@orders_bp.route('', methods=['GET'])
def list_orders():
    """All orders newest first, or only those with ?status=."""
    session = get_session()
    status = request.args.get('status', '').strip()
    if status:
        try:
            orders = order_service.list_orders_by_status(session, status)
        except ValueError:
            raise ValidationError(f'Estado inválido: {status}')
    else:
        orders = order_service.list_orders(session)

    return jsonify({'orders': [order_to_dict(o, include_lines=False) for o in orders]})


@orders_bp.route('/destinations', methods=['GET'])
def destinations():
    return jsonify({'destinations': list(DESTINATIONS)})


@orders_bp.route('/statuses', methods=['GET'])
def statuses():
    return jsonify({
        'statuses': [
            {'value': s.value, 'description': s.description, 'terminal': s.is_terminal}
            for s in OrderStatus
        ]
    })


@orders_bp.route('', methods=['POST'])
def create_order():
    """
    Create an order with its lines.

    Body: {"client": str, "destination": str, "items": [{"product_id": int, "quantity": int}]}
    """
    session = get_session()
    data = json_body()
    items = _resolve_items(session, data.get('items'))

    result = order_service.place_order(
        session,
        client=data.get('client') or '',
        destination=data.get('destination') or '',
        items=items,
        sync=get_sync(),
        allow_negative=current_app.config.get('ALLOW_NEGATIVE_STOCK', True)
    )
    order = result.data['order']
    return operation_response(result, {'order': order_to_dict(order)}, status=201)


@orders_bp.route('/<int:order_id>', methods=['GET'])
def order_detail(order_id: int):
    session = get_session()
    order = order_service.get_order(session, order_id)
    data = order_to_dict(order)
    data['summary'] = order_summary(order)
    data['summary']['total'] = str(data['summary']['total'])
    data['remote_key'] = order_key(order.client, order.created_at, order.total)
    return jsonify(data)


@orders_bp.route('/<int:order_id>/status', methods=['POST', 'PUT'])
def change_status(order_id: int):
    """Body: {"status": "Enviado"} (display value or enum name)."""
    session = get_session()
    order = order_service.get_order(session, order_id)

    raw_status = json_body().get('status')
    try:
        target = OrderStatus.parse(raw_status)
    except ValueError:
        raise ValidationError(f'Estado inválido: {raw_status}')

    result = get_sync().coordinator.transition(session, order, target)
    return operation_response(result, {'order': order_to_dict(order, include_lines=False)})


@orders_bp.route('/<int:order_id>/resync', methods=['POST'])
def resync(order_id: int):
    session = get_session()
    order = order_service.get_order(session, order_id)
    result = get_sync().coordinator.resync_order(session, order)
    return operation_response(result, {'remote_key': result.data['remote_key']})


@orders_bp.route('/<int:order_id>', methods=['DELETE'])
def delete_order(order_id: int):
    """Delete an order (not Delivered) giving its stock back."""
    session = get_session()
    order = order_service.get_order(session, order_id)
    result = get_sync().coordinator.delete_order(session, order)
    return operation_response(result, {
        'order_id': result.data['order_id'],
        'restored_products': result.data['restored_products'],
    })
