"""Products blueprint: catalog listing, creation, stock edits and soft deletion."""
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

from flask import Blueprint, jsonify, request

from medsupply.database import get_session
from medsupply.exceptions import BusinessLogicError, ProductInUseError, ValidationError
from medsupply.models import PRODUCT_CATEGORIES
from medsupply.services import catalog_service
from medsupply.services.catalog_service import product_to_dict
from medsupply.services.stock_ledger_service import dispatch_stock_sync
from medsupply.services.sync_context import get_sync
from medsupply.services.sync_dispatcher import OperationResult
from medsupply.services.sync_service import ProductRecord, product_lane
from medsupply.utils.responses import json_body, operation_response, int_field

logger = logging.getLogger(__name__)

products_bp = Blueprint('products', __name__, url_prefix='/products')


def _parse_product_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Validate the creation payload.

    Raises:
        ValidationError: With every invalid field
    """
    errors = []
    name = (data.get('name') or '').strip()
    if not name:
        errors.append('El nombre del producto es obligatorio')

    category = (data.get('category') or '').strip()
    if category not in PRODUCT_CATEGORIES:
        errors.append(f"Categoría inválida. Opciones: {', '.join(PRODUCT_CATEGORIES)}")

    price = None
    try:
        price = Decimal(str(data.get('price')))
        if not price.is_finite() or price < 0:
            errors.append('El precio debe ser mayor o igual a 0')
            price = None
    except (InvalidOperation, ValueError):
        errors.append('El precio debe ser un número')

    stock = int_field(data, 'stock', 'El stock', errors)
    min_stock = int_field(data, 'min_stock', 'El stock mínimo', errors)

    if errors:
        raise ValidationError(errors[0], errors=errors)

    return {
        'name': name,
        'category': category,
        'price': price,
        'stock': stock,
        'min_stock': min_stock,
        'description': (data.get('description') or '').strip() or None,
    }


@products_bp.route('', methods=['GET'])
def list_products():
    """Active products. Optional ?q= (name/category search) or ?category=."""
    session = get_session()
    term = request.args.get('q', '').strip()
    category = request.args.get('category', '').strip()

    if term:
        products = catalog_service.search_products(session, term)
    elif category:
        products = catalog_service.list_products_by_category(session, category)
    else:
        products = catalog_service.list_active_products(session)

    return jsonify({'products': [product_to_dict(p) for p in products]})


@products_bp.route('/low-stock', methods=['GET'])
def low_stock():
    session = get_session()
    products = catalog_service.list_low_stock_products(session)
    return jsonify({'products': [product_to_dict(p) for p in products]})


@products_bp.route('/categories', methods=['GET'])
def categories():
    return jsonify({'categories': list(PRODUCT_CATEGORIES)})


@products_bp.route('/<int:product_id>', methods=['GET'])
def product_detail(product_id: int):
    session = get_session()
    return jsonify(product_to_dict(catalog_service.get_product(session, product_id)))


@products_bp.route('', methods=['POST'])
def create_product():
    """Create a product locally, then upsert it in the remote catalog."""
    session = get_session()
    fields = _parse_product_data(json_body())

    if catalog_service.get_active_product_by_name(session, fields['name']) is not None:
        raise BusinessLogicError(f"Ya existe un producto activo con el nombre '{fields['name']}'", status_code=409)

    product = catalog_service.create_product(session, **fields)
    logger.info(f"[PRODUCTS] Created {product.name} (id={product.id})")

    sync = get_sync()
    result = OperationResult(message=f'Producto creado: {product.name}')
    result.track(sync.dispatcher.submit(
        'upsert_product',
        sync.adapter.upsert_product_record,
        ProductRecord.from_model(product),
        key=product_lane(product.name)
    ))
    return operation_response(result, {'product': product_to_dict(product)}, status=201)


@products_bp.route('/<int:product_id>/stock', methods=['PUT', 'PATCH'])
def edit_stock(product_id: int):
    """Direct stock edit; the new value is mirrored remotely."""
    session = get_session()
    product = catalog_service.get_product(session, product_id)

    errors = []
    new_stock = int_field(json_body(), 'stock', 'El stock', errors)
    if errors:
        raise ValidationError(errors[0], errors=errors)

    old_stock = product.stock
    catalog_service.update_stock(session, product, new_stock)

    result = OperationResult(message=f'Stock actualizado: {product.name} {old_stock} -> {product.stock}')
    dispatch_stock_sync(get_sync(), result, product)
    return operation_response(result, {'product': product_to_dict(product)})


@products_bp.route('/<int:product_id>', methods=['DELETE'])
def deactivate(product_id: int):
    """
    Soft delete. Refused while any order line references the product.

    The remote record is marked inactive too, so a later full sync does not
    pull the product back.
    """
    session = get_session()
    product = catalog_service.get_product(session, product_id)

    if not catalog_service.deactivate_product(session, product):
        raise ProductInUseError(product.name)

    sync = get_sync()
    result = OperationResult(message=f'Producto eliminado: {product.name}')
    result.track(sync.dispatcher.submit(
        'deactivate_product',
        sync.adapter.deactivate_product,
        product.name,
        key=product_lane(product.name)
    ))
    return operation_response(result, {'product': product_to_dict(product)})
