"""
Catalog store service.
Persistent record of products: creation, active listings, stock writes and
soft deletion.
"""
import logging
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import or_, func
from sqlalchemy.exc import SQLAlchemyError
from medsupply.models import Product, OrderLine, DEFAULT_DESCRIPTION
from medsupply.exceptions import NotFoundError, StorageError
from medsupply.events import products_changed, low_stock_detected

logger = logging.getLogger(__name__)


# Catálogo inicial (solo se crea si no hay productos activos)
SEED_PRODUCTS = (
    ('Paracetamol 500mg', 'Medicamentos', Decimal('15.50'), 100, 20),
    ('Jeringas 5ml', 'Insumos', Decimal('2.30'), 500, 100),
    ('Termómetro Digital', 'Equipos', Decimal('45.00'), 15, 10),
    ('Mascarillas N95', 'Insumos', Decimal('8.75'), 5, 25),
    ('Oxímetro de Pulso', 'Equipos', Decimal('120.00'), 8, 5),
    ('Ibuprofeno 400mg', 'Medicamentos', Decimal('18.00'), 25, 15),
    ('Alcohol en Gel', 'Insumos', Decimal('12.50'), 30, 20),
    ('Tensiómetro Digital', 'Equipos', Decimal('85.00'), 12, 8),
)


def commit_or_raise(session, action: str) -> None:
    """Commit the session; on failure roll back and raise StorageError."""
    try:
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[CATALOG] Storage error while {action}: {e}")
        raise StorageError(f'Error al {action}: {e}') from e


def create_product(
    session,
    name: str,
    category: str,
    price,
    stock: int,
    min_stock: int,
    description: Optional[str] = None,
    commit: bool = True
) -> Product:
    """
    Persist a new active product stamped with the current time.

    Name uniqueness among active products is the caller's responsibility.

    Raises:
        StorageError: If the product cannot be persisted
    """
    product = Product(
        name=name,
        category=category,
        description=description or DEFAULT_DESCRIPTION,
        price=Decimal(str(price)).quantize(Decimal('0.01')),
        stock=int(stock),
        min_stock=int(min_stock),
        active=True
    )
    session.add(product)
    if commit:
        commit_or_raise(session, 'crear producto')
        products_changed.send(__name__, product_ids=[product.id], reason='created')
    else:
        try:
            session.flush()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f'Error al crear producto: {e}') from e
    return product


def get_product(session, product_id: int) -> Product:
    """Get a product by id (active or not)."""
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Producto #{product_id} no encontrado')
    return product


def get_active_product_by_name(session, name: str) -> Optional[Product]:
    """Exact (case-sensitive) name match among active products."""
    return session.query(Product).filter(
        Product.name == name,
        Product.active.is_(True)
    ).first()


def list_active_products(session) -> List[Product]:
    """All active products, sorted by name."""
    return session.query(Product).filter(
        Product.active.is_(True)
    ).order_by(Product.name).all()


def list_low_stock_products(session) -> List[Product]:
    """Active products whose stock is at or below their minimum."""
    return session.query(Product).filter(
        Product.active.is_(True),
        Product.stock <= Product.min_stock
    ).order_by(Product.stock).all()


def list_products_by_category(session, category: str) -> List[Product]:
    return session.query(Product).filter(
        Product.category == category,
        Product.active.is_(True)
    ).order_by(Product.name).all()


def _like_pattern(term: str) -> str:
    escaped = term.replace('\\', '\\\\').replace('%', '\\%').replace('_', '\\_')
    return f'%{escaped}%'


def search_products(session, term: str) -> List[Product]:
    """Case-insensitive substring match over name and category (active only)."""
    term = (term or '').strip()
    if not term:
        return list_active_products(session)

    pattern = _like_pattern(term.lower())
    return session.query(Product).filter(
        Product.active.is_(True),
        or_(
            func.lower(Product.name).like(pattern, escape='\\'),
            func.lower(Product.category).like(pattern, escape='\\')
        )
    ).order_by(Product.name).all()


def update_stock(session, product: Product, new_stock: int, commit: bool = True) -> Product:
    """
    Overwrite the stock of a product.

    No sign validation: negative values are stored as given.

    Args:
        session: SQLAlchemy session
        product: Product to update
        new_stock: New on-hand quantity
        commit: Persist immediately (False when part of a larger transaction)

    Raises:
        StorageError: If the write fails
    """
    old_stock = product.stock
    product.stock = int(new_stock)

    if commit:
        commit_or_raise(session, 'actualizar stock')
        logger.info(f"[CATALOG] Stock {product.name}: {old_stock} -> {product.stock}")
        products_changed.send(__name__, product_ids=[product.id], reason='stock')
        notify_low_stock(product)
    else:
        try:
            session.flush()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f'Error al actualizar stock: {e}') from e

    return product


def notify_low_stock(product: Product) -> None:
    if product.active and product.is_low_stock:
        low_stock_detected.send(
            __name__,
            product_id=product.id,
            name=product.name,
            stock=product.stock,
            min_stock=product.min_stock
        )


def product_has_order_lines(session, product: Product) -> bool:
    return session.query(OrderLine.id).filter(
        OrderLine.product_id == product.id
    ).first() is not None


def deactivate_product(session, product: Product) -> bool:
    """
    Soft-delete a product.

    Returns:
        False if any order line references the product (nothing changes),
        True once the product is marked inactive.
    """
    if product_has_order_lines(session, product):
        logger.info(f"[CATALOG] {product.name} has order lines, not deactivated")
        return False

    product.active = False
    commit_or_raise(session, 'eliminar producto')
    products_changed.send(__name__, product_ids=[product.id], reason='deactivated')
    return True


def seed_catalog(session) -> int:
    """
    Create the initial catalog when there are no active products.

    Returns:
        Number of products created (0 if the catalog was not empty)
    """
    if session.query(Product.id).filter(Product.active.is_(True)).first() is not None:
        return 0

    created = []
    for name, category, price, stock, min_stock in SEED_PRODUCTS:
        created.append(create_product(session, name, category, price, stock, min_stock, commit=False))
    commit_or_raise(session, 'crear catálogo inicial')

    products_changed.send(__name__, product_ids=[p.id for p in created], reason='seed')
    logger.info(f"[CATALOG] Seeded {len(created)} products")
    return len(created)


def product_to_dict(product: Product) -> dict:
    return {
        'id': product.id,
        'name': product.name,
        'category': product.category,
        'description': product.description,
        'price': str(product.price),
        'stock': product.stock,
        'min_stock': product.min_stock,
        'stock_level': product.stock_level,
        'is_low_stock': product.is_low_stock,
        'active': product.active,
        'created_at': product.created_at.isoformat() if product.created_at else None,
    }
