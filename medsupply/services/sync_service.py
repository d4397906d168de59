"""
Remote sync adapter.

Mirrors local products and orders into the remote document store. Works on
plain records only; it never reads or writes the local stores.

Orders are written at a deterministic key derived from immutable order
attributes, so re-syncing the same order always targets the same document.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Sequence

from medsupply.exceptions import NotFoundError
from medsupply.models import OrderStatus, DEFAULT_DESCRIPTION
from medsupply.models.timestamps import as_naive_utc, utc_now
from medsupply.services.remote_store import RemoteDocumentStore

logger = logging.getLogger(__name__)

_CLIENT_CLEAN_RE = re.compile(r'[^A-Za-z0-9_]')


@dataclass(frozen=True)
class ProductRecord:
    """Local product fields pushed to the remote catalog."""
    name: str
    category: str
    price: Decimal
    stock: int
    min_stock: int
    description: str = DEFAULT_DESCRIPTION

    @classmethod
    def from_model(cls, product) -> 'ProductRecord':
        return cls(
            name=product.name,
            category=product.category,
            price=Decimal(product.price),
            stock=product.stock,
            min_stock=product.min_stock,
            description=product.description or DEFAULT_DESCRIPTION,
        )


@dataclass(frozen=True)
class RemoteProduct:
    """Active product as read back from the remote catalog (no stock)."""
    name: str
    category: str
    price: Decimal
    description: Optional[str] = None


@dataclass(frozen=True)
class OrderLineRecord:
    product_id: int
    name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderRecord:
    """Snapshot of a local order and its lines."""
    client: str
    destination: str
    created_at: datetime
    total: Decimal
    status: OrderStatus
    lines: Sequence[OrderLineRecord] = field(default_factory=tuple)

    @classmethod
    def from_model(cls, order) -> 'OrderRecord':
        return cls(
            client=order.client,
            destination=order.destination,
            created_at=order.created_at,
            total=Decimal(order.total),
            status=order.status,
            lines=tuple(
                OrderLineRecord(
                    product_id=line.product_id,
                    name=line.product.name if line.product else '',
                    quantity=line.quantity,
                    unit_price=Decimal(line.unit_price),
                )
                for line in order.lines
            ),
        )


def normalize_client(client: str) -> str:
    """Spaces to underscores, then drop everything outside [A-Za-z0-9_]."""
    return _CLIENT_CLEAN_RE.sub('', client.replace(' ', '_'))


def format_key_timestamp(created_at: datetime) -> str:
    return as_naive_utc(created_at).strftime('%Y%m%d_%H%M%S')


def total_in_cents(total) -> int:
    cents = Decimal(str(total)) * 100
    return int(cents.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def order_key(client: str, created_at: datetime, total) -> str:
    """
    Deterministic remote id of an order.

    Pure function of (client, creation second, total). Two orders from the same
    client with the same total in the same second share a key.
    """
    return f"{normalize_client(client)}_{format_key_timestamp(created_at)}_{total_in_cents(total)}"


def product_lane(name: str) -> str:
    """Dispatcher lane for writes to the remote product with this name."""
    return f'product:{name}'


def order_lane(order: OrderRecord) -> str:
    """Dispatcher lane for writes to the remote order document."""
    return f'order:{order_key(order.client, order.created_at, order.total)}'


def _as_remote_timestamp(value: datetime) -> datetime:
    return as_naive_utc(value).replace(tzinfo=timezone.utc)


class RemoteSyncAdapter:
    """Idempotent mirroring of local records into the remote document store."""

    def __init__(self, store: RemoteDocumentStore,
                 products_collection: str = 'products',
                 orders_collection: str = 'orders'):
        self.store = store
        self.products_collection = products_collection
        self.orders_collection = orders_collection

    # Products

    def _find_active_product(self, name: str):
        matches = self.store.query(self.products_collection, nombre=name, activo=True)
        return matches[0] if matches else None

    def upsert_product(self, name: str, category: str, price, stock: int, min_stock: int,
                       description: Optional[str] = None) -> str:
        """
        Update the active remote product with this exact name, or insert it.

        The lookup and the write are two calls: concurrent callers may both
        insert.
        """
        existing = self._find_active_product(name)
        if existing is not None:
            doc_id, _ = existing
            self.store.update(self.products_collection, doc_id, {
                'stock': int(stock),
                'stockMinimo': int(min_stock),
                'precio': float(price),
            })
            return f'Producto actualizado: {name}'

        self.store.add(self.products_collection, {
            'nombre': name,
            'categoria': category,
            'precio': float(price),
            'descripcion': description or DEFAULT_DESCRIPTION,
            'stock': int(stock),
            'stockMinimo': int(min_stock),
            'activo': True,
            'fechaCreacion': utc_now(),
        })
        return f'Producto creado: {name}'

    def upsert_product_record(self, record: ProductRecord) -> str:
        return self.upsert_product(
            record.name, record.category, record.price,
            record.stock, record.min_stock, record.description
        )

    def update_product_stock(self, name: str, new_stock: int) -> str:
        """
        Set the stock of the active remote product with this name.

        Raises:
            NotFoundError: If no active remote product has this name
        """
        existing = self._find_active_product(name)
        if existing is None:
            raise NotFoundError(f'Producto "{name}" no encontrado en el servidor remoto')

        doc_id, _ = existing
        self.store.update(self.products_collection, doc_id, {'stock': int(new_stock)})
        return f'Stock remoto actualizado: {name} = {new_stock}'

    def deactivate_product(self, name: str) -> str:
        """
        Mark the active remote product with this name as inactive.

        A product that was never mirrored needs no change: inactive or missing
        remote records are never pulled back into the local catalog.
        """
        existing = self._find_active_product(name)
        if existing is None:
            return f'Producto "{name}" sin registro remoto activo'

        doc_id, _ = existing
        self.store.update(self.products_collection, doc_id, {'activo': False})
        return f'Producto desactivado en el servidor remoto: {name}'

    def fetch_remote_products(self) -> List[RemoteProduct]:
        """All active remote products as plain records."""
        products = []
        for _, doc in self.store.query(self.products_collection, activo=True):
            name = doc.get('nombre')
            if not name:
                logger.warning(f"[SYNC] Skipping remote product without name: {doc}")
                continue
            products.append(RemoteProduct(
                name=name,
                category=doc.get('categoria') or '',
                price=Decimal(str(doc.get('precio') or 0)).quantize(Decimal('0.01')),
                description=doc.get('descripcion'),
            ))
        return products

    # Orders

    @staticmethod
    def key_for(order: OrderRecord) -> str:
        return order_key(order.client, order.created_at, order.total)

    def order_document(self, order: OrderRecord, lines: Sequence[OrderLineRecord], total) -> dict:
        return {
            'id': self.key_for(order),
            'cliente': order.client,
            'destino': order.destination,
            'productos': [
                {
                    'id': str(line.product_id),
                    'nombre': line.name,
                    'cantidad': int(line.quantity),
                    'precio': float(line.unit_price),
                }
                for line in lines
            ],
            'total': float(total),
            'estado': order.status.value,
            'fechaCreacion': _as_remote_timestamp(order.created_at),
        }

    def upsert_order(self, order: OrderRecord,
                     lines: Optional[Sequence[OrderLineRecord]] = None,
                     total=None) -> str:
        """Create or merge the remote document at the order's deterministic key."""
        lines = order.lines if lines is None else lines
        total = order.total if total is None else total

        key = self.key_for(order)
        self.store.set(self.orders_collection, key, self.order_document(order, lines, total), merge=True)
        return f'Pedido sincronizado: {key} ({order.status.value})'

    def update_order_status(self, order: OrderRecord, new_status: OrderStatus) -> str:
        """
        Set only the status of an already mirrored order.

        Raises:
            NotFoundError: If the order was never upserted
        """
        key = self.key_for(order)
        self.store.update(self.orders_collection, key, {'estado': new_status.value})
        return f'Estado remoto actualizado: {key} = {new_status.value}'
