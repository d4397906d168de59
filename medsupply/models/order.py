"""Order model and its status lifecycle."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from medsupply.database import Base
from medsupply.models.timestamps import utc_now
import enum


class OrderStatus(enum.Enum):
    """Order status enum (estado del pedido)."""
    PENDING = "Pendiente"
    PREPARING = "Preparando"
    SHIPPED = "Enviado"
    DELIVERED = "Entregado"
    CANCELLED = "Cancelado"

    @property
    def is_terminal(self):
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    @property
    def description(self):
        return _STATUS_DESCRIPTIONS[self]

    def can_transition_to(self, target):
        """Any non-terminal state may move to any other state."""
        return not self.is_terminal and target is not self

    @classmethod
    def parse(cls, value):
        """
        Resolve a status from its enum name or its display value.

        Raises:
            ValueError: If the value matches no status
        """
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        for status in cls:
            if text.upper() == status.name or text.lower() == status.value.lower():
                return status
        raise ValueError(f'Estado de pedido desconocido: {value}')


_STATUS_DESCRIPTIONS = {
    OrderStatus.PENDING: 'Esperando procesamiento',
    OrderStatus.PREPARING: 'Preparando pedido',
    OrderStatus.SHIPPED: 'En camino al destino',
    OrderStatus.DELIVERED: 'Pedido completado',
    OrderStatus.CANCELLED: 'Pedido cancelado',
}


# Destinos predefinidos en Perú
DESTINATIONS = (
    'Lima',
    'Arequipa',
    'Trujillo',
    'Chiclayo',
    'Piura',
    'Iquitos',
    'Cusco',
    'Huancayo',
    'Chimbote',
    'Tacna',
    'Ica',
    'Sullana',
    'Chincha',
    'Huánuco',
    'Pucallpa',
)


class Order(Base):
    """Customer order (pedido)."""

    __tablename__ = 'customer_order'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    client = Column(String, nullable=False)
    destination = Column(String, nullable=False)
    total = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(Enum(OrderStatus, name='order_status'), nullable=False, default=OrderStatus.PENDING)
    # Part of the remote document key: set once, never updated
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    lines = relationship(
        'OrderLine',
        back_populates='order',
        cascade='all, delete-orphan',
        order_by='OrderLine.id'
    )

    def __repr__(self):
        return f"<Order(id={self.id}, client='{self.client}', status={self.status.value})>"
