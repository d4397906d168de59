"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, Text
from sqlalchemy.sql import func
from medsupply.database import Base
from medsupply.models.timestamps import utc_now


# Categorías predefinidas del catálogo médico
PRODUCT_CATEGORIES = (
    'Medicamentos',
    'Equipos',
    'Insumos',
    'Dispositivos',
    'Consumibles',
)

DEFAULT_DESCRIPTION = 'Producto médico'


class Product(Base):
    """Product (producto médico del catálogo local)."""

    __tablename__ = 'product'

    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    name = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False, default=0)
    # Stock may transiently go negative when an order over-allocates
    stock = Column(Integer, nullable=False, default=0)
    min_stock = Column(Integer, nullable=False, default=0, server_default='0')
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"

    @property
    def is_low_stock(self):
        """Stock at or below the minimum threshold."""
        return self.stock <= self.min_stock

    @property
    def stock_level(self):
        """Human readable stock state shown in listings."""
        if self.is_low_stock:
            return 'Stock Bajo'
        if self.stock > self.min_stock * 2:
            return 'Stock Alto'
        return 'Stock Normal'
