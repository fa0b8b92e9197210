"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ledger.database import Base, BigIntegerPK


class Product(Base):
    """Stock-keeping product. quantity_in_stock is only changed by stock_service."""

    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('quantity_in_stock >= 0', name='ck_product_stock_non_negative'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    name = Column(String, nullable=False)
    quantity_in_stock = Column(Integer, nullable=False, default=0, server_default='0')
    low_limit_alert = Column(Integer, nullable=False, default=0, server_default='0')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    company = relationship('Company', back_populates='products')

    @property
    def is_below_low_limit(self):
        return (self.quantity_in_stock or 0) < (self.low_limit_alert or 0)

    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', quantity_in_stock={self.quantity_in_stock})>"
