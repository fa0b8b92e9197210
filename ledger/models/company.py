"""Company model - owner of products and invoices."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ledger.database import Base, BigIntegerPK


class Company(Base):
    """Company - every product and invoice belongs to exactly one."""

    __tablename__ = 'company'

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    products = relationship('Product', back_populates='company')

    def __repr__(self):
        return f"<Company(id={self.id}, title='{self.title}')>"
