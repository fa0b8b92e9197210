"""Invoice Line model."""
from sqlalchemy import Column, BigInteger, Integer, Boolean, Numeric, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from ledger.database import Base, BigIntegerPK


class InvoiceLine(Base):
    """Invoice line (product, quantity, unit price, tax rate).

    profit_loss is only meaningful on SALES lines and remaining_quantity only
    on PURCHASE lines, where it is the unconsumed part of the cost layer.
    """

    __tablename__ = 'invoice_line'
    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_invoice_line_quantity_positive'),
        CheckConstraint('price >= 0', name='ck_invoice_line_price_non_negative'),
        CheckConstraint('tax >= 0 AND tax <= 100', name='ck_invoice_line_tax_range'),
        CheckConstraint(
            'remaining_quantity >= 0 AND remaining_quantity <= quantity',
            name='ck_invoice_line_remaining_range'
        ),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    invoice_id = Column(BigInteger, ForeignKey('invoice.id'), nullable=False, index=True)
    product_id = Column(BigInteger, ForeignKey('product.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(14, 2), nullable=False)
    tax = Column(Integer, nullable=False, default=0)
    profit_loss = Column(Numeric(14, 4), nullable=False, default=0, server_default='0')
    remaining_quantity = Column(Integer, nullable=False, default=0, server_default='0')
    is_deleted = Column(Boolean, nullable=False, default=False, server_default='false')

    # Relationships
    product = relationship('Product')

    def __repr__(self):
        return (
            f"<InvoiceLine(id={self.id}, product_id={self.product_id}, "
            f"quantity={self.quantity}, remaining_quantity={self.remaining_quantity})>"
        )
