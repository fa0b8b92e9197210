"""Invoice model."""
from sqlalchemy import (
    Column, BigInteger, String, Boolean, Date, DateTime, Enum, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ledger.database import Base, BigIntegerPK
import enum


class InvoiceStatus(enum.Enum):
    """Invoice status enum. APPROVED is terminal."""
    AWAITING_APPROVAL = "AWAITING_APPROVAL"
    APPROVED = "APPROVED"


class InvoiceType(enum.Enum):
    """Invoice type enum."""
    SALES = "SALES"
    PURCHASE = "PURCHASE"

    @property
    def prefix(self):
        """First letter of the type, used in invoice numbers (S-001, P-001)."""
        return self.value[0]


class Invoice(Base):
    """Sales or purchase invoice.

    Price, tax and total are never stored: pricing_service derives them from
    the active lines on every read.
    """

    __tablename__ = 'invoice'
    __table_args__ = (
        UniqueConstraint('company_id', 'invoice_type', 'invoice_no', name='uq_invoice_company_type_no'),
    )

    id = Column(BigIntegerPK, primary_key=True, autoincrement=True)
    company_id = Column(BigInteger, ForeignKey('company.id'), nullable=False, index=True)
    invoice_no = Column(String(20), nullable=False)
    invoice_type = Column(Enum(InvoiceType, name='invoice_type'), nullable=False)
    status = Column(
        Enum(InvoiceStatus, name='invoice_status'),
        nullable=False,
        default=InvoiceStatus.AWAITING_APPROVAL
    )
    date = Column(Date, nullable=False)
    is_deleted = Column(Boolean, nullable=False, default=False, server_default='false')
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships (lines only keep invoice_id, the invoice owns the collection)
    company = relationship('Company')
    lines = relationship('InvoiceLine', order_by='InvoiceLine.id', cascade='all, delete-orphan')

    @property
    def active_lines(self):
        """Lines that have not been soft-deleted."""
        return [line for line in self.lines if not line.is_deleted]

    @property
    def is_approved(self):
        return self.status == InvoiceStatus.APPROVED

    def __repr__(self):
        return f"<Invoice(id={self.id}, invoice_no='{self.invoice_no}', status={self.status.value})>"
