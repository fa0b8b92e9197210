"""Models package - exports all SQLAlchemy models."""
from ledger.models.company import Company
from ledger.models.product import Product
from ledger.models.invoice import Invoice, InvoiceStatus, InvoiceType
from ledger.models.invoice_line import InvoiceLine

__all__ = [
    'Company', 'Product',
    'Invoice', 'InvoiceStatus', 'InvoiceType', 'InvoiceLine',
]
