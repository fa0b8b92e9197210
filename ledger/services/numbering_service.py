"""Invoice numbering service - sequential numbers per company and invoice type."""
import logging
import re

from sqlalchemy.orm import Session

from ledger.models import Company, Invoice, InvoiceType
from ledger.exceptions import InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)

INVOICE_NO_PATTERN = re.compile(r'^([A-Za-z])-(\d+)$')
INVOICE_NO_WIDTH = 3


def parse_invoice_number(invoice_no: str) -> int:
    """Return the numeric part of an invoice number such as 'S-014'."""
    match = INVOICE_NO_PATTERN.match(invoice_no or '')
    if not match:
        raise InvalidStateError(f'Invoice number "{invoice_no}" is malformed')
    return int(match.group(2))


def format_invoice_number(invoice_type: InvoiceType, number: int) -> str:
    return f"{invoice_type.prefix}-{number:0{INVOICE_NO_WIDTH}d}"


def lock_company(session: Session, company_id: int) -> Company:
    """Lock the company row; serializes numbering for all its invoice types."""
    company = (session.query(Company)
               .filter(Company.id == company_id)
               .with_for_update()
               .first())
    if not company:
        raise NotFoundError(f'Company {company_id} not found')
    return company


def latest_invoice_number(session: Session, company_id: int, invoice_type: InvoiceType):
    """
    Highest invoice number of a company and type, or None.

    Soft-deleted invoices are included so numbers are never reused. The
    comparison is numeric, so 'S-1000' ranks above 'S-999'.
    """
    rows = (session.query(Invoice.invoice_no)
            .filter(
                Invoice.company_id == company_id,
                Invoice.invoice_type == invoice_type
            )
            .all())

    latest = None
    latest_value = -1
    for (invoice_no,) in rows:
        value = parse_invoice_number(invoice_no)
        if value > latest_value:
            latest, latest_value = invoice_no, value
    return latest


def next_invoice_number(session: Session, company_id: int, invoice_type: InvoiceType) -> str:
    """Next number for the company and type: S-001, S-002, ... (P-... for purchases)."""
    latest = latest_invoice_number(session, company_id, invoice_type)
    if latest is None:
        return format_invoice_number(invoice_type, 1)

    next_no = format_invoice_number(invoice_type, parse_invoice_number(latest) + 1)
    logger.debug(f"[NUMBERING] company={company_id} type={invoice_type.value} {latest} -> {next_no}")
    return next_no
