"""
Invoice service with transactional logic - company-scoped.

Every public function takes the SQLAlchemy session and the owning
company_id explicitly. Functions that write either commit once at the end
or roll back and re-raise.
"""
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger.models import Company, Invoice, InvoiceLine, InvoiceStatus, InvoiceType, Product
from ledger.exceptions import (
    LedgerError, BusinessLogicError, NotFoundError, InsufficientStockError, InvalidStateError
)
from ledger.services.pricing_service import calculate_invoice_totals
from ledger.services.numbering_service import lock_company, next_invoice_number, parse_invoice_number
from ledger.services.stock_service import lock_products, increase_stock, decrease_stock
from ledger.services.fifo_service import apply_sales_matching, open_cost_layer

logger = logging.getLogger(__name__)


# =====================================================
# LOOKUPS & SERIALIZATION
# =====================================================

def parse_invoice_type(value) -> InvoiceType:
    """Accept an InvoiceType or its name ('sales', 'PURCHASE'...)."""
    if isinstance(value, InvoiceType):
        return value
    try:
        return InvoiceType[str(value or '').strip().upper()]
    except KeyError:
        raise BusinessLogicError(f'Unknown invoice type: {value!r}')


def get_company(session: Session, company_id: int) -> Company:
    """Every lookup works on an explicit company; unknown ids are NotFoundError."""
    company = session.get(Company, company_id)
    if not company:
        raise NotFoundError(f'Company {company_id} not found')
    return company


def get_invoice(session: Session, invoice_id: int, company_id: int, for_update: bool = False) -> Invoice:
    """Load a non-deleted invoice of the company or raise NotFoundError."""
    query = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.company_id == company_id,
        Invoice.is_deleted == False  # noqa: E712
    )
    if for_update:
        query = query.with_for_update().populate_existing()

    invoice = query.first()
    if not invoice:
        raise NotFoundError(f'Invoice {invoice_id} not found')
    return invoice


def line_to_dict(line: InvoiceLine) -> Dict[str, Any]:
    return {
        'id': line.id,
        'product_id': line.product_id,
        'product_name': line.product.name if line.product else None,
        'quantity': line.quantity,
        'price': str(line.price),
        'tax': line.tax,
        'profit_loss': str(line.profit_loss),
        'remaining_quantity': line.remaining_quantity,
    }


def invoice_to_dict(invoice: Invoice, include_lines: bool = False) -> Dict[str, Any]:
    """Serialize an invoice with its derived price/tax/total (recomputed here)."""
    lines = invoice.active_lines
    totals = calculate_invoice_totals(lines)
    data = {
        'id': invoice.id,
        'company_id': invoice.company_id,
        'invoice_no': invoice.invoice_no,
        'invoice_type': invoice.invoice_type.value,
        'status': invoice.status.value,
        'date': invoice.date.isoformat(),
        'price': str(totals['price']),
        'tax': str(totals['tax']),
        'total': str(totals['total']),
    }
    if include_lines:
        data['lines'] = [line_to_dict(line) for line in lines]
    return data


def find_invoice(session: Session, invoice_id: int, company_id: int) -> Dict[str, Any]:
    invoice = get_invoice(session, invoice_id, company_id)
    return invoice_to_dict(invoice, include_lines=True)


def list_invoices(session: Session, company_id: int, invoice_type) -> List[Dict[str, Any]]:
    """Non-deleted invoices of a type, highest number first."""
    invoice_type = parse_invoice_type(invoice_type)
    invoices = session.query(Invoice).filter(
        Invoice.company_id == company_id,
        Invoice.invoice_type == invoice_type,
        Invoice.is_deleted == False  # noqa: E712
    ).all()

    invoices.sort(key=lambda inv: parse_invoice_number(inv.invoice_no), reverse=True)
    return [invoice_to_dict(inv) for inv in invoices]


def latest_approved_invoices(session: Session, company_id: int, limit: int = 3) -> List[Dict[str, Any]]:
    """Most recent approved invoices (both types) by issue date."""
    invoices = (session.query(Invoice)
                .filter(
                    Invoice.company_id == company_id,
                    Invoice.status == InvoiceStatus.APPROVED,
                    Invoice.is_deleted == False  # noqa: E712
                )
                .order_by(Invoice.date.desc(), Invoice.id.desc())
                .limit(limit)
                .all())
    return [invoice_to_dict(inv) for inv in invoices]


def generate_invoice(session: Session, company_id: int, invoice_type) -> Dict[str, Any]:
    """Preview of a new invoice: next number and today's date. Nothing is saved."""
    invoice_type = parse_invoice_type(invoice_type)
    return {
        'invoice_no': next_invoice_number(session, company_id, invoice_type),
        'invoice_type': invoice_type.value,
        'date': date.today().isoformat(),
        'status': InvoiceStatus.AWAITING_APPROVAL.value,
    }


# =====================================================
# WRITE OPERATIONS
# =====================================================

def create_invoice(payload: dict, session: Session, company_id: int) -> int:
    """
    Create an invoice awaiting approval, optionally with lines.

    Args:
        payload: Dictionary with:
            - invoice_type: 'SALES' | 'PURCHASE'
            - date: date | ISO string | None (defaults to today)
            - lines: list of {product_id, quantity, price, tax} (optional)
        session: SQLAlchemy session
        company_id: owning company

    Returns:
        invoice_id: ID of created invoice
    """
    try:
        invoice_type = parse_invoice_type(payload.get('invoice_type'))
        invoice_date = _parse_date(payload.get('date'))
        validated_lines = [_validate_line(session, company_id, line) for line in payload.get('lines') or []]

        # Company row lock serializes numbering for concurrent creations
        lock_company(session, company_id)
        invoice_no = next_invoice_number(session, company_id, invoice_type)

        invoice = Invoice(
            company_id=company_id,
            invoice_no=invoice_no,
            invoice_type=invoice_type,
            status=InvoiceStatus.AWAITING_APPROVAL,
            date=invoice_date,
            is_deleted=False
        )
        session.add(invoice)
        session.flush()  # Get invoice.id

        for line_data in validated_lines:
            session.add(InvoiceLine(invoice_id=invoice.id, **line_data))

        session.commit()
        logger.info(f"[INVOICE] created {invoice_no} (id={invoice.id}) for company {company_id}")
        return invoice.id

    except LedgerError:
        session.rollback()
        raise

    except IntegrityError as e:
        session.rollback()
        raise InvalidStateError(f'Invoice number collision for company {company_id}: {e.orig}')

    except Exception:
        session.rollback()
        logger.exception(f"[INVOICE] unexpected error creating invoice for company {company_id}")
        raise


def update_invoice(invoice_id: int, payload: dict, session: Session, company_id: int) -> Dict[str, Any]:
    """
    Update the editable header fields of an invoice (only the date).

    Number, status, type and company always come from the stored invoice.
    Approved invoices are frozen: their date orders the FIFO cost layers.
    """
    try:
        invoice = get_invoice(session, invoice_id, company_id, for_update=True)
        if invoice.is_approved:
            raise InvalidStateError(f'Invoice {invoice.invoice_no} is approved and cannot be edited')

        if 'date' in payload:
            invoice.date = _parse_date(payload.get('date'))

        session.commit()
        return invoice_to_dict(invoice, include_lines=True)

    except LedgerError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[INVOICE] unexpected error updating invoice {invoice_id}")
        raise


def delete_invoice(invoice_id: int, session: Session, company_id: int) -> None:
    """
    Soft delete an invoice awaiting approval and its lines. The number stays reserved.

    Approved invoices are permanent: their lines carry stock movements and
    FIFO cost layers.
    """
    try:
        invoice = get_invoice(session, invoice_id, company_id, for_update=True)
        if invoice.is_approved:
            raise InvalidStateError(f'Invoice {invoice.invoice_no} is approved and cannot be deleted')

        invoice.is_deleted = True
        for line in invoice.lines:
            line.is_deleted = True

        session.commit()
        logger.info(f"[INVOICE] deleted {invoice.invoice_no} (id={invoice.id})")

    except LedgerError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[INVOICE] unexpected error deleting invoice {invoice_id}")
        raise


def add_invoice_line(invoice_id: int, payload: dict, session: Session, company_id: int) -> int:
    """Add a line to an invoice that is still awaiting approval."""
    try:
        invoice = get_invoice(session, invoice_id, company_id, for_update=True)
        if invoice.is_approved:
            raise InvalidStateError(f'Invoice {invoice.invoice_no} is approved, lines cannot be added')

        line = InvoiceLine(invoice_id=invoice.id, **_validate_line(session, company_id, payload))
        session.add(line)
        session.commit()
        return line.id

    except LedgerError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[INVOICE] unexpected error adding line to invoice {invoice_id}")
        raise


def remove_invoice_line(invoice_id: int, line_id: int, session: Session, company_id: int) -> None:
    """Soft delete one line of an invoice that is still awaiting approval."""
    try:
        invoice = get_invoice(session, invoice_id, company_id, for_update=True)
        if invoice.is_approved:
            raise InvalidStateError(f'Invoice {invoice.invoice_no} is approved, lines cannot be removed')

        line = next((candidate for candidate in invoice.active_lines if candidate.id == line_id), None)
        if not line:
            raise NotFoundError(f'Line {line_id} not found on invoice {invoice.invoice_no}')

        line.is_deleted = True
        session.commit()

    except LedgerError:
        session.rollback()
        raise
    except Exception:
        session.rollback()
        logger.exception(f"[INVOICE] unexpected error removing line {line_id}")
        raise


# =====================================================
# APPROVAL
# =====================================================

def approve_invoice(invoice_id: int, session: Session, company_id: int,
                    accumulate_profit_loss: bool = False) -> Dict[str, Any]:
    """
    Approve an invoice: AWAITING_APPROVAL -> APPROVED (terminal).

    Steps:
    1. Lock the invoice (missing/deleted -> NotFoundError, approved -> InvalidStateError)
    2. SALES: lock products and check every line against stock. The first
       line that does not fit is removed from the invoice, that removal is
       committed, and InsufficientStockError is raised. Otherwise match each
       line against the FIFO cost layers, then decrease stock.
    3. PURCHASE: open one cost layer per line, then increase stock.
    4. Mark APPROVED and commit everything at once.

    Returns:
        dict with the approved invoice (totals and lines)
    """
    invoice_type = None
    try:
        invoice = get_invoice(session, invoice_id, company_id, for_update=True)
        invoice_type = invoice.invoice_type

        if invoice.is_approved:
            raise InvalidStateError(f'Invoice {invoice.invoice_no} is already approved')

        lines = invoice.active_lines
        logger.info(
            f"[APPROVE] {invoice.invoice_no} (id={invoice.id}, type={invoice_type.value}, "
            f"lines={len(lines)}) company={company_id}"
        )

        if invoice_type == InvoiceType.SALES:
            _approve_sales_lines(session, invoice, lines, company_id, accumulate_profit_loss)
        else:
            _approve_purchase_lines(session, lines)

        invoice.status = InvoiceStatus.APPROVED
        session.commit()

        _record_approval(invoice_type, 'approved')
        logger.info(f"[APPROVE] {invoice.invoice_no} approved")
        return invoice_to_dict(invoice, include_lines=True)

    except LedgerError as e:
        session.rollback()
        _record_approval(invoice_type, 'rejected')
        logger.warning(f"[APPROVE] invoice {invoice_id} rejected: {e.message}")
        raise

    except Exception:
        session.rollback()
        _record_approval(invoice_type, 'error')
        logger.exception(f"[APPROVE] unexpected error approving invoice {invoice_id}")
        raise


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _approve_sales_lines(session: Session, invoice: Invoice, lines: List[InvoiceLine],
                         company_id: int, accumulate: bool) -> None:
    products = lock_products(session, [line.product_id for line in lines], company_id)

    for line in lines:
        product = products[line.product_id]
        if line.quantity > product.quantity_in_stock:
            available = product.quantity_in_stock
            product_name = product.name
            # Compensating action: kept even though the approval fails
            line.is_deleted = True
            session.commit()
            raise InsufficientStockError(
                product_name, line.quantity, available,
                message=(
                    f'Invoice {invoice.invoice_no} can not be approved: not enough stock for '
                    f'{product_name} (required {line.quantity}, available {available}). '
                    f'Product removed from invoice.'
                )
            )

    layers_consumed = 0
    for line in lines:
        line.remaining_quantity = 0
        result = apply_sales_matching(session, line, company_id, accumulate=accumulate)
        layers_consumed += len(result.consumed)

    for line in lines:
        decrease_stock(session, line.product_id, line.quantity)

    _record_layers_consumed(layers_consumed)


def _approve_purchase_lines(session: Session, lines: List[InvoiceLine]) -> None:
    for line in lines:
        open_cost_layer(line)
        session.add(line)

    for line in lines:
        increase_stock(session, line.product_id, line.quantity)


def _parse_date(value) -> date:
    if value is None or value == '':
        return date.today()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise BusinessLogicError(f'Invalid date: {value!r} (expected YYYY-MM-DD)')


def _validate_line(session: Session, company_id: int, line: dict) -> Dict[str, Any]:
    """Validate one line payload and return InvoiceLine column values."""
    product_id = line.get('product_id')
    if not product_id:
        raise BusinessLogicError('product_id is required on every line')

    product = session.query(Product).filter(
        Product.id == product_id,
        Product.company_id == company_id
    ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found for company {company_id}')

    try:
        quantity = int(line.get('quantity'))
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid quantity for "{product.name}"')
    if quantity <= 0:
        raise BusinessLogicError(f'Quantity must be greater than 0 for "{product.name}"')

    try:
        raw_price = Decimal(str(line.get('price')))
    except (TypeError, ValueError, InvalidOperation):
        raise BusinessLogicError(f'Invalid price for "{product.name}"')
    if not raw_price.is_finite() or raw_price < 0:
        raise BusinessLogicError(f'Price cannot be negative for "{product.name}"')
    price = raw_price.quantize(Decimal('0.01'))
    if price != raw_price:
        raise BusinessLogicError(f'Price must have at most 2 decimals for "{product.name}"')

    try:
        tax = int(line.get('tax', 0))
    except (TypeError, ValueError):
        raise BusinessLogicError(f'Invalid tax rate for "{product.name}"')
    if not 0 <= tax <= 100:
        raise BusinessLogicError(f'Tax rate must be between 0 and 100 for "{product.name}"')

    return {
        'product_id': product.id,
        'quantity': quantity,
        'price': price,
        'tax': tax,
        'profit_loss': Decimal('0'),
        'remaining_quantity': 0,
        'is_deleted': False,
    }


def _record_approval(invoice_type: Optional[InvoiceType], outcome: str) -> None:
    from ledger.blueprints.metrics import invoice_approvals_total
    label = invoice_type.value if invoice_type else 'UNKNOWN'
    invoice_approvals_total.labels(invoice_type=label, outcome=outcome).inc()


def _record_layers_consumed(count: int) -> None:
    from ledger.blueprints.metrics import fifo_layers_consumed_total
    if count:
        fifo_layers_consumed_total.inc(count)
