"""
FIFO cost matching service.

A PURCHASE line becomes a cost layer when its invoice is approved
(remaining_quantity = quantity). Approving a SALES line consumes the oldest
open layers of the same product and company until the sold quantity is
covered, and stores the line's profit/loss.

Profit/loss across several layers:
    by default the value written for each matched layer REPLACES the
    previous one, so the stored figure is the difference computed on the
    last layer only. Passing accumulate=True sums the difference over all
    matched layers instead.
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Sequence

from sqlalchemy.orm import Session

from ledger.models import Invoice, InvoiceLine, InvoiceStatus, InvoiceType
from ledger.services.pricing_service import line_gross_value

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsumedLayer:
    """Quantity taken from one purchase line and the values it produced."""
    line_id: int
    quantity_consumed: int
    purchase_cost: Decimal
    sale_value: Decimal

    @property
    def profit_loss(self) -> Decimal:
        return self.sale_value - self.purchase_cost


@dataclass
class MatchResult:
    """Outcome of matching one sales line against the open cost layers."""
    requested: int
    profit_loss: Decimal = Decimal('0')
    consumed: List[ConsumedLayer] = field(default_factory=list)

    @property
    def quantity_matched(self) -> int:
        return sum(c.quantity_consumed for c in self.consumed)

    @property
    def quantity_unmatched(self) -> int:
        return self.requested - self.quantity_matched

    @property
    def fully_matched(self) -> bool:
        return self.quantity_unmatched == 0


def list_unconsumed_purchase_lines(session: Session, company_id: int, product_id: int,
                                   for_update: bool = True) -> List[InvoiceLine]:
    """
    Open cost layers of a product, oldest first (invoice date, then line id).

    Only lines of approved purchase invoices of the company with something
    left to consume are returned. Rows are locked FOR UPDATE (unless
    for_update is False) so two sales approvals cannot consume the same layer.
    """
    query = (session.query(InvoiceLine)
             .join(Invoice, Invoice.id == InvoiceLine.invoice_id)
             .filter(
                 Invoice.company_id == company_id,
                 Invoice.invoice_type == InvoiceType.PURCHASE,
                 Invoice.status == InvoiceStatus.APPROVED,
                 InvoiceLine.product_id == product_id,
                 InvoiceLine.is_deleted == False,  # noqa: E712
                 InvoiceLine.remaining_quantity > 0
             )
             .order_by(Invoice.date.asc(), InvoiceLine.id.asc()))
    if for_update:
        query = query.with_for_update(of=InvoiceLine).populate_existing()
    return query.all()


def match_sales_line(sales_line, layers: Sequence, accumulate: bool = False) -> MatchResult:
    """
    Consume `layers` in order until the sales line quantity is covered.

    Mutates remaining_quantity on the layers and profit_loss on the sales
    line. Running out of layers is not an error; the unmatched quantity is
    reported on the result.
    """
    result = MatchResult(requested=sales_line.quantity)
    needed = sales_line.quantity
    profit_loss = Decimal('0')

    for layer in layers:
        if needed <= 0:
            break
        if layer.remaining_quantity <= 0:
            continue

        consumed = min(layer.remaining_quantity, needed)
        layer.remaining_quantity -= consumed

        purchase_cost = line_gross_value(layer.price, consumed, layer.tax)
        sale_value = line_gross_value(sales_line.price, consumed, sales_line.tax)

        if accumulate:
            profit_loss += sale_value - purchase_cost
        else:
            profit_loss = sale_value - purchase_cost

        result.consumed.append(ConsumedLayer(
            line_id=layer.id,
            quantity_consumed=consumed,
            purchase_cost=purchase_cost,
            sale_value=sale_value,
        ))
        needed -= consumed

        logger.debug(
            f"[FIFO] sales_line={sales_line.id} layer={layer.id} consumed={consumed} "
            f"left_in_layer={layer.remaining_quantity} still_needed={needed}"
        )

    sales_line.profit_loss = profit_loss
    result.profit_loss = profit_loss
    return result


def apply_sales_matching(session: Session, sales_line: InvoiceLine, company_id: int,
                         accumulate: bool = False) -> MatchResult:
    """Load the open layers for the line's product, match them and stage the changes (no commit)."""
    # Earlier lines of the same invoice may already have consumed layers
    session.flush()
    layers = list_unconsumed_purchase_lines(session, company_id, sales_line.product_id)
    result = match_sales_line(sales_line, layers, accumulate=accumulate)

    touched = {c.line_id for c in result.consumed}
    for layer in layers:
        if layer.id in touched:
            session.add(layer)
    session.add(sales_line)

    if not result.fully_matched:
        logger.warning(
            f"[FIFO] sales_line={sales_line.id} product={sales_line.product_id}: "
            f"{result.quantity_unmatched} unit(s) without purchase history"
        )

    return result


def open_cost_layer(purchase_line: InvoiceLine) -> None:
    """Turn an approved purchase line into a full, unconsumed cost layer."""
    purchase_line.profit_loss = Decimal('0')
    purchase_line.remaining_quantity = purchase_line.quantity
