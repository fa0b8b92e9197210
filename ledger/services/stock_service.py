"""Stock service - the only place that changes Product.quantity_in_stock."""
import logging
from typing import Dict, Iterable

from sqlalchemy import update
from sqlalchemy.orm import Session

from ledger.models import Product
from ledger.exceptions import BusinessLogicError, NotFoundError, InsufficientStockError

logger = logging.getLogger(__name__)


def _validate_quantity(quantity: int) -> None:
    if quantity is None or int(quantity) <= 0:
        raise BusinessLogicError(f'Stock quantity must be a positive integer, got {quantity}')


def get_stock(session: Session, product_id: int) -> int:
    product = session.get(Product, product_id)
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return product.quantity_in_stock


def lock_products(session: Session, product_ids: Iterable[int], company_id: int) -> Dict[int, Product]:
    """
    Lock product rows FOR UPDATE and return them keyed by id (company-scoped).

    Rows are locked in ascending id order so two approvals touching the same
    products cannot deadlock.
    """
    ids = sorted(set(product_ids))
    if not ids:
        return {}

    products = (session.query(Product)
                .filter(Product.id.in_(ids), Product.company_id == company_id)
                .order_by(Product.id)
                .with_for_update()
                .populate_existing()
                .all())

    found = {p.id: p for p in products}
    missing = [pid for pid in ids if pid not in found]
    if missing:
        raise NotFoundError(f'Products {missing} not found for company {company_id}')

    return found


def increase_stock(session: Session, product_id: int, quantity: int) -> None:
    """Atomically add `quantity` to the product's stock. Does not commit."""
    _validate_quantity(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity_in_stock=Product.quantity_in_stock + int(quantity))
        .execution_options(synchronize_session='fetch')
    )
    if result.rowcount == 0:
        raise NotFoundError(f'Product {product_id} not found')

    logger.debug(f"[STOCK] product={product_id} +{quantity}")


def decrease_stock(session: Session, product_id: int, quantity: int) -> None:
    """
    Atomically subtract `quantity` from the product's stock. Does not commit.

    The UPDATE only matches while enough stock is left, so concurrent
    decrements can never drive the counter below zero.
    """
    _validate_quantity(quantity)

    result = session.execute(
        update(Product)
        .where(Product.id == product_id, Product.quantity_in_stock >= int(quantity))
        .values(quantity_in_stock=Product.quantity_in_stock - int(quantity))
        .execution_options(synchronize_session='fetch')
    )
    if result.rowcount == 0:
        product = session.get(Product, product_id)
        if not product:
            raise NotFoundError(f'Product {product_id} not found')
        raise InsufficientStockError(product.name, quantity, product.quantity_in_stock)

    logger.debug(f"[STOCK] product={product_id} -{quantity}")
