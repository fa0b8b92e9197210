"""Products blueprint - read-only stock and cost layer views, company-scoped."""
from flask import Blueprint, jsonify
from ledger.database import get_session
from ledger.models import Product
from ledger.exceptions import NotFoundError
from ledger.services.fifo_service import list_unconsumed_purchase_lines
from ledger.services.invoice_service import get_company

products_bp = Blueprint('products', __name__, url_prefix='/companies/<int:company_id>/products')


def _product_to_dict(product):
    return {
        'id': product.id,
        'name': product.name,
        'quantity_in_stock': product.quantity_in_stock,
        'low_limit_alert': product.low_limit_alert,
        'below_low_limit': product.is_below_low_limit,
    }


@products_bp.route('', methods=['GET'])
def list_products(company_id):
    db_session = get_session()
    get_company(db_session, company_id)

    products = db_session.query(Product).filter(
        Product.company_id == company_id
    ).order_by(Product.name).all()
    return jsonify({'products': [_product_to_dict(p) for p in products]})


@products_bp.route('/<int:product_id>', methods=['GET'])
def view_product(company_id, product_id):
    """Product stock plus its open purchase cost layers, oldest first."""
    db_session = get_session()
    get_company(db_session, company_id)

    product = db_session.query(Product).filter(
        Product.id == product_id,
        Product.company_id == company_id
    ).first()
    if not product:
        raise NotFoundError(f'Product {product_id} not found')

    layers = list_unconsumed_purchase_lines(db_session, company_id, product_id, for_update=False)
    data = _product_to_dict(product)
    data['cost_layers'] = [
        {
            'line_id': layer.id,
            'invoice_id': layer.invoice_id,
            'price': str(layer.price),
            'tax': layer.tax,
            'quantity': layer.quantity,
            'remaining_quantity': layer.remaining_quantity,
        }
        for layer in layers
    ]
    return jsonify(data)
