"""Invoices blueprint - JSON API for invoices, company-scoped by URL."""
from flask import Blueprint, request, current_app, jsonify
from ledger.database import get_session
from ledger.exceptions import BusinessLogicError
from ledger.services.invoice_service import (
    get_company, find_invoice, list_invoices, latest_approved_invoices, generate_invoice,
    create_invoice, update_invoice, delete_invoice, approve_invoice,
    add_invoice_line, remove_invoice_line
)

invoices_bp = Blueprint('invoices', __name__, url_prefix='/companies/<int:company_id>/invoices')


def _json_payload():
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise BusinessLogicError('Request body must be a JSON object')
    return payload


@invoices_bp.route('', methods=['GET'])
def list_invoices_view(company_id):
    """List non-deleted invoices of one type (?type=SALES|PURCHASE)."""
    db_session = get_session()
    get_company(db_session, company_id)

    invoice_type = request.args.get('type', 'SALES')
    return jsonify({'invoices': list_invoices(db_session, company_id, invoice_type)})


@invoices_bp.route('/latest', methods=['GET'])
def latest_invoices_view(company_id):
    """Three most recent approved invoices."""
    db_session = get_session()
    get_company(db_session, company_id)

    limit = request.args.get('limit', 3, type=int)
    return jsonify({'invoices': latest_approved_invoices(db_session, company_id, limit=limit)})


@invoices_bp.route('/new', methods=['GET'])
def new_invoice_view(company_id):
    """Preview the number and date the next invoice of a type would get."""
    db_session = get_session()
    get_company(db_session, company_id)

    invoice_type = request.args.get('type', 'SALES')
    return jsonify(generate_invoice(db_session, company_id, invoice_type))


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
def view_invoice(company_id, invoice_id):
    """Invoice detail with lines and derived totals."""
    db_session = get_session()
    get_company(db_session, company_id)
    return jsonify(find_invoice(db_session, invoice_id, company_id))


@invoices_bp.route('', methods=['POST'])
def create_invoice_view(company_id):
    db_session = get_session()
    get_company(db_session, company_id)

    invoice_id = create_invoice(_json_payload(), db_session, company_id)
    return jsonify(find_invoice(db_session, invoice_id, company_id)), 201


@invoices_bp.route('/<int:invoice_id>', methods=['PUT'])
def update_invoice_view(company_id, invoice_id):
    db_session = get_session()
    get_company(db_session, company_id)
    return jsonify(update_invoice(invoice_id, _json_payload(), db_session, company_id))


@invoices_bp.route('/<int:invoice_id>', methods=['DELETE'])
def delete_invoice_view(company_id, invoice_id):
    db_session = get_session()
    get_company(db_session, company_id)

    delete_invoice(invoice_id, db_session, company_id)
    return jsonify({'status': 'ok', 'message': f'Invoice {invoice_id} deleted'})


@invoices_bp.route('/<int:invoice_id>/approve', methods=['POST'])
def approve_invoice_view(company_id, invoice_id):
    """Approve an invoice (stock movements + FIFO profit/loss)."""
    db_session = get_session()
    get_company(db_session, company_id)

    accumulate = current_app.config.get('FIFO_ACCUMULATE_PROFIT_LOSS', False)
    return jsonify(approve_invoice(invoice_id, db_session, company_id, accumulate_profit_loss=accumulate))


@invoices_bp.route('/<int:invoice_id>/lines', methods=['POST'])
def add_line_view(company_id, invoice_id):
    db_session = get_session()
    get_company(db_session, company_id)

    add_invoice_line(invoice_id, _json_payload(), db_session, company_id)
    return jsonify(find_invoice(db_session, invoice_id, company_id)), 201


@invoices_bp.route('/<int:invoice_id>/lines/<int:line_id>', methods=['DELETE'])
def remove_line_view(company_id, invoice_id, line_id):
    db_session = get_session()
    get_company(db_session, company_id)

    remove_invoice_line(invoice_id, line_id, db_session, company_id)
    return jsonify(find_invoice(db_session, invoice_id, company_id))
