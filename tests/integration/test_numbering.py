"""
Integration tests for invoice numbering per company and type.
"""

import pytest
from datetime import date

from ledger.exceptions import InvalidStateError, NotFoundError
from ledger.models import Invoice, InvoiceStatus, InvoiceType
from ledger.services.invoice_service import delete_invoice, generate_invoice
from ledger.services.numbering_service import next_invoice_number, latest_invoice_number


def test_first_sales_invoice_is_s001(session, company1, make_invoice):
    invoice_id = make_invoice(company1, 'SALES', [])
    assert session.get(Invoice, invoice_id).invoice_no == 'S-001'


def test_numbers_are_sequential(session, company1, make_invoice):
    make_invoice(company1, 'SALES', [])
    second = make_invoice(company1, 'SALES', [])
    assert session.get(Invoice, second).invoice_no == 'S-002'


def test_deleted_numbers_are_not_reused(session, company1, make_invoice):
    first = make_invoice(company1, 'SALES', [])
    delete_invoice(first, session, company1.id)

    second = make_invoice(company1, 'SALES', [])

    assert session.get(Invoice, second).invoice_no == 'S-002'


def test_types_have_independent_sequences(session, company1, make_invoice):
    make_invoice(company1, 'SALES', [])
    make_invoice(company1, 'SALES', [])
    purchase = make_invoice(company1, 'PURCHASE', [])

    assert session.get(Invoice, purchase).invoice_no == 'P-001'


def test_companies_have_independent_sequences(session, company1, company2, make_invoice):
    make_invoice(company1, 'SALES', [])
    other = make_invoice(company2, 'SALES', [])

    assert session.get(Invoice, other).invoice_no == 'S-001'


def test_numeric_not_lexicographic_maximum(session, company1):
    for invoice_no in ('S-999', 'S-1000'):
        session.add(Invoice(company_id=company1.id, invoice_no=invoice_no, invoice_type=InvoiceType.SALES,
                            status=InvoiceStatus.AWAITING_APPROVAL, date=date(2024, 1, 1), is_deleted=False))
    session.commit()

    assert latest_invoice_number(session, company1.id, InvoiceType.SALES) == 'S-1000'
    assert next_invoice_number(session, company1.id, InvoiceType.SALES) == 'S-1001'


def test_malformed_existing_number_raises(session, company1):
    session.add(Invoice(company_id=company1.id, invoice_no='SALES-7', invoice_type=InvoiceType.SALES,
                        status=InvoiceStatus.AWAITING_APPROVAL, date=date(2024, 1, 1), is_deleted=False))
    session.commit()

    with pytest.raises(InvalidStateError):
        next_invoice_number(session, company1.id, InvoiceType.SALES)


def test_generate_invoice_does_not_persist(session, company1):
    preview = generate_invoice(session, company1.id, 'purchase')

    assert preview['invoice_no'] == 'P-001'
    assert preview['status'] == 'AWAITING_APPROVAL'
    assert preview['date'] == date.today().isoformat()
    assert session.query(Invoice).count() == 0


def test_unknown_company(session, make_invoice):
    from ledger.models import Company
    ghost = Company(id=999, title='ghost')
    with pytest.raises(NotFoundError):
        make_invoice(ghost, 'SALES', [])
