"""
Integration tests for the invoices and products JSON API.

Every request removes the scoped session on teardown, which detaches the
fixture objects, so ids are read before the first request.
"""

from decimal import Decimal


def _create(client, company_id, invoice_type, lines, invoice_date='2024-01-15'):
    response = client.post(f'/companies/{company_id}/invoices', json={
        'invoice_type': invoice_type,
        'date': invoice_date,
        'lines': lines,
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()


class TestInvoiceLifecycle:

    def test_purchase_then_sale(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id

        purchase = _create(client, company_id, 'PURCHASE',
                           [{'product_id': product_id, 'quantity': 10, 'price': '50.00', 'tax': 10}])
        assert purchase['invoice_no'] == 'P-001'
        assert purchase['status'] == 'AWAITING_APPROVAL'

        response = client.post(f"/companies/{company_id}/invoices/{purchase['id']}/approve")
        assert response.status_code == 200
        assert response.get_json()['status'] == 'APPROVED'

        sale = _create(client, company_id, 'SALES',
                       [{'product_id': product_id, 'quantity': 4, 'price': '80.00', 'tax': 10}])
        response = client.post(f"/companies/{company_id}/invoices/{sale['id']}/approve")
        data = response.get_json()

        assert response.status_code == 200
        assert Decimal(data['lines'][0]['profit_loss']) == Decimal('132.00')
        assert Decimal(data['price']) == Decimal('320.00')
        assert Decimal(data['tax']) == Decimal('32.00')
        assert Decimal(data['total']) == Decimal('352.00')

        product = client.get(f'/companies/{company_id}/products/{product_id}').get_json()
        assert product['quantity_in_stock'] == 6
        assert [layer['remaining_quantity'] for layer in product['cost_layers']] == [6]

    def test_insufficient_stock_returns_409_and_removes_line(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id

        sale = _create(client, company_id, 'SALES',
                       [{'product_id': product_id, 'quantity': 1, 'price': '80.00', 'tax': 10}])

        response = client.post(f"/companies/{company_id}/invoices/{sale['id']}/approve")
        data = response.get_json()

        assert response.status_code == 409
        assert data['error'] == 'InsufficientStockError'
        assert data['product'] == 'Product X'

        detail = client.get(f"/companies/{company_id}/invoices/{sale['id']}").get_json()
        assert detail['lines'] == []
        assert detail['status'] == 'AWAITING_APPROVAL'

    def test_second_approval_conflicts(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id

        purchase = _create(client, company_id, 'PURCHASE',
                           [{'product_id': product_id, 'quantity': 1, 'price': '5.00', 'tax': 0}])
        client.post(f"/companies/{company_id}/invoices/{purchase['id']}/approve")

        response = client.post(f"/companies/{company_id}/invoices/{purchase['id']}/approve")

        assert response.status_code == 409
        assert response.get_json()['error'] == 'InvalidStateError'

    def test_approved_invoice_cannot_be_deleted(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id

        purchase = _create(client, company_id, 'PURCHASE',
                           [{'product_id': product_id, 'quantity': 3, 'price': '5.00', 'tax': 0}])
        client.post(f"/companies/{company_id}/invoices/{purchase['id']}/approve")

        response = client.delete(f"/companies/{company_id}/invoices/{purchase['id']}")

        assert response.status_code == 409
        product = client.get(f'/companies/{company_id}/products/{product_id}').get_json()
        assert [layer['remaining_quantity'] for layer in product['cost_layers']] == [3]

    def test_delete_hides_invoice_but_keeps_number(self, client, company1):
        company_id = company1.id
        first = _create(client, company_id, 'SALES', [])

        response = client.delete(f"/companies/{company_id}/invoices/{first['id']}")
        assert response.status_code == 200

        assert client.get(f"/companies/{company_id}/invoices/{first['id']}").status_code == 404
        assert client.get(f'/companies/{company_id}/invoices?type=SALES').get_json()['invoices'] == []

        preview = client.get(f'/companies/{company_id}/invoices/new?type=SALES').get_json()
        assert preview['invoice_no'] == 'S-002'

    def test_list_is_ordered_by_number_desc(self, client, company1):
        company_id = company1.id
        for _ in range(3):
            _create(client, company_id, 'SALES', [])

        invoices = client.get(f'/companies/{company_id}/invoices?type=SALES').get_json()['invoices']

        assert [inv['invoice_no'] for inv in invoices] == ['S-003', 'S-002', 'S-001']

    def test_latest_approved(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id
        for day in ('2024-01-01', '2024-01-02', '2024-01-03', '2024-01-04'):
            inv = _create(client, company_id, 'PURCHASE',
                          [{'product_id': product_id, 'quantity': 1, 'price': '1.00', 'tax': 0}], day)
            client.post(f"/companies/{company_id}/invoices/{inv['id']}/approve")
        _create(client, company_id, 'PURCHASE', [], '2024-02-01')

        invoices = client.get(f'/companies/{company_id}/invoices/latest').get_json()['invoices']

        assert [inv['date'] for inv in invoices] == ['2024-01-04', '2024-01-03', '2024-01-02']

    def test_update_only_changes_date(self, client, company1):
        company_id = company1.id
        inv = _create(client, company_id, 'SALES', [])

        response = client.put(f"/companies/{company_id}/invoices/{inv['id']}", json={
            'date': '2024-05-05', 'invoice_no': 'S-999', 'status': 'APPROVED'
        })
        data = response.get_json()

        assert response.status_code == 200
        assert data['date'] == '2024-05-05'
        assert data['invoice_no'] == 'S-001'
        assert data['status'] == 'AWAITING_APPROVAL'

    def test_add_and_remove_line(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id
        inv = _create(client, company_id, 'SALES', [])

        response = client.post(f"/companies/{company_id}/invoices/{inv['id']}/lines", json={
            'product_id': product_id, 'quantity': 3, 'price': '100.00', 'tax': 10
        })
        data = response.get_json()
        assert response.status_code == 201
        assert Decimal(data['total']) == Decimal('330.00')

        line_id = data['lines'][0]['id']
        response = client.delete(f"/companies/{company_id}/invoices/{inv['id']}/lines/{line_id}")
        assert response.get_json()['lines'] == []


class TestValidation:

    def test_unknown_company(self, client):
        response = client.get('/companies/999/invoices')
        assert response.status_code == 404

    def test_unknown_type(self, client, company1):
        response = client.post(f'/companies/{company1.id}/invoices', json={'invoice_type': 'REFUND'})
        assert response.status_code == 400

    def test_bad_lines(self, client, company1, product_x):
        company_id, product_id = company1.id, product_x.id
        for bad in ({'quantity': 0, 'price': '1.00', 'tax': 0},
                    {'quantity': 1, 'price': '-1.00', 'tax': 0},
                    {'quantity': 1, 'price': '1.001', 'tax': 0},
                    {'quantity': 1, 'price': '1.00', 'tax': 101}):
            bad['product_id'] = product_id
            response = client.post(f'/companies/{company_id}/invoices',
                                   json={'invoice_type': 'SALES', 'lines': [bad]})
            assert response.status_code == 400, bad

    def test_product_of_other_company(self, client, company1, company2, product_x):
        response = client.post(f'/companies/{company2.id}/invoices', json={
            'invoice_type': 'SALES',
            'lines': [{'product_id': product_x.id, 'quantity': 1, 'price': '1.00', 'tax': 0}]
        })
        assert response.status_code == 404


class TestProducts:

    def test_list_products(self, client, company1, product_x, product_y):
        company_id = company1.id

        response = client.get(f'/companies/{company_id}/products')
        products = response.get_json()['products']

        assert response.status_code == 200
        assert [p['name'] for p in products] == ['Product X', 'Product Y']
        assert products[0]['below_low_limit'] is True

    def test_unknown_company_is_404(self, client):
        assert client.get('/companies/999/products').status_code == 404
        assert client.get('/companies/999/products/1').status_code == 404

    def test_product_of_other_company_is_404(self, client, company2, product_x):
        response = client.get(f'/companies/{company2.id}/products/{product_x.id}')
        assert response.status_code == 404


def test_metrics_endpoint(client, company1, product_x):
    company_id, product_id = company1.id, product_x.id
    inv = _create(client, company_id, 'PURCHASE',
                  [{'product_id': product_id, 'quantity': 1, 'price': '1.00', 'tax': 0}])
    client.post(f"/companies/{company_id}/invoices/{inv['id']}/approve")

    response = client.get('/metrics')
    body = response.get_data(as_text=True)

    assert response.status_code == 200
    assert 'invoice_approvals_total' in body
    assert 'http_requests_total' in body
