"""
Tests for the record API.
"""

from investor_forms.audit_logger import AuditAction
from investor_forms.models import AuditLog


ACCREDITATION_PAYLOAD = {
    'rrName': 'Alex Broker',
    'rrNo': 'A123',
    'customerNames': 'Jane Doe',
    'accountOwnerSignature': 'Jane Doe (signed)',
    'accountOwnerPrintedName': 'Jane Doe',
    'accountOwnerDate': '2024-06-01T00:00:00.000Z',
    'hasJointOwner': False,
}


def create(client, form_type='accreditation', payload=None, page=None):
    body = {'payload': ACCREDITATION_PAYLOAD if payload is None else payload}
    if page is not None:
        body['page'] = page
    return client.post(f'/api/forms/{form_type}', json=body)


class TestValidateEndpoint:
    def test_valid(self, client, accreditation_snapshot):
        response = client.post('/api/forms/accreditation/validate', json={'data': accreditation_snapshot})
        assert response.status_code == 200
        assert response.get_json() == {'ok': True, 'errors': {}}

    def test_invalid(self, app, client):
        response = client.post('/api/forms/accreditation/validate', json={'data': {'rr_name': 'Alex Broker'}})
        assert response.status_code == 422
        body = response.get_json()
        assert body['ok'] is False
        assert body['errors']['rr_no'] == 'RR No. is required'

        with app.app_context():
            entry = AuditLog.query.filter_by(action=AuditAction.VALIDATION_FAILED).one()
            assert entry.form_type == 'accreditation'
            assert entry.actor_type == 'user'
            assert 'Alex Broker' not in (entry.details_json or '')

    def test_derived_joint_owner(self, client, accreditation_snapshot):
        accreditation_snapshot['customer_names'] = 'Jane and John Doe'
        response = client.post('/api/forms/accreditation/validate', json={'data': accreditation_snapshot})
        assert response.status_code == 422
        assert 'joint_account_owner_signature' in response.get_json()['errors']

    def test_page_scope(self, client, holder_snapshot):
        del holder_snapshot['signature']
        response = client.post(
            '/api/forms/additional_holder/validate', json={'data': holder_snapshot, 'page': 1}
        )
        assert response.status_code == 200

    def test_bad_page(self, client):
        for page in (3, 'one', True):
            response = client.post('/api/forms/additional_holder/validate', json={'data': {}, 'page': page})
            assert response.status_code == 400

    def test_missing_data(self, client):
        assert client.post('/api/forms/accreditation/validate', json={}).status_code == 400
        assert client.post('/api/forms/accreditation/validate', data='nope').status_code == 400

    def test_unknown_form_type(self, client):
        response = client.post('/api/forms/w9/validate', json={'data': {}})
        assert response.status_code == 404
        assert response.get_json()['ok'] is False

    def test_markup_is_stripped(self, client, accreditation_snapshot):
        accreditation_snapshot['rr_name'] = '<b>Alex</b> Broker'
        response = client.post('/api/forms/accreditation/validate', json={'data': accreditation_snapshot})
        assert response.status_code == 200


class TestRecordEndpoints:
    def test_create_and_get(self, client):
        response = create(client)
        assert response.status_code == 201
        data = response.get_json()['data']
        assert data['pageCompletionStatus']['1']['completed'] is True

        response = client.get(f'/api/forms/accreditation/{data["id"]}')
        assert response.status_code == 200
        record = response.get_json()['data']
        assert record['rrName'] == 'Alex Broker'
        assert record['hasJointOwner'] is False
        assert record['status'] == 'draft'

    def test_create_sanitizes(self, client):
        payload = dict(ACCREDITATION_PAYLOAD, customerNames='<script>x</script>Jane Doe')
        record_id = create(client, payload=payload).get_json()['data']['id']
        record = client.get(f'/api/forms/accreditation/{record_id}').get_json()['data']
        assert record['customerNames'] == 'Jane Doe'

    def test_create_bad_requests(self, client):
        assert client.post('/api/forms/accreditation', json={}).status_code == 400
        assert create(client, page='1').status_code == 400
        assert create(client, page=2).status_code == 400
        assert create(client, form_type='w9').status_code == 404

    def test_get_missing(self, client):
        response = client.get('/api/forms/accreditation/missing')
        assert response.status_code == 404
        assert response.get_json()['ok'] is False

    def test_get_under_other_form_type(self, client):
        record_id = create(client).get_json()['data']['id']
        assert client.get(f'/api/forms/alt_order/{record_id}').status_code == 404

    def test_update_page(self, client):
        record_id = create(client, 'additional_holder', {'name': 'Jane Doe'}).get_json()['data']['id']

        response = client.put(
            f'/api/forms/additional_holder/{record_id}/pages/2',
            json={'payload': {'signature': 'Jane Doe (signed)'}},
        )
        assert response.status_code == 200
        assert set(response.get_json()['data']['pageCompletionStatus']) == {'1', '2'}

        response = client.put(f'/api/forms/additional_holder/{record_id}/pages/5', json={'payload': {}})
        assert response.status_code == 400

    def test_update_default_page(self, client):
        record_id = create(client).get_json()['data']['id']
        payload = dict(ACCREDITATION_PAYLOAD, rrNo='B456')
        assert client.put(f'/api/forms/accreditation/{record_id}', json={'payload': payload}).status_code == 200
        record = client.get(f'/api/forms/accreditation/{record_id}').get_json()['data']
        assert record['rrNo'] == 'B456'

    def test_update_missing(self, client):
        response = client.put('/api/forms/accreditation/missing', json={'payload': {}})
        assert response.status_code == 404

    def test_submit(self, client):
        record_id = create(client).get_json()['data']['id']

        response = client.post(f'/api/forms/accreditation/{record_id}/submit')
        assert response.status_code == 200
        assert response.get_json()['data'] == {'id': record_id, 'status': 'submitted'}

        assert client.post(f'/api/forms/accreditation/{record_id}/submit').status_code == 409

    def test_submit_invalid(self, client):
        record_id = create(client, payload={'rrName': 'Alex Broker'}).get_json()['data']['id']
        response = client.post(f'/api/forms/accreditation/{record_id}/submit')
        assert response.status_code == 422
        assert response.get_json()['errors']['customer_names'] == 'Customer Name(s) is required'

    def test_unknown_route_is_json(self, client):
        response = client.get('/api/forms/accreditation/abc/extra')
        assert response.status_code == 404
