"""
Unit tests for the Firestore REST client (HTTP calls mocked).
"""

import pytest
import requests
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch, MagicMock
from medsupply.exceptions import NetworkError, NotFoundError, RemoteSyncError
from medsupply.services.firestore_client import FirestoreClient, encode_value, decode_value, decode_fields

DOCS = 'https://firestore.googleapis.com/v1/projects/demo/databases/(default)/documents'


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = ''
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f'{status_code} error')
    return response


@pytest.fixture
def client():
    return FirestoreClient('demo', api_key='key-123')


class TestCodec:

    def test_scalars(self):
        assert encode_value(None) == {'nullValue': None}
        assert encode_value(True) == {'booleanValue': True}
        assert encode_value(42) == {'integerValue': '42'}
        assert encode_value(Decimal('15.50')) == {'doubleValue': 15.5}
        assert encode_value('Lima') == {'stringValue': 'Lima'}

    def test_naive_datetime_is_utc(self):
        assert encode_value(datetime(2024, 5, 17, 14, 3, 9)) == {'timestampValue': '2024-05-17T14:03:09Z'}

    def test_nested(self):
        encoded = encode_value({'productos': [{'cantidad': 3}]})
        assert encoded == {
            'mapValue': {'fields': {
                'productos': {'arrayValue': {'values': [
                    {'mapValue': {'fields': {'cantidad': {'integerValue': '3'}}}}
                ]}}
            }}
        }
        assert decode_value(encoded) == {'productos': [{'cantidad': 3}]}

    def test_decode_nanosecond_timestamp(self):
        value = decode_value({'timestampValue': '2024-05-17T14:03:09.123456789Z'})
        assert value == datetime(2024, 5, 17, 14, 3, 9, 123456, tzinfo=timezone.utc)

    @pytest.mark.parametrize('stamp,micros', [
        ('2024-05-17T14:03:09.1Z', 100000),
        ('2024-05-17T14:03:09.1234Z', 123400),
        ('2024-05-17T14:03:09.12345Z', 123450),
        ('2024-05-17T14:03:09Z', 0),
    ])
    def test_decode_timestamp_fraction_lengths(self, stamp, micros):
        value = decode_value({'timestampValue': stamp})
        assert value == datetime(2024, 5, 17, 14, 3, 9, micros, tzinfo=timezone.utc)

    def test_decode_empty_array(self):
        assert decode_value({'arrayValue': {}}) == []

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            encode_value(object())


class TestRequests:

    def test_requires_project(self):
        with pytest.raises(ValueError):
            FirestoreClient('')

    def test_query_builds_structured_query(self, client):
        rows = [
            {'document': {'name': f'{DOCS}/products/abc', 'fields': {'nombre': {'stringValue': 'Paracetamol'}}}},
            {'readTime': '2024-05-17T14:03:09Z'},
        ]
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(payload=rows)) as request:
            result = client.query('products', nombre='Paracetamol', activo=True)

        assert result == [('abc', {'nombre': 'Paracetamol'})]
        method, url = request.call_args.args
        assert method == 'POST'
        assert url == f'{DOCS}:runQuery'
        where = request.call_args.kwargs['json']['structuredQuery']['where']
        assert where['compositeFilter']['op'] == 'AND'
        assert len(where['compositeFilter']['filters']) == 2
        assert ('key', 'key-123') in request.call_args.kwargs['params']

    def test_add_returns_generated_id(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(payload={'name': f'{DOCS}/products/xyz'})) as request:
            assert client.add('products', {'nombre': 'Paracetamol'}) == 'xyz'

        assert request.call_args.args == ('POST', f'{DOCS}/products')

    def test_set_merge_uses_update_mask(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response()) as request:
            client.set('orders', 'Ana_20240517_140309_46500', {'estado': 'Enviado', 'total': 465.0})

        params = request.call_args.kwargs['params']
        assert ('updateMask.fieldPaths', 'estado') in params
        assert ('updateMask.fieldPaths', 'total') in params
        assert request.call_args.args[0] == 'PATCH'

    def test_update_requires_existing_document(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(status_code=404)) as request:
            with pytest.raises(NotFoundError):
                client.update('orders', 'missing', {'estado': 'Entregado'})

        assert ('currentDocument.exists', 'true') in request.call_args.kwargs['params']

    def test_get_missing_document_returns_none(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(status_code=404)):
            assert client.get('orders', 'missing') is None

    def test_connection_error_is_network_error(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   side_effect=requests.ConnectionError('offline')):
            with pytest.raises(NetworkError):
                client.add('products', {})

    def test_server_error_is_remote_sync_error(self, client):
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(status_code=503)):
            with pytest.raises(RemoteSyncError):
                client.add('products', {})

    def test_bearer_token_replaces_api_key(self):
        client = FirestoreClient('demo', api_key='key-123', token='tok')
        with patch('medsupply.services.firestore_client.requests.request',
                   return_value=make_response(payload=[])) as request:
            client.query('products')

        assert request.call_args.kwargs['headers']['Authorization'] == 'Bearer tok'
        assert request.call_args.kwargs['params'] == []


def test_decode_fields():
    assert decode_fields({'activo': {'booleanValue': True}, 'stock': {'integerValue': '7'}}) == {
        'activo': True,
        'stock': 7,
    }
