"""Cloud Firestore REST client used as the remote document store."""
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import requests

from medsupply.exceptions import NetworkError, NotFoundError, RemoteSyncError
from medsupply.services.remote_store import RemoteDocumentStore, Document

logger = logging.getLogger(__name__)

_FRACTION_RE = re.compile(r'\.(\d+)')


def _microseconds(match) -> str:
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    return '.' + match.group(1)[:6].ljust(6, '0')


def encode_value(value: Any) -> Dict[str, Any]:
    """Encode a Python value as a Firestore typed value."""
    if value is None:
        return {'nullValue': None}
    if isinstance(value, bool):
        return {'booleanValue': value}
    if isinstance(value, int):
        return {'integerValue': str(value)}
    if isinstance(value, (float, Decimal)):
        return {'doubleValue': float(value)}
    if isinstance(value, str):
        return {'stringValue': value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        stamp = value.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')
        return {'timestampValue': stamp}
    if isinstance(value, (list, tuple)):
        return {'arrayValue': {'values': [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {'mapValue': {'fields': encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} for Firestore")


def encode_fields(data: Document) -> Dict[str, Any]:
    return {key: encode_value(value) for key, value in data.items()}


def decode_value(value: Dict[str, Any]) -> Any:
    """Decode a Firestore typed value into a Python value."""
    if 'nullValue' in value:
        return None
    if 'booleanValue' in value:
        return value['booleanValue']
    if 'integerValue' in value:
        return int(value['integerValue'])
    if 'doubleValue' in value:
        return float(value['doubleValue'])
    if 'stringValue' in value:
        return value['stringValue']
    if 'timestampValue' in value:
        stamp = _FRACTION_RE.sub(_microseconds, value['timestampValue']).replace('Z', '+00:00')
        return datetime.fromisoformat(stamp)
    if 'arrayValue' in value:
        return [decode_value(v) for v in value['arrayValue'].get('values', [])]
    if 'mapValue' in value:
        return decode_fields(value['mapValue'].get('fields', {}))
    raise ValueError(f"Unsupported Firestore value: {sorted(value)}")


def decode_fields(fields: Dict[str, Any]) -> Document:
    return {key: decode_value(value) for key, value in fields.items()}


def _doc_id(name: str) -> str:
    """Last path segment of a document resource name."""
    return name.rsplit('/', 1)[-1]


class FirestoreClient(RemoteDocumentStore):
    """Cliente para interactuar con la API REST de Cloud Firestore."""

    BASE_URL = "https://firestore.googleapis.com/v1"

    def __init__(
        self,
        project_id: str,
        database: str = '(default)',
        api_key: Optional[str] = None,
        token: Optional[str] = None,
        timeout: int = 10
    ):
        """
        Initialize Firestore client.

        Args:
            project_id: Google Cloud project id
            database: Firestore database id
            api_key: Web API key (sent as ?key=)
            token: OAuth2 bearer token (takes precedence over api_key)
            timeout: Request timeout in seconds
        """
        if not project_id:
            raise ValueError("FIRESTORE_PROJECT_ID is required")

        self.documents_url = f"{self.BASE_URL}/projects/{project_id}/databases/{database}/documents"
        self.timeout = timeout
        self.api_key = api_key
        self.headers = {'Content-Type': 'application/json'}
        if token:
            self.headers['Authorization'] = f'Bearer {token}'

    def _params(self, extra: Optional[List[Tuple[str, str]]] = None) -> List[Tuple[str, str]]:
        params = list(extra or [])
        if self.api_key and 'Authorization' not in self.headers:
            params.append(('key', self.api_key))
        return params

    def _request(self, method: str, url: str, params=None, json=None) -> requests.Response:
        try:
            response = requests.request(
                method,
                url,
                params=self._params(params),
                json=json,
                headers=self.headers,
                timeout=self.timeout
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"[FS] {method} {url} unreachable: {e}")
            raise NetworkError(f'No se pudo conectar con Firestore: {e}') from e

        if response.status_code == 404:
            raise NotFoundError(f'Documento no encontrado en Firestore: {url}')

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            logger.error(f"[FS] {method} {url} failed: {response.status_code} {response.text}")
            raise RemoteSyncError(f'Firestore respondió {response.status_code}') from e

        return response

    def query(self, collection: str, **equals) -> List[Tuple[str, Document]]:
        filters = [
            {
                'fieldFilter': {
                    'field': {'fieldPath': field},
                    'op': 'EQUAL',
                    'value': encode_value(value)
                }
            }
            for field, value in equals.items()
        ]
        structured_query: Dict[str, Any] = {'from': [{'collectionId': collection}]}
        if len(filters) == 1:
            structured_query['where'] = filters[0]
        elif filters:
            structured_query['where'] = {'compositeFilter': {'op': 'AND', 'filters': filters}}

        response = self._request(
            'POST',
            f"{self.documents_url}:runQuery",
            json={'structuredQuery': structured_query}
        )

        results = []
        for row in response.json():
            document = row.get('document')
            if document:
                results.append((_doc_id(document['name']), decode_fields(document.get('fields', {}))))

        logger.debug(f"[FS] query {collection} {equals}: {len(results)} documents")
        return results

    def add(self, collection: str, data: Document) -> str:
        response = self._request(
            'POST',
            f"{self.documents_url}/{collection}",
            json={'fields': encode_fields(data)}
        )
        doc_id = _doc_id(response.json()['name'])
        logger.info(f"[FS] Created {collection}/{doc_id}")
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        try:
            response = self._request('GET', f"{self.documents_url}/{collection}/{doc_id}")
        except NotFoundError:
            return None
        return decode_fields(response.json().get('fields', {}))

    def set(self, collection: str, doc_id: str, data: Document, merge: bool = True) -> None:
        params = [('updateMask.fieldPaths', field) for field in data] if merge else []
        self._request(
            'PATCH',
            f"{self.documents_url}/{collection}/{doc_id}",
            params=params,
            json={'fields': encode_fields(data)}
        )
        logger.info(f"[FS] Set {collection}/{doc_id} (merge={merge})")

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        params = [('updateMask.fieldPaths', field) for field in fields]
        params.append(('currentDocument.exists', 'true'))
        self._request(
            'PATCH',
            f"{self.documents_url}/{collection}/{doc_id}",
            params=params,
            json={'fields': encode_fields(fields)}
        )
        logger.info(f"[FS] Updated {collection}/{doc_id}: {sorted(fields)}")
