"""
Remote document store backends.

The sync adapter talks to a document collection API with four primitives:
query by field equality, insert with a generated id, merge-upsert by id and
partial update by id. `InMemoryDocumentStore` keeps documents in-process;
`FirestoreClient` (firestore_client.py) talks to Cloud Firestore over REST.
"""
import copy
import threading
import uuid
from typing import Any, Dict, List, Optional, Tuple

from medsupply.exceptions import NotFoundError

Document = Dict[str, Any]


class RemoteDocumentStore:
    """Interface of a remote document collection API."""

    def query(self, collection: str, **equals) -> List[Tuple[str, Document]]:
        """Return (id, document) pairs whose fields equal every given value."""
        raise NotImplementedError

    def add(self, collection: str, data: Document) -> str:
        """Insert a document under a generated id and return the id."""
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Document, merge: bool = True) -> None:
        """Create the document at `doc_id` or merge `data` into it."""
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        """
        Update some fields of an existing document.

        Raises:
            NotFoundError: If no document exists at `doc_id`
        """
        raise NotImplementedError


class InMemoryDocumentStore(RemoteDocumentStore):
    """Thread-safe in-process document store (offline mode and tests)."""

    def __init__(self):
        self._collections: Dict[str, Dict[str, Document]] = {}
        self._lock = threading.Lock()

    def _collection(self, name: str) -> Dict[str, Document]:
        return self._collections.setdefault(name, {})

    def query(self, collection: str, **equals) -> List[Tuple[str, Document]]:
        with self._lock:
            docs = self._collection(collection)
            return [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in docs.items()
                if all(doc.get(field) == value for field, value in equals.items())
            ]

    def add(self, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self._collection(collection)[doc_id] = copy.deepcopy(data)
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        with self._lock:
            doc = self._collection(collection).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def set(self, collection: str, doc_id: str, data: Document, merge: bool = True) -> None:
        with self._lock:
            docs = self._collection(collection)
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def update(self, collection: str, doc_id: str, fields: Document) -> None:
        with self._lock:
            docs = self._collection(collection)
            if doc_id not in docs:
                raise NotFoundError(f'Documento {collection}/{doc_id} no encontrado')
            docs[doc_id].update(copy.deepcopy(fields))

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collection(collection))

    def clear(self) -> None:
        with self._lock:
            self._collections.clear()
