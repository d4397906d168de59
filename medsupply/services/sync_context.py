"""
Remote sync wiring.

Builds the document store, adapter, dispatcher, lifecycle coordinator and
reconciliation job once per application from its config and keeps them in
`app.extensions['medsupply']`.
"""
import logging
import random
from dataclasses import dataclass
from typing import Optional

from flask import Flask, current_app

from medsupply.services.remote_store import RemoteDocumentStore, InMemoryDocumentStore
from medsupply.services.firestore_client import FirestoreClient
from medsupply.services.sync_dispatcher import SyncDispatcher
from medsupply.services.sync_service import RemoteSyncAdapter
from medsupply.services.lifecycle_service import OrderLifecycleCoordinator
from medsupply.services.reconciliation_service import ReconciliationJob

logger = logging.getLogger(__name__)


@dataclass
class SyncContext:
    store: RemoteDocumentStore
    adapter: RemoteSyncAdapter
    dispatcher: SyncDispatcher
    coordinator: OrderLifecycleCoordinator
    reconciliation: ReconciliationJob

    def shutdown(self) -> None:
        self.dispatcher.shutdown(wait_for_pending=True)


def build_store(config) -> RemoteDocumentStore:
    """
    Create the remote store selected by REMOTE_BACKEND ('memory' or 'firestore').

    Raises:
        ValueError: Unknown backend, or firestore without FIRESTORE_PROJECT_ID
    """
    backend = (config.get('REMOTE_BACKEND') or 'memory').lower()
    if backend == 'memory':
        return InMemoryDocumentStore()
    if backend == 'firestore':
        return FirestoreClient(
            project_id=config.get('FIRESTORE_PROJECT_ID'),
            database=config.get('FIRESTORE_DATABASE', '(default)'),
            api_key=config.get('FIRESTORE_API_KEY'),
            token=config.get('FIRESTORE_TOKEN'),
            timeout=config.get('REMOTE_TIMEOUT', 10)
        )
    raise ValueError(f"Unknown REMOTE_BACKEND: {backend}")


def build_sync_context(config, store: Optional[RemoteDocumentStore] = None,
                       rng: Optional[random.Random] = None) -> SyncContext:
    store = store or build_store(config)
    adapter = RemoteSyncAdapter(
        store,
        products_collection=config.get('REMOTE_PRODUCTS_COLLECTION', 'products'),
        orders_collection=config.get('REMOTE_ORDERS_COLLECTION', 'orders')
    )
    dispatcher = SyncDispatcher(
        max_workers=config.get('SYNC_MAX_WORKERS', 4),
        inline=config.get('SYNC_INLINE', False)
    )
    return SyncContext(
        store=store,
        adapter=adapter,
        dispatcher=dispatcher,
        coordinator=OrderLifecycleCoordinator(adapter, dispatcher),
        reconciliation=ReconciliationJob(
            adapter,
            dispatcher,
            rng=rng,
            stock_range=config.get('PULL_STOCK_RANGE', (10, 100)),
            min_stock_range=config.get('PULL_MIN_STOCK_RANGE', (5, 25))
        )
    )


def init_sync(app: Flask, store: Optional[RemoteDocumentStore] = None) -> SyncContext:
    """Initialize the sync context for `app`."""
    context = build_sync_context(app.config, store=store)
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions['medsupply'] = context
    logger.info(
        f"[SYNC] Remote backend: {type(context.store).__name__} "
        f"(inline={context.dispatcher.inline})"
    )
    return context


def get_sync() -> SyncContext:
    """Sync context of the current application."""
    context = current_app.extensions.get('medsupply')
    if context is None:
        raise RuntimeError("Sync not initialized.")
    return context
