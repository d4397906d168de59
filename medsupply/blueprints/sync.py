"""Sync blueprint: manual bidirectional sync and order reconciliation."""
import logging

from flask import Blueprint, jsonify

from medsupply.database import get_session
from medsupply.services import order_service
from medsupply.services.sync_context import get_sync

logger = logging.getLogger(__name__)

sync_bp = Blueprint('sync', __name__, url_prefix='/sync')


@sync_bp.route('', methods=['POST'])
def full_sync():
    """Push the catalog, pull remote-only products and reconcile orders."""
    session = get_session()
    report = get_sync().reconciliation.full_sync(session)
    body = report.to_dict()
    body['local'] = 'success'
    body['remote'] = 'failed' if report.pushed.failed or report.orders.failed or report.pushed.errors else 'success'
    return jsonify(body)


@sync_bp.route('/orders', methods=['POST'])
def sync_orders():
    """Re-upsert every Shipped and Delivered order."""
    session = get_session()
    summary = get_sync().reconciliation.reconcile_orders(order_service.list_orders(session))
    body = summary.to_dict()
    body['local'] = 'success'
    body['remote'] = 'failed' if summary.failed else 'success'
    return jsonify(body)
