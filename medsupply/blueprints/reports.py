"""Reports blueprint."""
from flask import Blueprint, current_app, jsonify, request

from medsupply.database import get_session
from medsupply.services import report_service
from medsupply.utils.formatters import money_pe

reports_bp = Blueprint('reports', __name__, url_prefix='/reports')


def _with_display(data: dict, field: str) -> dict:
    data = dict(data)
    data[f'{field}_display'] = money_pe(data[field], current_app.config.get('CURRENCY_SYMBOL', 'S/.'))
    data[field] = str(data[field])
    return data


@reports_bp.route('/statistics')
def statistics():
    return jsonify(report_service.get_statistics(get_session()))


@reports_bp.route('/inventory')
def inventory():
    report = report_service.get_inventory_report(get_session())
    return jsonify(_with_display(report, 'stock_value'))


@reports_bp.route('/orders')
def orders():
    report = report_service.get_orders_report(get_session())
    return jsonify(_with_display(report, 'sales_total'))


@reports_bp.route('/destinations')
def destinations():
    """Sales per destination (?limit=N, default 5, 0 for all)."""
    limit = request.args.get('limit', type=int, default=report_service.TOP_DESTINATIONS)
    report = report_service.get_destination_report(get_session(), limit=limit or None)
    return jsonify({
        'destinations': [_with_display(row, 'total') for row in report['destinations']]
    })
