"""JSON response helpers shared by the blueprints."""
from typing import Any, Dict, Optional

from flask import current_app, jsonify, request

from medsupply.exceptions import ValidationError


def json_body() -> Dict[str, Any]:
    """Request JSON object (empty dict when the body is missing)."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('El cuerpo de la solicitud debe ser un objeto JSON')
    return data


def wants_remote_wait() -> bool:
    return request.args.get('wait', '').lower() in ('1', 'true', 'yes')


def operation_response(result, payload: Optional[Dict[str, Any]] = None, status: int = 200):
    """
    Two-part response of a local mutation: local outcome and remote outcome.

    With ?wait=1 the remote half is awaited up to REMOTE_TIMEOUT seconds,
    otherwise it is reported as it stands (often 'pending').
    """
    if wants_remote_wait():
        result.wait(timeout=current_app.config.get('REMOTE_TIMEOUT', 10))

    body = result.to_dict()
    if payload:
        body.update(payload)
    return jsonify(body), status


def int_field(data: Dict[str, Any], name: str, label: str, errors: list, minimum: int = 0) -> Optional[int]:
    """Parse an integer field, appending a message to `errors` when invalid."""
    try:
        value = int(data.get(name))
    except (TypeError, ValueError):
        errors.append(f'{label} debe ser un número entero')
        return None
    if value < minimum:
        errors.append(f'{label} no puede ser menor a {minimum}')
        return None
    return value
