"""
Utilidades de formateo.
Montos en soles y fechas para mensajes y reportes.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, datetime
from typing import Union, Optional


def money_pe(value: Union[int, float, Decimal, str, None], symbol: str = 'S/.') -> str:
    """
    Formatea un monto en soles con dos decimales.

    Examples:
        money_pe(15.5) -> "S/. 15.50"
        money_pe(1234.567) -> "S/. 1,234.57"
        money_pe(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        amount = Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    return f"{symbol} {amount:,.2f}"


def datetime_pe(value: Optional[Union[date, datetime]]) -> str:
    """dd/mm/YYYY HH:MM (o solo la fecha si no hay hora)."""
    if value is None:
        return "-"
    if isinstance(value, datetime):
        return value.strftime('%d/%m/%Y %H:%M')
    return value.strftime('%d/%m/%Y')
