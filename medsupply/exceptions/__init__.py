"""Custom exceptions for the medical supplies application."""


class MedSupplyError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv


class BusinessLogicError(MedSupplyError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class ValidationError(BusinessLogicError):
    """Raised when caller-side input does not satisfy the business rules."""
    def __init__(self, message, errors=None):
        payload = {'errors': list(errors)} if errors else None
        super().__init__(message, status_code=400, payload=payload)
        self.errors = list(errors or [])


class InsufficientStockError(BusinessLogicError):
    """Raised when an operation fails due to lack of stock."""
    def __init__(self, product_name, required, available):
        message = f"Stock insuficiente para {product_name}: se requieren {required}, disponible {available}"
        super().__init__(message, status_code=409)
        self.product_name = product_name
        self.required = required
        self.available = available


class ProductInUseError(BusinessLogicError):
    """Raised when a product referenced by order lines is deactivated."""
    def __init__(self, product_name):
        super().__init__(
            f'El producto "{product_name}" tiene pedidos asociados y no puede eliminarse',
            status_code=409
        )


class OrderNotDeletableError(BusinessLogicError):
    """Raised when deleting an order in a state that forbids it."""
    def __init__(self, order_id, status):
        super().__init__(
            f'El pedido #{order_id} está en estado {status} y no puede eliminarse',
            status_code=409
        )


class InvalidTransitionError(BusinessLogicError):
    """Raised for an order status change the lifecycle does not allow."""
    def __init__(self, current, target):
        super().__init__(
            f'Transición de estado inválida: {current} → {target}',
            status_code=409,
            payload={'from': current, 'to': target}
        )


class NotFoundError(MedSupplyError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class StorageError(MedSupplyError):
    """Local persistence failure. Fatal for the operation that triggered it."""
    def __init__(self, message="Error de almacenamiento local", payload=None):
        super().__init__(message, 500, payload)


class RemoteSyncError(MedSupplyError):
    """Remote document store rejected or failed a request."""
    def __init__(self, message="Error al sincronizar con el servidor remoto", payload=None):
        super().__init__(message, 502, payload)


class NetworkError(RemoteSyncError):
    """Remote document store could not be reached."""
    def __init__(self, message="Error de conexión con el servidor remoto", payload=None):
        super().__init__(message, payload)
