# app/services/exceptions.py

class ServiceError(Exception):
    """Clase base para errores de la capa de servicio."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


class DomainValidationError(ServiceError):
    """Entrada de dominio inválida (producto, cupón, envío)."""
    pass


class InvalidQuantityError(DomainValidationError):
    """Lanzada cuando una cantidad es inválida (e.g., < 1 al agregar)."""
    pass


class PersistenceError(ServiceError):
    """El almacenamiento del carrito no pudo leer o escribir el snapshot."""
    pass


class SnapshotError(ServiceError):
    """Snapshot persistido corrupto o con una versión desconocida."""
    pass


class CartPersistenceWarning(UserWarning):
    """Aviso no fatal: el carrito sigue operando en memoria sin persistir."""
