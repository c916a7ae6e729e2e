# barberia_core/dominio/errores.py
"""Errores de dominio y su traducción a HTTP."""


class ErrorDominio(RuntimeError):
    """Base de los errores de negocio."""

    status_code = 400
    codigo = "Error"

    def __init__(self, mensaje: str) -> None:
        super().__init__(mensaje)
        self.mensaje = mensaje


class ValidationError(ErrorDominio):
    """Datos faltantes o mal formados; se rechaza antes de tocar nada."""

    status_code = 422
    codigo = "ValidationFailed"


class AuthorizationError(ErrorDominio):
    """El rol o la identidad de quien llama no permite la operación."""

    status_code = 403
    codigo = "Unauthorized"


class ConflictError(ErrorDominio):
    """El horario ya no está disponible (reserva concurrente)."""

    status_code = 409
    codigo = "SlotUnavailable"


class NotFoundError(ErrorDominio):
    """Servicio, producto u orden inexistente, inactivo o dado de baja."""

    status_code = 404
    codigo = "InvalidItem"


class StateError(ErrorDominio):
    """Operación sobre una orden en estado terminal."""

    status_code = 409
    codigo = "InvalidState"
