from typing import Any, Dict


class WorkflowError(Exception):
    """
    Error base del flujo de alertas e incidentes.

    Cada subclase define un `code` estable y el status HTTP con el que la capa
    de transporte lo expone como `{code, message}`.
    """

    code = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


class ValidationError(WorkflowError):
    """Entrada mal formada: notas vacías, valor de enum inválido, etc."""

    code = "validation_error"
    status_code = 422


class ConflictError(WorkflowError):
    """Transición no permitida desde el estado actual o escritura concurrente perdida."""

    code = "conflict"
    status_code = 409


class NotFoundError(WorkflowError):
    """La entidad no existe o pertenece a otro tenant (indistinguibles)."""

    code = "not_found"
    status_code = 404


class DependencyUnavailableError(WorkflowError):
    """Cache o store no disponible (conexión, timeout, error del backend)."""

    code = "dependency_unavailable"
    status_code = 503
