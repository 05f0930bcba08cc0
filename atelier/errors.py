"""
Domain errors raised by the scheduling and lifecycle services
"""


class WorkshopError(Exception):
    """Base error for every failed workshop operation"""

    code = "workshop_error"
    status_code = 400
    message = "No se pudo completar la operación"

    def __init__(self, message: str = None, **context):
        self.message = message or self.message
        self.context = context
        super().__init__(self.message)


class InvalidParameter(WorkshopError):
    code = "invalid_parameter"
    message = "Parámetro inválido"


class MissingField(WorkshopError):
    code = "missing_field"
    message = "Faltan campos obligatorios"

    def __init__(self, *fields: str):
        super().__init__(
            f"Faltan campos obligatorios: {', '.join(fields)}",
            fields=list(fields),
        )


class SlotConflict(WorkshopError):
    code = "slot_conflict"
    status_code = 409
    message = "Ya existe una cita programada para esta fecha y hora"


class AvailabilityCheckFailed(WorkshopError):
    code = "availability_check_failed"
    status_code = 503
    message = "No se pudo verificar la disponibilidad del horario"


class InvalidStatus(WorkshopError):
    code = "invalid_status"
    message = "Estado desconocido"


class IllegalTransition(WorkshopError):
    code = "illegal_transition"
    status_code = 409

    def __init__(self, current: str, target: str):
        super().__init__(
            f"No se puede pasar de '{current}' a '{target}'",
            current=current,
            target=target,
        )


class NotFound(WorkshopError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(
            f"{entity} {entity_id} no encontrado",
            entity=entity,
            entity_id=entity_id,
        )


class StaleUpdate(WorkshopError):
    code = "stale_update"
    status_code = 409
    message = "El registro fue modificado por otra sesión, recargue e intente de nuevo"
