# errors.py
"""
Error taxonomy shared by the services and the HTTP layer.
Every error carries a machine-stable code and the HTTP status the API answers with.
"""


class ErrorCode:
    """Machine-stable error codes returned to API clients."""
    NOT_CONNECTED = 'not_connected'
    TRANSPORT_ERROR = 'transport_error'
    SUBJECT_NOT_FOUND = 'subject_not_found'
    NOT_FOUND = 'not_found'
    WINDOW_CLOSED = 'window_closed'
    DUPLICATE_KEY = 'duplicate_key'
    STORAGE_UNAVAILABLE = 'storage_unavailable'
    INVALID_INPUT = 'invalid_input'
    INVALID_CREDENTIALS = 'invalid_credentials'


class SchoolbellError(Exception):
    """Base class for errors that reach the request boundary."""

    error_code = 'error'
    status_code = 500
    default_message = 'Ocurrió un error inesperado'

    def __init__(self, message=None, **details):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def to_dict(self):
        payload = {
            'success': False,
            'message': self.message,
            'error_code': self.error_code,
        }
        payload.update(self.details)
        return payload


class NotConnected(SchoolbellError):
    """The messaging session is not ready; try again later."""
    error_code = ErrorCode.NOT_CONNECTED
    status_code = 503
    default_message = 'WhatsApp no está conectado'


class TransportError(SchoolbellError):
    """The transport rejected or failed a send."""
    error_code = ErrorCode.TRANSPORT_ERROR
    status_code = 502
    default_message = 'No se pudo enviar el mensaje'

    def __init__(self, cause, message=None):
        super().__init__(message or f'{self.default_message}: {cause}')
        self.cause = cause


class SubjectNotFound(SchoolbellError):
    error_code = ErrorCode.SUBJECT_NOT_FOUND
    status_code = 404
    default_message = 'Estudiante no encontrado'


class NotFound(SchoolbellError):
    error_code = ErrorCode.NOT_FOUND
    status_code = 404
    default_message = 'Recurso no encontrado'


class WindowClosed(SchoolbellError):
    error_code = ErrorCode.WINDOW_CLOSED
    status_code = 400
    default_message = 'Horario de asistencia cerrado'


class DuplicateKey(SchoolbellError):
    error_code = ErrorCode.DUPLICATE_KEY
    status_code = 409
    default_message = 'Identificador ya registrado'


class StorageUnavailable(SchoolbellError):
    """Transient storage failure; the client may retry."""
    error_code = ErrorCode.STORAGE_UNAVAILABLE
    status_code = 503
    default_message = 'Base de datos no disponible. Intenta de nuevo más tarde.'


class InvalidInput(SchoolbellError):
    error_code = ErrorCode.INVALID_INPUT
    status_code = 400
    default_message = 'Datos inválidos'


class InvalidCredentials(SchoolbellError):
    error_code = ErrorCode.INVALID_CREDENTIALS
    status_code = 401
    default_message = 'Usuario o contraseña incorrectos'


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing. Never handled."""
