"""
Error taxonomy for story generation and export.

Every error carries a localized ``user_message`` that is safe to show in the
UI; the technical text stays in the exception args and in the logs.
"""
from typing import Optional


GENERIC_FAILURE_MESSAGE = "Ocurrió un error inesperado. Por favor, inténtalo de nuevo."


class StoryError(Exception):
    user_message = GENERIC_FAILURE_MESSAGE

    def __init__(self, message: str, user_message: Optional[str] = None):
        super().__init__(message)
        if user_message:
            self.user_message = user_message


class ConfigurationError(StoryError):
    user_message = "Falta la configuración de las claves de API. Revisa tu archivo .env."


class StoryValidationError(StoryError):
    user_message = "Los datos del cuento no son válidos."


class UpstreamServiceError(StoryError):
    """A generation service answered with an error status or an unusable body."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.detail = message
        self.status_code = status_code
        self.user_message = f"El servicio {provider} no pudo completar la solicitud: {message}"


class InvalidCredentialError(UpstreamServiceError):
    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(provider, message, status_code)
        self.user_message = f"La clave de API de {provider} no es válida o no tiene permisos."


class MalformedResponseError(UpstreamServiceError):
    def __init__(self, provider: str, message: str = "The API returned an unexpected response structure."):
        super().__init__(provider, message)
        self.user_message = f"El servicio {provider} devolvió una respuesta inesperada."


class StoryStructureError(StoryError):
    user_message = "La IA no pudo generar la estructura del cuento. Por favor, inténtalo de nuevo."


class ExportError(StoryError):
    user_message = "No se pudo exportar el cuento."


def looks_like_bad_credential(status_code: Optional[int], message: str) -> bool:
    if status_code in (401, 403):
        return True
    lowered = (message or "").lower()
    return "api key not valid" in lowered or "api_key_invalid" in lowered


def upstream_error(provider: str, message: str, status_code: Optional[int] = None) -> UpstreamServiceError:
    if looks_like_bad_credential(status_code, message):
        return InvalidCredentialError(provider, message, status_code)
    return UpstreamServiceError(provider, message, status_code)


def user_message_for(exc: BaseException) -> str:
    if isinstance(exc, StoryError):
        return exc.user_message
    return GENERIC_FAILURE_MESSAGE
