"""Erros de domínio.

Os services levantam estas exceções; o handler registrado em ``app.main``
converte cada uma em ``{"detail": message}`` com o status correspondente.
"""


class AppError(Exception):
    status_code = 500
    default_message = "Erro interno do servidor"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Dados inválidos"


class InvalidDateError(ValidationError):
    default_message = "Data deve ser hoje ou futura"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Registro não encontrado"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflito com o estado atual"


class SlotUnavailableError(ConflictError):
    default_message = "Horário não disponível, escolha outro horário"


class UnavailableError(AppError):
    status_code = 404
    default_message = "Recurso indisponível"


class LocationUnavailableError(UnavailableError):
    default_message = "Unidade não disponível"


class ExternalServiceError(AppError):
    status_code = 502
    default_message = "Falha ao comunicar com serviço externo"


class InternalError(AppError):
    pass
