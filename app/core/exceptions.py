# app/core/exceptions.py

from fastapi import HTTPException, status


class LedgerError(HTTPException):
    """
    Базовая ошибка бизнес-логики. Наследуется от HTTPException, чтобы сервисы
    могли бросать ее напрямую, а FastAPI сам отдавал корректный статус.
    """
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(status_code=self.status_code, detail=detail)


class ValidationError(LedgerError):
    """Не хватает обязательного поля или значение некорректно."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND


class PermissionDeniedError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN


class ConflictError(LedgerError):
    """
    Конфликт состояния: дубль, недостаточный баланс, повторная оплата за день.
    Дубли комиссий и повторная верификация наружу не выходят, это ожидаемый исход гонки.
    """
    status_code = status.HTTP_409_CONFLICT


class UpstreamError(LedgerError):
    """Ошибка платежного шлюза или невалидная подпись подтверждения."""
    status_code = status.HTTP_502_BAD_GATEWAY
