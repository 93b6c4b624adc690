# app/core/limiter.py

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

logger = logging.getLogger(__name__)

# --- Функция-ключ для идентификации запросов ---

def key_func(request: Request) -> str:
    """
    Определяет, как идентифицировать запрос для применения лимита.
    Приоритет: ID пользователя (если авторизован) -> IP-адрес.
    """
    # Пользователь кладется в request.state зависимостью get_current_user
    user = getattr(request.state, "user", None)

    if user is not None and user.id:
        return f"user:{user.id}"

    return get_remote_address(request)

# --- Создание и конфигурация лимитера ---

# Лимиты вешаются на платежные эндпоинты: создание платежа и его подтверждение.
# 'moving-window' - гибкий алгоритм без "всплесков" на границе окна.
limiter = Limiter(
    key_func=key_func,
    enabled=settings.RATE_LIMIT_ENABLED,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
    strategy="moving-window",
)
