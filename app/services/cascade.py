# app/services/cascade.py

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    """
    Итог одного побочного шага после успешной оплаты (комиссия, план).
    Ошибка шага не влияет на ответ по самой оплате, но обязательно
    возвращается вызывающему коду, чтобы тот ее явно залогировал.
    """
    name: str
    ok: bool
    error: Optional[str] = None
    skipped: bool = False

    @classmethod
    def success(cls, name: str) -> "StepResult":
        return cls(name=name, ok=True)

    @classmethod
    def skip(cls, name: str, reason: str) -> "StepResult":
        return cls(name=name, ok=True, skipped=True, error=reason)

    @classmethod
    def failure(cls, name: str, error: Exception) -> "StepResult":
        return cls(name=name, ok=False, error=f"{type(error).__name__}: {error}")


def run_best_effort(db: Session, name: str, step: Callable[[], Optional[str]]) -> StepResult:
    """
    Выполняет шаг в собственной транзакции: успех - commit, любая ошибка - rollback.
    Исключение не пробрасывается, а превращается в StepResult.failure.
    Если шаг вернул строку, это причина пропуска (нечего было делать).
    """
    try:
        skip_reason = step()
        db.commit()
        if skip_reason:
            return StepResult.skip(name, skip_reason)
        return StepResult.success(name)
    except Exception as e:
        db.rollback()
        logger.error(f"Best-effort step '{name}' failed", exc_info=True)
        return StepResult.failure(name, e)
