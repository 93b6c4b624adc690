# app/core/redis.py
import redis.asyncio as redis
from app.core.config import settings

# Клиент используется только для блокировки "главного воркера" при старте
# decode_responses=True автоматически декодирует ответы из байтов в строки
redis_client = redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)

STARTUP_LOCK_KEY = "installments_startup_lock"

async def acquire_startup_lock(ttl_seconds: int = 60) -> bool:
    """
    Пытается занять блокировку инициализации. Возвращает True только одному воркеру,
    именно он запускает планировщик.
    """
    return bool(await redis_client.set(STARTUP_LOCK_KEY, "1", ex=ttl_seconds, nx=True))

async def release_startup_lock():
    await redis_client.delete(STARTUP_LOCK_KEY)
