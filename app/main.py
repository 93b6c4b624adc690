# app/main.py

import logging
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Конфигурация и ядро
from app.core.config import settings as config
from app.core.limiter import limiter
from app.core.logging_config import setup_logging
from app.core.redis import acquire_startup_lock, release_startup_lock
from app.clients.razorpay import razorpay_client

# Роутеры FastAPI
from app.routers.v1.api import api_router as v1_router
from app.routers.webhooks import razorpay_router

# Фоновые задачи
from app.services.commission_sweep import daily_commission_sweep_task
from app.services.maintenance import expire_stale_pending_transactions_task, reconcile_referrals_task

# --- Инициализация ---
logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()

# --- Обработчик критических ошибок ---
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик для всех необработанных исключений.
    Логирует ошибку с трейсбеком и отдает клиенту 500 без подробностей.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )

# --- Lifespan Manager (запуск и остановка приложения) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    # Надежная блокировка через Redis: планировщик поднимает только один воркер
    is_main_worker = await acquire_startup_lock()

    if is_main_worker:
        logger.info("This is the main worker. Starting scheduler...")

        if not scheduler.running:
            scheduler.add_job(
                daily_commission_sweep_task, 'cron',
                hour=config.COMMISSION_SWEEP_HOUR, minute=config.COMMISSION_SWEEP_MINUTE,
                timezone=config.BUSINESS_TIMEZONE
            )
            scheduler.add_job(expire_stale_pending_transactions_task, 'cron', minute=15, timezone=config.BUSINESS_TIMEZONE)
            scheduler.add_job(reconcile_referrals_task, 'cron', hour=3, minute=0, timezone=config.BUSINESS_TIMEZONE)
            scheduler.start()
            logger.info("Scheduler started with background jobs.")
    else:
        logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    # Код при остановке
    await razorpay_client.close()
    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await release_startup_lock()
    else:
        logger.info("Secondary worker shutting down.")

# --- Создание FastAPI приложения ---
app = FastAPI(
    title="Installments Service",
    description="Daily installments, referral commissions and wallet backend",
    version="0.1.0",
    lifespan=lifespan
)

origins = [
    "http://localhost",
    "http://localhost:3000", # для React/Vue
    "http://localhost:5173", # для Vite
    *config.CORS_ORIGINS,
]
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Ограничение частоты запросов ---
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# --- Регистрация обработчика исключений ---
app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Подключение роутеров FastAPI ---
api_router = APIRouter(prefix="/api")
api_router.include_router(v1_router)

# Подключаем главный роутер к приложению
app.include_router(api_router)

# Веб-хуки (остаются в корне)
app.include_router(razorpay_router, prefix="/internal/webhooks", tags=["Internal Webhooks"])


@app.get("/health", include_in_schema=False)
async def health():
    return {"status": "ok"}
