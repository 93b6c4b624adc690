# app/routers/v1/api.py

from fastapi import APIRouter

from app.routers.v1.endpoints import installments, orders, payments, plans, referrals, wallet
from app.routers.v1.endpoints import admin as admin_v1_router

# Создаем главный роутер для API версии v1
# Все пути, подключенные к нему, будут иметь префикс /api/v1
api_router = APIRouter(prefix="/v1")

# Пользовательские и публичные эндпоинты
api_router.include_router(installments.router, tags=["Installments"])
api_router.include_router(orders.router, tags=["Orders"])
api_router.include_router(payments.router, tags=["Payments"])
api_router.include_router(plans.router, tags=["Plans"])
api_router.include_router(referrals.router, tags=["Referrals"])
api_router.include_router(wallet.router, tags=["Wallet"])

# Админские эндпоинты
api_router.include_router(admin_v1_router.router, prefix="/admin")
