# app/routers/v1/endpoints/admin/__init__.py

from fastapi import APIRouter
from app.dependencies import get_admin_user
from fastapi import Depends

from . import (
    tasks,
    withdrawals,
)

# Зависимость get_admin_user применяется ко ВСЕМ эндпоинтам, подключенным к этому роутеру.
router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(get_admin_user)]
)

# /admin/tasks, /admin/tasks/run, /admin/tasks/daily-commission-sweep
router.include_router(tasks.router, prefix="/tasks")

# /admin/withdrawals/{id}/status
router.include_router(withdrawals.router, prefix="/withdrawals")
