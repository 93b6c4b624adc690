# app/tasks_registry.py

from app.services import commission_sweep, maintenance

# --- Обертки: каждая задача сама открывает сессию БД ---

async def run_daily_commission_sweep():
    await commission_sweep.daily_commission_sweep_task()

async def run_expire_stale_transactions():
    await maintenance.expire_stale_pending_transactions_task()

async def run_reconcile_referrals():
    await maintenance.reconcile_referrals_task()


# --- Словарь-реестр всех задач, доступных для ручного запуска ---
# Ключ - уникальное имя задачи, которое будет использоваться в API.
# 'function' - сама функция для вызова.
# 'description' - описание для админки.
# 'is_async' - флаг, чтобы FastAPI знал, как запускать задачу.

TASKS = {
    "daily_commission_sweep": {
        "function": run_daily_commission_sweep,
        "description": "Начисляет дневные комиссии по активным рефералам и сдвигает график за пропущенные дни.",
        "is_async": True,
    },
    "expire_stale_transactions": {
        "function": run_expire_stale_transactions,
        "description": "Помечает failed оплаты, которые слишком долго висят в pending.",
        "is_async": True,
    },
    "reconcile_referrals": {
        "function": run_reconcile_referrals,
        "description": "Сверяет заработанные комиссии и статус завершения рефералов с таблицей комиссий.",
        "is_async": True,
    },
}

# Отдельная функция для получения списка задач для API
def get_tasks_list():
    return [
        {"task_name": name, "description": data["description"]}
        for name, data in TASKS.items()
    ]
