# app/routers/v1/endpoints/admin/tasks.py

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status, BackgroundTasks
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.admin import SweepReportRead, TaskInfo, TaskRunAccepted, TaskRunRequest
from app.services import commission_sweep

# Импортируем реестр задач
from app.tasks_registry import TASKS, get_tasks_list

logger = logging.getLogger(__name__)

# Префикс /tasks будет добавлен на уровне выше в admin/__init__.py
router = APIRouter()


@router.get("", response_model=List[TaskInfo])
def get_tasks_list_endpoint():
    """
    [АДМИН] Возвращает список всех доступных для ручного запуска фоновых задач.
    """
    return get_tasks_list()


@router.post("/run", response_model=TaskRunAccepted, status_code=status.HTTP_202_ACCEPTED)
async def run_task_endpoint(
    request_data: TaskRunRequest,
    background_tasks: BackgroundTasks
):
    """
    [АДМИН] Запускает одну конкретную фоновую задачу или все сразу.
    """
    task_name_to_run = request_data.task_name

    if task_name_to_run == "all":
        for name, data in TASKS.items():
            background_tasks.add_task(data["function"])
        message = "All background tasks have been scheduled to run."
        logger.info("All background tasks were manually triggered.")

    elif task_name_to_run in TASKS:
        background_tasks.add_task(TASKS[task_name_to_run]["function"])
        message = f"Task '{task_name_to_run}' has been scheduled to run."
        logger.info(f"Background task '{task_name_to_run}' was manually triggered.")
    else:
        # Практически недостижимо благодаря валидации Pydantic `Literal`
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Task '{task_name_to_run}' not found.")

    return TaskRunAccepted(message=message)


@router.post("/daily-commission-sweep", response_model=SweepReportRead)
def run_daily_commission_sweep_now(db: Session = Depends(get_db)):
    """
    [АДМИН] Синхронно запускает ежедневный проход по комиссиям и возвращает сводку.
    Повторный запуск в тот же бизнес-день ничего не меняет.
    """
    report = commission_sweep.process_daily_commissions(db)
    return SweepReportRead(
        business_day=report.business_day,
        credited=report.credited,
        already_credited=report.already_credited,
        extended=report.extended,
        completed=report.completed,
        failed=report.failed,
    )
