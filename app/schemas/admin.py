# app/schemas/admin.py
from pydantic import BaseModel
from typing import List, Literal

# Имена задач совпадают с ключами app.tasks_registry.TASKS
TaskName = Literal["all", "daily_commission_sweep", "expire_stale_transactions", "reconcile_referrals"]


class TaskInfo(BaseModel):
    task_name: str
    description: str


class TaskRunRequest(BaseModel):
    task_name: TaskName


class TaskRunAccepted(BaseModel):
    status: str = "accepted"
    message: str


class SweepReportRead(BaseModel):
    business_day: str
    credited: int
    already_credited: int
    extended: int
    completed: int
    failed: List[int]
