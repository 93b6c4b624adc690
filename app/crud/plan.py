# app/crud/plan.py
from sqlalchemy.orm import Session
from app.models.plan import Plan, PlanProduct

def get_plan_by_user(db: Session, user_id: int) -> Plan | None:
    return db.query(Plan).filter(Plan.user_id == user_id).first()

def get_user_plan(db: Session, plan_id: int, user_id: int) -> Plan | None:
    return db.query(Plan).filter(Plan.id == plan_id, Plan.user_id == user_id).first()

def get_or_create_plan(db: Session, user_id: int) -> Plan:
    """Находит план пользователя или добавляет новый пустой в сессию."""
    plan = get_plan_by_user(db, user_id)
    if plan is None:
        plan = Plan(user_id=user_id, total_amount=0, completed_amount=0)
        db.add(plan)
    return plan

def find_plan_product(plan: Plan, product_id: int) -> PlanProduct | None:
    return next((p for p in plan.products if p.product_id == product_id), None)
