# app/models/__init__.py
# Импорт всех моделей, чтобы строковые связи и metadata (Alembic, тесты) видели все таблицы
from app.models.user import User
from app.models.wallet import WalletTransaction
from app.models.product import Product
from app.models.order import Order
from app.models.plan import Plan, PlanProduct
from app.models.transaction import Transaction
from app.models.referral import Referral, DailyCommission
from app.models.withdrawal import CommissionWithdrawal
