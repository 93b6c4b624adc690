# tests/conftest.py
import hashlib
import hmac
import os

# Настройки должны быть выставлены до первого импорта app.*
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("ADMIN_USER_IDS", "1000")
os.environ.setdefault("RAZORPAY_KEY_ID", "rzp_test_key")
os.environ.setdefault("RAZORPAY_KEY_SECRET", "rzp_test_secret")
os.environ.setdefault("RAZORPAY_WEBHOOK_SECRET", "rzp_webhook_secret")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db.session import Base
from app.dependencies import get_db
from app.main import app
# Пакет app.models импортирует все модели, metadata видит все таблицы
from app.models.product import Product
from app.models.user import User

# Используем in-memory SQLite для тестов - это быстро и изолированно.
# Одно соединение на все сессии (StaticPool), иначе у каждой сессии будет своя пустая база.
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# pysqlite сам управляет транзакциями и ломает SAVEPOINT. Отдаем управление SQLAlchemy.
@event.listens_for(engine, "connect")
def _do_connect(dbapi_connection, connection_record):
    dbapi_connection.isolation_level = None

@event.listens_for(engine, "begin")
def _do_begin(conn):
    conn.exec_driver_sql("BEGIN")

TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session() -> Session:
    """
    Фикстура для создания чистой базы данных для каждого теста.
    """
    Base.metadata.create_all(bind=engine) # Создаем все таблицы
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine) # Очищаем все после теста


# --- Пользователи и товары ---

@pytest.fixture
def make_user(db_session):
    counter = {"n": 0}

    def _make(**fields) -> User:
        counter["n"] += 1
        fields.setdefault("auth_uid", f"uid-{counter['n']}")
        fields.setdefault("name", f"User {counter['n']}")
        user = User(**fields)
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def referrer(make_user) -> User:
    return make_user(name="Referrer", referral_code="ABCD1234")


@pytest.fixture
def referred_user(make_user, referrer) -> User:
    return make_user(name="Referred", referred_by_id=referrer.id)


@pytest.fixture
def test_user(make_user) -> User:
    return make_user(name="Buyer")


@pytest.fixture
def admin_user(make_user) -> User:
    return make_user(id=1000, name="Admin")


@pytest.fixture
def make_product(db_session):
    def _make(price: int = 1000, name: str = "Phone") -> Product:
        product = Product(name=name, price=price, is_active=True)
        db_session.add(product)
        db_session.commit()
        db_session.refresh(product)
        return product

    return _make


@pytest.fixture
def product(make_product) -> Product:
    return make_product(price=1000)


# --- Подписи Razorpay ---

def sign_payment(gateway_order_id: str, gateway_payment_id: str) -> str:
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    return hmac.new(settings.RAZORPAY_KEY_SECRET.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_webhook(raw_body: bytes) -> str:
    return hmac.new(settings.RAZORPAY_WEBHOOK_SECRET.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


@pytest.fixture
def mock_razorpay(mocker):
    """Мок создания заказа в Razorpay: каждый вызов возвращает новый order id."""
    counter = {"n": 0}

    async def _create_order(amount_minor, currency, receipt, notes=None):
        counter["n"] += 1
        return {"id": f"order_test_{counter['n']}", "amount": amount_minor, "currency": currency}

    return mocker.patch(
        "app.clients.razorpay.razorpay_client.create_order",
        side_effect=_create_order,
    )


# --- HTTP-клиент ---

def auth_headers_for(user: User) -> dict:
    token = jwt.encode({"sub": str(user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(test_user) -> dict:
    return auth_headers_for(test_user)


@pytest.fixture
def admin_auth_headers(admin_user) -> dict:
    return auth_headers_for(admin_user)


@pytest.fixture
async def client(db_session):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
