# app/clients/razorpay.py

import httpx
from app.core.config import settings
import logging

logger = logging.getLogger(__name__)

class RazorpayClient:
    """
    Асинхронный клиент для REST API Razorpay.
    Аутентификация Basic: key_id / key_secret.
    """
    def __init__(self, base_url: str, key_id: str, key_secret: str):
        self.base_url = base_url
        self.key_id = key_id
        self.auth = (key_id, key_secret)
        timeouts = httpx.Timeout(10.0, read=30.0)
        self.async_client = httpx.AsyncClient(
            auth=self.auth,
            base_url=self.base_url,
            timeout=timeouts
        )

    async def post(self, endpoint: str, json: dict) -> dict:
        """
        Выполняет POST-запрос. В случае успеха возвращает JSON-ответ (dict).
        В случае HTTP-ошибки (4xx/5xx) выбрасывает исключение.
        """
        try:
            response = await self.async_client.post(endpoint, json=json)
            response.raise_for_status()
            return response.json()
        except httpx.RequestError as e:
            logger.error(f"Network error during POST request to {e.request.url!r}.", exc_info=True)
            raise
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during POST request to {e.request.url!r}: {e.response.text}", exc_info=True)
            raise

    async def create_order(self, amount_minor: int, currency: str, receipt: str, notes: dict | None = None) -> dict:
        """
        Создает заказ (charge intent) в Razorpay.
        Сумма в минорных единицах (пайсы). Возвращает {"id", "amount", "currency", ...}.
        """
        payload = {
            "amount": amount_minor,
            "currency": currency,
            "receipt": receipt,
            "payment_capture": 1,
            "notes": notes or {},
        }
        return await self.post("/orders", json=payload)

    async def close(self):
        await self.async_client.aclose()

# Создаем синглтон
razorpay_client = RazorpayClient(
    base_url=settings.RAZORPAY_API_URL,
    key_id=settings.RAZORPAY_KEY_ID,
    key_secret=settings.RAZORPAY_KEY_SECRET
)
