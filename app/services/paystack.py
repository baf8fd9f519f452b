import hashlib
import hmac
import logging
import secrets
import string
import time

import httpx

from app.config import Settings, settings as default_settings
from app.errors import UpstreamError

logger = logging.getLogger("wallet.paystack")

_REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


class PaystackError(UpstreamError):
    code = "paystack_error"


class PaystackClient:
    """Thin async wrapper around the Paystack transaction API."""

    def __init__(
        self,
        secret_key: str,
        *,
        webhook_secret: str = "",
        base_url: str = "https://api.paystack.co",
        currency: str = "NGN",
        callback_url: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.callback_url = callback_url
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings = default_settings, **kwargs) -> "PaystackClient":
        return cls(
            settings.PAYSTACK_SECRET_KEY,
            webhook_secret=settings.PAYSTACK_WEBHOOK_SECRET,
            base_url=settings.PAYSTACK_BASE_URL,
            currency=settings.PAYSTACK_CURRENCY,
            callback_url=settings.PAYSTACK_CALLBACK_URL,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.secret_key}"},
        )

    async def _request(self, method: str, path: str, *, action: str, **kwargs) -> dict:
        try:
            async with self._client() as client:
                resp = await client.request(method, path, **kwargs)
        except httpx.HTTPError as exc:
            raise PaystackError(f"Paystack {action} failed: {exc}") from exc
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if resp.status_code >= 400 or not body.get("status"):
            message = body.get("message") or f"HTTP {resp.status_code}"
            raise PaystackError(f"Paystack {action} failed: {message}")
        return body.get("data") or {}

    async def initialize_transaction(self, amount: int, email: str, reference: str | None = None) -> dict:
        payload = {
            "amount": int(amount),
            "email": email,
            "currency": self.currency,
        }
        if reference:
            payload["reference"] = reference
        if self.callback_url:
            payload["callback_url"] = self.callback_url
        data = await self._request("POST", "/transaction/initialize", json=payload, action="initialization")
        if not data.get("authorization_url"):
            raise PaystackError("Paystack initialization failed: missing authorization_url")
        return data

    async def verify_transaction(self, reference: str) -> dict:
        return await self._request("GET", f"/transaction/verify/{reference}", action="verification")

    def verify_signature(self, payload: bytes, signature: str | None) -> bool:
        if not self.webhook_secret:
            logger.warning("Webhook secret not configured")
            return False
        if not signature:
            return False
        digest = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha512).hexdigest()
        return hmac.compare_digest(digest, signature.strip().lower())

    @staticmethod
    def generate_reference() -> str:
        suffix = "".join(secrets.choice(_REFERENCE_ALPHABET) for _ in range(13))
        return f"PS_{int(time.time() * 1000)}_{suffix}"
