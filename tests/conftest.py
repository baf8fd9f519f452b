"""Shared fixtures: throwaway SQLite database, stubbed providers and an ASGI client."""

import hashlib
import hmac
import itertools
import json
from types import SimpleNamespace
from urllib.parse import parse_qs

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from app.database import create_tables, get_db
from app.dependencies import get_google, get_paystack
from app.main import app
from app.security import create_access_token
from app.services.google_oauth import GoogleOAuthClient
from app.services.paystack import PaystackClient
from models.user import User
from models.wallet import Wallet

WEBHOOK_SECRET = "whsec_test"


class PaystackStub:
    """Fake of the Paystack transaction endpoints served through httpx.MockTransport."""

    def __init__(self):
        self.initialize_calls = []
        self.verify_calls = []
        self.verify_results = {}
        self.initialize_error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.method == "POST" and request.url.path == "/transaction/initialize":
            body = json.loads(request.content)
            self.initialize_calls.append(body)
            if self.initialize_error:
                return httpx.Response(400, json={"status": False, "message": self.initialize_error})
            ref = body["reference"]
            return httpx.Response(200, json={
                "status": True,
                "message": "Authorization URL created",
                "data": {
                    "authorization_url": f"https://checkout.paystack.com/{ref}",
                    "access_code": "ac_test",
                    "reference": ref,
                },
            })
        if request.method == "GET" and request.url.path.startswith("/transaction/verify/"):
            ref = request.url.path.rsplit("/", 1)[-1]
            self.verify_calls.append(ref)
            data = self.verify_results.get(ref)
            if data is None:
                return httpx.Response(400, json={"status": False, "message": "Transaction reference not found"})
            return httpx.Response(200, json={"status": True, "message": "Verification successful", "data": data})
        return httpx.Response(404, json={"status": False, "message": "Not found"})


class GoogleStub:
    ACCESS_TOKEN = "ya29.test-token"

    def __init__(self):
        self.valid_codes = {"good-code"}
        self.userinfo_error = False
        self.user_info = {
            "id": "google-sub-1",
            "email": "ada@example.com",
            "name": "Ada Lovelace",
            "picture": "https://example.com/ada.png",
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            form = parse_qs(request.content.decode())
            if form.get("code", [""])[0] not in self.valid_codes:
                return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Bad Request"})
            return httpx.Response(200, json={
                "access_token": self.ACCESS_TOKEN,
                "expires_in": 3599,
                "token_type": "Bearer",
                "scope": "openid email profile",
            })
        if request.url.host == "www.googleapis.com":
            if self.userinfo_error or request.headers.get("authorization") != f"Bearer {self.ACCESS_TOKEN}":
                return httpx.Response(401, json={"error": {"code": 401, "message": "Invalid Credentials"}})
            return httpx.Response(200, json=self.user_info)
        return httpx.Response(404)


def sign(raw: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), raw, hashlib.sha512).hexdigest()


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'wallet-test.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def paystack_stub():
    return PaystackStub()


@pytest.fixture
def paystack(paystack_stub):
    return PaystackClient(
        "sk_test_secret",
        webhook_secret=WEBHOOK_SECRET,
        transport=httpx.MockTransport(paystack_stub.handler),
    )


@pytest.fixture
def google_stub():
    return GoogleStub()


@pytest.fixture
def google(google_stub):
    return GoogleOAuthClient(
        "client-id.apps.googleusercontent.com",
        "client-secret",
        "http://localhost:3000/auth/google/callback",
        transport=httpx.MockTransport(google_stub.handler),
    )


@pytest.fixture
async def client(session_factory, paystack, google):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_paystack] = lambda: paystack
    app.dependency_overrides[get_google] = lambda: google
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    counter = itertools.count(1)

    async def _make(email: str | None = None, balance: int = 0):
        n = next(counter)
        async with session_factory() as session:
            user = User(google_id=f"google-{n}", email=email or f"user{n}@example.com", name=f"User {n}")
            session.add(user)
            await session.flush()
            wallet = Wallet(user_id=user.id, wallet_number=str(1000000000000 + n), balance=balance)
            session.add(wallet)
            await session.commit()
        token = create_access_token(user.id, user.email)
        return SimpleNamespace(
            user=user,
            wallet=wallet,
            token=token,
            headers={"Authorization": f"Bearer {token}"},
        )

    return _make


@pytest.fixture
def balance_of(session_factory):
    async def _balance(user_id: int) -> int:
        async with session_factory() as session:
            wallet = (await session.execute(select(Wallet).where(Wallet.user_id == user_id))).scalar_one()
            return wallet.balance

    return _balance
