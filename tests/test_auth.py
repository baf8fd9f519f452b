from urllib.parse import parse_qs, urlparse

from sqlalchemy import select

from app.security import decode_access_token
from models.user import User
from models.wallet import Wallet


async def test_google_url_as_json(client):
    resp = await client.get("/auth/google", headers={"accept": "application/json"})
    assert resp.status_code == 200
    url = urlparse(resp.json()["google_auth_url"])
    assert url.netloc == "accounts.google.com"
    query = parse_qs(url.query)
    assert query["client_id"] == ["client-id.apps.googleusercontent.com"]
    assert query["redirect_uri"] == ["http://localhost:3000/auth/google/callback"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid email profile"]


async def test_google_url_redirects_browsers(client):
    resp = await client.get("/auth/google", headers={"accept": "text/html,application/xhtml+xml"})
    assert resp.status_code == 302
    assert resp.headers["location"].startswith("https://accounts.google.com/o/oauth2/v2/auth?")


async def test_callback_creates_user_and_wallet(client, session_factory):
    resp = await client.get("/auth/google/callback", params={"code": "good-code"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["email"] == "ada@example.com"
    assert body["name"] == "Ada Lovelace"
    assert len(body["wallet"]) == 13 and body["wallet"].isdigit()

    claims = decode_access_token(body["token"])
    assert claims["sub"] == str(body["user_id"])

    async with session_factory() as session:
        wallet = (await session.execute(select(Wallet))).scalar_one()
    assert wallet.balance == 0
    assert wallet.wallet_number == body["wallet"]

    balance = await client.get("/wallet/balance", headers={"Authorization": f"Bearer {body['token']}"})
    assert balance.json() == {"balance": 0}


async def test_repeat_sign_in_keeps_wallet(client, google_stub, session_factory):
    first = (await client.get("/auth/google/callback", params={"code": "good-code"})).json()
    google_stub.user_info["name"] = "Augusta Ada King"
    second = (await client.get("/auth/google/callback", params={"code": "good-code"})).json()

    assert second["user_id"] == first["user_id"]
    assert second["wallet"] == first["wallet"]
    assert second["name"] == "Augusta Ada King"

    async with session_factory() as session:
        assert len((await session.execute(select(User))).scalars().all()) == 1
        assert len((await session.execute(select(Wallet))).scalars().all()) == 1


async def test_sign_in_links_existing_email(client, make_user):
    existing = await make_user(email="ada@example.com")
    body = (await client.get("/auth/google/callback", params={"code": "good-code"})).json()
    assert body["user_id"] == existing.user.id
    assert body["wallet"] == existing.wallet.wallet_number


async def test_callback_access_denied(client):
    resp = await client.get("/auth/google/callback", params={"error": "access_denied"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "access_denied"


async def test_callback_missing_code(client):
    resp = await client.get("/auth/google/callback")
    assert resp.status_code == 400
    assert resp.json()["error"] == "bad_request"


async def test_callback_invalid_code(client, session_factory):
    resp = await client.get("/auth/google/callback", params={"code": "stale-code"})
    assert resp.status_code == 401
    assert resp.json()["error"] == "invalid_grant"

    async with session_factory() as session:
        assert (await session.execute(select(User))).first() is None


async def test_callback_userinfo_failure(client, google_stub):
    google_stub.userinfo_error = True
    resp = await client.get("/auth/google/callback", params={"code": "good-code"})
    assert resp.status_code == 500
    assert resp.json()["error"] == "provider_error"
