from urllib.parse import urlencode

import httpx

from app.config import Settings, settings as default_settings
from app.errors import UpstreamError


AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"


class GoogleAuthError(UpstreamError):
    pass


class GoogleOAuthClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings = default_settings, **kwargs) -> "GoogleOAuthClient":
        return cls(
            settings.GOOGLE_CLIENT_ID,
            settings.GOOGLE_CLIENT_SECRET,
            settings.GOOGLE_REDIRECT_URI,
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            **kwargs,
        )

    def authorization_url(self) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": "openid email profile",
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> str:
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(TOKEN_URL, data=data)
        except httpx.HTTPError as exc:
            raise GoogleAuthError(f"Failed to get access token: {exc}") from exc
        body = _json_or_empty(resp)
        token = body.get("access_token")
        if resp.status_code >= 400 or not token:
            detail = body.get("error_description") or body.get("error") or f"HTTP {resp.status_code}"
            raise GoogleAuthError(f"Failed to get access token: {detail}")
        return token

    async def fetch_user_info(self, access_token: str) -> dict:
        headers = {"Authorization": f"Bearer {access_token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.get(USERINFO_URL, headers=headers)
        except httpx.HTTPError as exc:
            raise GoogleAuthError(f"Failed to get user info: {exc}") from exc
        body = _json_or_empty(resp)
        if resp.status_code >= 400 or not body.get("id") or not body.get("email"):
            detail = body.get("error") or f"HTTP {resp.status_code}"
            if isinstance(detail, dict):
                detail = detail.get("message") or detail.get("status")
            raise GoogleAuthError(f"Failed to get user info: {detail}")
        return body


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
