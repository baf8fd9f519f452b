import hashlib
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from fastapi import Depends, Request
from jose import JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.errors import Forbidden, Unauthenticated
from app.utils.clock import utcnow
from models.api_key import ApiKey
from models.user import User
from schemas.keys import Permission

API_KEY_HEADER = "x-api-key"
API_KEY_PREFIX = "sk_live_"
logger = logging.getLogger("wallet.security")


@dataclass
class Principal:
    user_id: int
    email: str
    mode: str  # "full" for bearer sessions, "scoped" for API keys
    permissions: frozenset = field(default_factory=frozenset)
    api_key_id: int | None = None

    @property
    def is_scoped(self) -> bool:
        return self.mode == "scoped"

    def allows(self, permission: Permission) -> bool:
        if self.mode == "full":
            return True
        return permission.value in self.permissions


def _mask(value: str | None) -> str:
    value = (value or "").strip()
    if not value:
        return "-"
    if len(value) <= 12:
        return value[:2] + "..."
    return f"{value[:8]}...{value[-4:]}"


def _audit_auth_failure(request: Request | None, reason: str, *, credential: str | None = None) -> None:
    if not request:
        logger.warning("AUTH_DENY reason=%s", reason)
        return
    path = getattr(getattr(request, "url", None), "path", "-")
    method = getattr(request, "method", "-")
    client = getattr(request, "client", None)
    ip = getattr(client, "host", "-") if client else "-"
    logger.warning(
        "AUTH_DENY reason=%s method=%s path=%s ip=%s credential=%s",
        reason,
        method,
        path,
        ip,
        _mask(credential),
    )


# ---------------------------------------------------------------------------
# Session tokens
# ---------------------------------------------------------------------------

def create_access_token(user_id: int, email: str, *, expires_in: timedelta | None = None) -> str:
    now = datetime.now(timezone.utc)
    expires_in = expires_in if expires_in is not None else timedelta(days=settings.JWT_EXPIRE_DAYS)
    payload = {
        "sub": str(user_id),
        "email": email,
        "iat": int(now.timestamp()),
        "exp": int((now + expires_in).timestamp()),
    }
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Return the verified claims or raise ``Unauthenticated``."""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        raise Unauthenticated("Invalid or expired token")
    subject = payload.get("sub")
    if not subject or not str(subject).isdigit():
        raise Unauthenticated("Invalid or expired token")
    return payload


# ---------------------------------------------------------------------------
# API key secrets
# ---------------------------------------------------------------------------

def generate_api_key() -> str:
    return f"{API_KEY_PREFIX}{secrets.token_hex(32)}"


def hash_api_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


# ---------------------------------------------------------------------------
# Request credential extraction
# ---------------------------------------------------------------------------

def _extract_bearer_token(request: Request) -> str | None:
    raw = (request.headers.get("authorization") or "").strip()
    if not raw:
        return None
    if raw.lower().startswith("bearer "):
        return raw.split(" ", 1)[1].strip() or None
    # only the Bearer scheme is accepted
    return None


def _extract_api_key(request: Request) -> str | None:
    value = (request.headers.get(API_KEY_HEADER) or "").strip()
    return value or None


async def _principal_from_token(request: Request, token: str) -> Principal:
    try:
        claims = decode_access_token(token)
    except Unauthenticated:
        _audit_auth_failure(request, "invalid_token", credential=token)
        raise
    return Principal(user_id=int(claims["sub"]), email=claims.get("email") or "", mode="full")


async def _principal_from_api_key(request: Request, db: AsyncSession, raw_key: str) -> Principal:
    key = (await db.execute(
        select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key))
    )).scalar_one_or_none()
    if not key:
        _audit_auth_failure(request, "unknown_api_key", credential=raw_key)
        raise Unauthenticated("Invalid or expired API key")
    if key.revoked:
        _audit_auth_failure(request, "revoked_api_key", credential=raw_key)
        raise Unauthenticated("Invalid or expired API key")
    if key.expires_at <= utcnow():
        _audit_auth_failure(request, "expired_api_key", credential=raw_key)
        raise Unauthenticated("Invalid or expired API key")
    user = await db.get(User, key.user_id)
    return Principal(
        user_id=key.user_id,
        email=user.email if user else "",
        mode="scoped",
        permissions=frozenset(key.permissions or []),
        api_key_id=key.id,
    )


async def get_principal(request: Request, db: AsyncSession = Depends(get_db)) -> Principal:
    """Resolve the caller from a bearer token or, failing that, an API key."""
    token = _extract_bearer_token(request)
    if token:
        return await _principal_from_token(request, token)
    raw_key = _extract_api_key(request)
    if raw_key:
        return await _principal_from_api_key(request, db, raw_key)
    _audit_auth_failure(request, "missing_credentials")
    raise Unauthenticated()


def require_permission(permission: Permission):
    async def dependency(request: Request, principal: Principal = Depends(get_principal)) -> Principal:
        if not principal.allows(permission):
            _audit_auth_failure(request, f"missing_permission:{permission.value}")
            raise Forbidden(
                f"This action requires '{permission.value}' permission",
                code="insufficient_permissions",
            )
        return principal

    return dependency


async def require_session(request: Request, principal: Principal = Depends(get_principal)) -> Principal:
    if principal.is_scoped:
        _audit_auth_failure(request, "api_key_on_session_route")
        raise Forbidden("API keys cannot manage API keys; sign in with a bearer token")
    return principal
