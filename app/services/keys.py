import logging
import re
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.errors import NotFound, NotYetExpired, TooManyActiveKeys, ValidationError
from app.security import generate_api_key, hash_api_key
from app.utils.clock import utcnow
from models.api_key import ApiKey

logger = logging.getLogger("wallet.keys")

_EXPIRY_RE = re.compile(r"^([1-9][0-9]*)([HDMY])$")

# months and years are fixed-length approximations, not calendar arithmetic
_UNIT_DELTAS = {
    "H": timedelta(hours=1),
    "D": timedelta(days=1),
    "M": timedelta(days=30),
    "Y": timedelta(days=365),
}


def calculate_expiry(expiry: str, now: datetime | None = None) -> datetime:
    match = _EXPIRY_RE.match((expiry or "").strip().upper())
    if not match:
        raise ValidationError("Invalid expiry format; use 1H, 1D, 1M or 1Y")
    count, unit = int(match.group(1)), match.group(2)
    try:
        return (now or utcnow()) + _UNIT_DELTAS[unit] * count
    except OverflowError:
        raise ValidationError("Expiry is out of range")


async def count_active_keys(db: AsyncSession, user_id: int) -> int:
    result = await db.execute(
        select(func.count(ApiKey.id)).where(
            ApiKey.user_id == user_id,
            ApiKey.revoked.is_(False),
            ApiKey.expires_at > utcnow(),
        )
    )
    return result.scalar() or 0


async def _ensure_capacity(db: AsyncSession, user_id: int) -> None:
    limit = settings.MAX_ACTIVE_KEYS
    if await count_active_keys(db, user_id) >= limit:
        raise TooManyActiveKeys(limit)


def _new_key(user_id: int, name: str, permissions: list[str], expiry: str) -> tuple[ApiKey, str]:
    raw_key = generate_api_key()
    key = ApiKey(
        user_id=user_id,
        key_hash=hash_api_key(raw_key),
        name=name,
        permissions=sorted(set(permissions)),
        expires_at=calculate_expiry(expiry),
        revoked=False,
    )
    return key, raw_key


async def create_key(
    db: AsyncSession,
    user_id: int,
    name: str,
    permissions: list[str],
    expiry: str,
) -> tuple[ApiKey, str]:
    """Issue a key and return it with its plaintext secret.

    Only the sha256 of the secret is stored, so the plaintext returned here is
    the one and only time it is visible.
    """
    await _ensure_capacity(db, user_id)
    key, raw_key = _new_key(user_id, name, permissions, expiry)
    db.add(key)
    await db.commit()
    await db.refresh(key)
    logger.info("API key created user=%s key_id=%s name=%s", user_id, key.id, name)
    return key, raw_key


async def _find_live_key(db: AsyncSession, user_id: int, raw_key: str) -> ApiKey | None:
    result = await db.execute(
        select(ApiKey).where(
            ApiKey.user_id == user_id,
            ApiKey.key_hash == hash_api_key(raw_key),
            ApiKey.revoked.is_(False),
        )
    )
    return result.scalar_one_or_none()


async def rollover_key(db: AsyncSession, user_id: int, expired_raw_key: str, expiry: str) -> tuple[ApiKey, str]:
    existing = await _find_live_key(db, user_id, expired_raw_key)
    if not existing:
        raise NotFound("Expired key not found or already revoked")
    if existing.expires_at > utcnow():
        raise NotYetExpired()

    # the revoke and the replacement commit together
    await _ensure_capacity(db, user_id)
    existing.revoked = True
    key, raw_key = _new_key(user_id, existing.name, list(existing.permissions or []), expiry)
    db.add(key)
    await db.commit()
    await db.refresh(key)
    logger.info("API key rolled over user=%s old_key_id=%s new_key_id=%s", user_id, existing.id, key.id)
    return key, raw_key


async def revoke_key(db: AsyncSession, user_id: int, raw_key: str) -> ApiKey:
    key = await _find_live_key(db, user_id, raw_key)
    if not key:
        raise NotFound("API key not found or already revoked")
    key.revoked = True
    await db.commit()
    logger.info("API key revoked user=%s key_id=%s", user_id, key.id)
    return key
