from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.security import Principal, require_session
from app.services import keys as key_service
from schemas.keys import IssuedKey, KeyCreateRequest, KeyRevokeRequest, KeyRolloverRequest, RevokedKey

router = APIRouter()


@router.post("/create", response_model=IssuedKey, status_code=201)
async def create_key(
    payload: KeyCreateRequest,
    principal: Principal = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    key, raw_key = await key_service.create_key(
        db,
        principal.user_id,
        payload.name.strip(),
        [p.value for p in payload.permissions],
        payload.expiry,
    )
    return IssuedKey(api_key=raw_key, expires_at=key.expires_at)


@router.post("/rollover", response_model=IssuedKey)
async def rollover_key(
    payload: KeyRolloverRequest,
    principal: Principal = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    key, raw_key = await key_service.rollover_key(
        db, principal.user_id, payload.expired_key_id.strip(), payload.expiry
    )
    return IssuedKey(api_key=raw_key, expires_at=key.expires_at)


@router.post("/revoke", response_model=RevokedKey)
async def revoke_key(
    payload: KeyRevokeRequest,
    principal: Principal = Depends(require_session),
    db: AsyncSession = Depends(get_db),
):
    key = await key_service.revoke_key(db, principal.user_id, payload.api_key.strip())
    return RevokedKey(revoked_key_name=key.name)
