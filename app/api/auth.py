import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy import or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_google
from app.errors import InternalError, UpstreamError, Unauthenticated, ValidationError, WalletError
from app.security import create_access_token
from app.services.google_oauth import GoogleOAuthClient
from app.services.ledger import get_or_create_wallet
from models.user import User
from schemas.auth import GoogleAuthUrl, SignInResponse

router = APIRouter()
logger = logging.getLogger("wallet.api.auth")


@router.get("/google", response_model=GoogleAuthUrl)
async def google_sign_in(request: Request, google: GoogleOAuthClient = Depends(get_google)):
    try:
        url = google.authorization_url()
    except Exception as exc:
        logger.exception("Error generating Google auth URL")
        raise InternalError("Failed to generate Google authentication URL") from exc

    accept = request.headers.get("accept") or ""
    if "application/json" in accept or "text/html" not in accept:
        return JSONResponse({"google_auth_url": url})
    return RedirectResponse(url, status_code=302)


async def _upsert_user(db: AsyncSession, info: dict) -> User:
    google_id = str(info["id"])
    res = await db.execute(
        select(User).where(or_(User.google_id == google_id, User.email == info["email"]))
    )
    # the subject match wins over an email match
    candidates = sorted(res.scalars().all(), key=lambda u: u.google_id != google_id)
    user = candidates[0] if candidates else None
    if user is None:
        user = User(
            google_id=google_id,
            email=info["email"],
            name=info.get("name") or "",
            picture=info.get("picture"),
        )
        db.add(user)
    else:
        user.google_id = google_id
        user.name = info.get("name") or user.name
        user.picture = info.get("picture")
    await db.commit()
    await db.refresh(user)
    return user


@router.get("/google/callback", response_model=SignInResponse)
async def google_callback(
    code: str | None = None,
    error: str | None = None,
    db: AsyncSession = Depends(get_db),
    google: GoogleOAuthClient = Depends(get_google),
):
    if error:
        raise ValidationError("User denied access to Google account", code="access_denied")
    if not code or not code.strip():
        raise ValidationError("Missing or invalid authorization code", code="bad_request")

    try:
        access_token = await google.exchange_code(code)
    except UpstreamError as exc:
        logger.warning("Failed to exchange code for token: %s", exc.message)
        raise Unauthenticated("Invalid or expired authorization code", code="invalid_grant") from exc

    try:
        info = await google.fetch_user_info(access_token)
    except UpstreamError as exc:
        logger.error("Failed to fetch user info: %s", exc.message)
        raise InternalError("Failed to retrieve user information from Google", code="provider_error") from exc

    try:
        user = await _upsert_user(db, info)
        wallet = await get_or_create_wallet(db, user.id)
    except (SQLAlchemyError, WalletError) as exc:
        await db.rollback()
        logger.exception("Database error while signing in %s", info.get("email"))
        raise InternalError("Failed to save user information", code="database_error") from exc

    return SignInResponse(
        user_id=user.id,
        email=user.email,
        name=user.name or "",
        wallet=wallet.wallet_number,
        picture=user.picture,
        token=create_access_token(user.id, user.email),
    )
