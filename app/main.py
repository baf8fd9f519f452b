import logging
import time

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import auth as auth_api
from app.api import keys as keys_api
from app.api import wallet as wallet_api
from app.config import settings, validate_settings
from app.database import create_tables
from app.errors import WalletError
from app.services.google_oauth import GoogleOAuthClient
from app.services.paystack import PaystackClient

VERSION = "1.0.0"

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("wallet.api")

app = FastAPI(title="Google Sign-In & Paystack Wallet API", version=VERSION)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_api.router, prefix="/auth", tags=["Authentication"])
app.include_router(wallet_api.router, prefix="/wallet", tags=["Wallet"])
app.include_router(keys_api.router, prefix="/keys", tags=["API Keys"])


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    logger.info(
        "%s %s %s %.1fms",
        request.method,
        request.url.path,
        response.status_code,
        (time.perf_counter() - started) * 1000,
    )
    return response


@app.exception_handler(WalletError)
async def wallet_error_handler(request: Request, exc: WalletError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
    return JSONResponse(
        status_code=400,
        content={"error": "invalid_input", "message": "; ".join(problems) or "Invalid request"},
    )


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        body = {"error": "not_found", "message": f"Route {request.method} {request.url.path} not found"}
    else:
        body = {"error": "http_error", "message": str(exc.detail)}
    return JSONResponse(status_code=exc.status_code, content=body, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    message = str(exc) if settings.DEBUG else "An unexpected error occurred"
    return JSONResponse(status_code=500, content={"error": "internal_error", "message": message})


@app.on_event("startup")
async def startup():
    validate_settings()
    await create_tables()
    app.state.paystack = PaystackClient.from_settings(settings)
    app.state.google = GoogleOAuthClient.from_settings(settings)
    logger.info("Base URL: %s, environment: %s", settings.APP_BASE_URL, settings.ENV)


@app.get("/")
async def root():
    return {
        "message": "Google Sign-In & Paystack Payment API",
        "version": VERSION,
        "status": "healthy",
        "documentation": f"{settings.APP_BASE_URL}/docs",
        "endpoints": {
            "auth": {
                "googleSignIn": "GET /auth/google",
                "googleCallback": "GET /auth/google/callback",
            },
            "wallet": {
                "deposit": "POST /wallet/deposit",
                "webhook": "POST /wallet/paystack/webhook",
                "status": "GET /wallet/deposit/:reference/status",
                "balance": "GET /wallet/balance",
                "transfer": "POST /wallet/transfer",
                "transactions": "GET /wallet/transactions",
            },
            "keys": {
                "create": "POST /keys/create",
                "rollover": "POST /keys/rollover",
                "revoke": "POST /keys/revoke",
            },
        },
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, reload=settings.DEBUG)
