import logging

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    APP_BASE_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///wallet.db"
    DB_ECHO: bool = False

    # Session tokens
    JWT_SECRET: str = "change-me-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_DAYS: int = 7

    # Google OAuth
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""
    GOOGLE_REDIRECT_URI: str = "http://localhost:3000/auth/google/callback"

    # Paystack
    PAYSTACK_SECRET_KEY: str = ""
    PAYSTACK_WEBHOOK_SECRET: str = ""
    PAYSTACK_BASE_URL: str = "https://api.paystack.co"
    PAYSTACK_CURRENCY: str = "NGN"
    PAYSTACK_CALLBACK_URL: str = ""

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 10.0

    # API keys
    MAX_ACTIVE_KEYS: int = 5

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def is_production(self) -> bool:
        return self.ENV.strip().lower() in {"prod", "production"}


settings = Settings()


def validate_settings(current: Settings = settings) -> list[str]:
    required = {
        "GOOGLE_CLIENT_ID": current.GOOGLE_CLIENT_ID,
        "GOOGLE_CLIENT_SECRET": current.GOOGLE_CLIENT_SECRET,
        "PAYSTACK_SECRET_KEY": current.PAYSTACK_SECRET_KEY,
        "PAYSTACK_WEBHOOK_SECRET": current.PAYSTACK_WEBHOOK_SECRET,
    }
    missing = [key for key, value in required.items() if not value]
    if missing and current.is_production:
        logging.getLogger("wallet.config").warning(
            "Missing required environment variables: %s", ", ".join(missing)
        )
    return missing
