from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, Field, field_validator


class Permission(str, Enum):
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    READ = "read"


EXPIRY_PATTERN = r"^[1-9][0-9]*[HDMY]$"


class KeyCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    permissions: List[Permission] = Field(min_length=1)
    expiry: str = Field(pattern=EXPIRY_PATTERN, examples=["1H", "1D", "1M", "1Y"])


class KeyRolloverRequest(BaseModel):
    expired_key_id: str = Field(min_length=1)
    expiry: str = Field(pattern=EXPIRY_PATTERN)


class KeyRevokeRequest(BaseModel):
    api_key: str = Field(min_length=1)


class IssuedKey(BaseModel):
    api_key: str
    expires_at: datetime

    @field_validator("expires_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        # stored naive, always UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class RevokedKey(BaseModel):
    message: str = "API key revoked successfully"
    revoked_key_name: str
