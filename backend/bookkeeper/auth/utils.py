from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from bookkeeper.config import Settings


@dataclass
class TokenPayload:
    sub: uuid.UUID
    exp: datetime


def create_access_token(user_id: uuid.UUID, settings: Settings | None = None) -> str:
    if settings is None:
        settings = Settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.access_token_expire_minutes)
    payload = {
        "sub": str(user_id),
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str, settings: Settings | None = None) -> TokenPayload | None:
    """Decode an access token; returns None for anything that is not a valid one."""
    if settings is None:
        settings = Settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        if payload.get("type") != "access":
            return None
        return TokenPayload(
            sub=uuid.UUID(payload["sub"]),
            exp=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
    except (JWTError, KeyError, ValueError):
        return None
