from datetime import datetime, timedelta, timezone

import jwt

from dental_office.core import config

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


def _encode(payload: dict, secret: str, expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "exp": now + timedelta(minutes=expires_minutes), "iat": now}
    return jwt.encode(payload, secret, algorithm=config.JWT_ALGORITHM)


def create_access_token(subject: str, role: str, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_EXPIRES_MINUTES
    payload = {"sub": subject, "role": role, "type": ACCESS_TOKEN_TYPE}
    return _encode(payload, config.JWT_SECRET_KEY, expire_minutes)


def create_refresh_token(subject: str, expires_minutes: int | None = None) -> str:
    expire_minutes = expires_minutes or config.JWT_REFRESH_EXPIRES_MINUTES
    payload = {"sub": subject, "type": REFRESH_TOKEN_TYPE}
    return _encode(payload, config.JWT_REFRESH_SECRET_KEY, expire_minutes)


def decode_access_token(token: str) -> dict:
    payload = jwt.decode(token, config.JWT_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != ACCESS_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not an access token")
    return payload


def decode_refresh_token(token: str) -> dict:
    payload = jwt.decode(token, config.JWT_REFRESH_SECRET_KEY, algorithms=[config.JWT_ALGORITHM])
    if payload.get("type") != REFRESH_TOKEN_TYPE:
        raise jwt.InvalidTokenError("Not a refresh token")
    return payload
