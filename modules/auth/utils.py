import logging
from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
import os

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"


def _jwt_secret() -> str:
    # Read per call so tests and the relay pick up the configured secret
    secret = os.getenv("JWT_SECRET")
    if not secret:
        raise RuntimeError("JWT_SECRET environment variable is not set.")
    return secret


def _token_lifetime() -> timedelta:
    return timedelta(hours=float(os.getenv("JWT_EXPIRE_HOURS", "24")))


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def create_access_token(claims: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Signed bearer token; ``sub`` is the user id, used by both REST and the chat relay"""
    expire = datetime.now(timezone.utc) + (expires_delta or _token_lifetime())
    token = jwt.encode({**claims, "exp": expire}, _jwt_secret(), algorithm=ALGORITHM)
    logger.debug(f"Access token issued for {claims.get('sub')}, expires {expire.isoformat()}")
    return token


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid token, or None when it is malformed, forged or expired"""
    try:
        return jwt.decode(token, _jwt_secret(), algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None
