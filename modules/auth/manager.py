import logging
from uuid import uuid4
from typing import Optional
from modules.auth.models import UserRegister, UserLogin
from modules.auth.utils import hash_password, verify_password, decode_token, create_access_token
from modules.shared.db import execute_query
from modules.shared.response import success_response, error_response
from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer

logger = logging.getLogger("auth.manager")

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

async def register_user(user: UserRegister) -> dict:
    """Register a new user"""
    logger.info(f"Attempting to register user: {user.username}")
    try:
        existing = await execute_query(
            "SELECT id FROM users WHERE username = $1",
            (user.username,),
            fetch_one=True
        )
        if existing:
            logger.warning(f"Registration failed: Username '{user.username}' already exists.")
            return error_response("Username already exists", 400)

        result = await execute_query(
            """
            INSERT INTO users (id, username, email, password_hash, role, created_at)
            VALUES ($1, $2, $3, $4, $5, NOW())
            RETURNING id, username, email, role, created_at
            """,
            (str(uuid4()), user.username, user.email, hash_password(user.password), user.role),
            fetch_one=True
        )
        logger.info(f"User registered successfully: {result['username']} (id: {result['id']})")
        return success_response(dict(result), "User registered successfully", status_code=201)
    except Exception as e:
        logger.exception(f"Error registering user '{user.username}'")
        return error_response(str(e), 500)

async def login_user(user: UserLogin) -> dict:
    """Authenticate user and return JWT and user data"""
    logger.info(f"Attempting login for user: {user.email_or_username}")
    try:
        result = await execute_query(
            """
            SELECT id, username, email, password_hash, role, created_at, last_login_at FROM users
            WHERE username = $1 OR email = $1
            """,
            (user.email_or_username,),
            fetch_one=True
        )
        if not result or not verify_password(user.password, result["password_hash"]):
            logger.warning(f"Login failed: Invalid credentials for user '{user.email_or_username}'.")
            return error_response("Invalid credentials", 401)

        token = create_access_token({
            "sub": str(result["id"]),
            "role": result["role"],
            "username": result["username"],
        })
        await execute_query(
            "UPDATE users SET last_login_at = NOW() WHERE id = $1",
            (result["id"],)
        )
        user_data = {
            "id": result["id"],
            "username": result["username"],
            "email": result["email"],
            "role": result["role"],
            "created_at": result["created_at"],
        }
        logger.info(f"User '{user.email_or_username}' authenticated successfully.")
        return success_response({"token": token, "user": user_data}, "Login successful")
    except Exception as e:
        logger.exception(f"Error logging in user '{user.email_or_username}'")
        return error_response(str(e), 500)

async def get_current_user(token: str = Depends(oauth2_scheme)) -> dict:
    """Get current user from JWT"""
    payload = decode_token(token)
    if not payload:
        logger.warning("Invalid token provided.")
        raise HTTPException(status_code=401, detail="Invalid token")

    result = await execute_query(
        """
        SELECT id, username, email, role, created_at, last_login_at
        FROM users
        WHERE id = $1
        """,
        (payload["sub"],),
        fetch_one=True
    )
    if not result:
        logger.warning(f"User not found for id: {payload['sub']}")
        raise HTTPException(status_code=401, detail="User not found")

    return {
        "id": str(result["id"]),
        "username": result["username"],
        "email": result["email"],
        "role": result["role"],
        "created_at": result["created_at"].isoformat(),
        "last_login_at": result["last_login_at"].isoformat() if result["last_login_at"] else None
    }

def user_from_token(token: Optional[str]) -> Optional[dict]:
    """
    Resolve a relay connection's user from its bearer token claims alone.
    Returns None when the token is missing or invalid.
    """
    if not token:
        return None
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        return None
    return {
        "id": payload["sub"],
        "username": payload.get("username"),
        "role": payload.get("role"),
    }
