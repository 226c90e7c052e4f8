"""
Password hashing, JWT issuance and the current-user dependency.
"""
import hashlib
import hmac
import os
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

import jwt
from dotenv import load_dotenv
from fastapi import Request

from devcircle.services.db import users_coll
from devcircle.utils.exceptions import AuthenticationError, ValidationError
from devcircle.utils.logging_config import get_logger
from devcircle.utils.utils import parse_object_id

logger = get_logger(__name__)

load_dotenv()

JWT_SECRET = os.getenv("JWT_SECRET") or secrets.token_hex(32)
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))
TOKEN_COOKIE = "token"
PBKDF2_ITERATIONS = 100000

if not os.getenv("JWT_SECRET"):
    logger.warning("JWT_SECRET not set; using a random per-process secret")


def hash_password(password: str) -> str:
    salt = secrets.token_hex(16)
    hashed = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return f"{salt}${hashed.hex()}"


def verify_password(password: str, stored: Optional[str]) -> bool:
    if not stored or "$" not in stored:
        return False
    salt, hashed = stored.split("$", 1)
    check = hashlib.pbkdf2_hmac("sha256", password.encode(), salt.encode(), PBKDF2_ITERATIONS)
    return hmac.compare_digest(check.hex(), hashed)


def create_access_token(user_id: Any) -> str:
    payload = {
        "_id": str(user_id),
        "exp": datetime.utcnow() + timedelta(minutes=JWT_EXPIRES_MINUTES),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")
    if not payload.get("_id"):
        raise AuthenticationError("Invalid token payload")
    return payload


def extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return request.cookies.get(TOKEN_COOKIE)


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password"}


async def get_current_user(request: Request) -> Dict[str, Any]:
    """FastAPI dependency resolving the caller from a bearer token or cookie"""
    token = extract_token(request)
    if not token:
        raise AuthenticationError("No token provided")

    payload = decode_access_token(token)
    try:
        user_id = parse_object_id(payload["_id"], "user id")
    except ValidationError:
        raise AuthenticationError("Invalid token payload")

    user = await users_coll.find_one({"_id": user_id}, {"password": 0})
    if not user:
        logger.warning(f"Token for unknown user {user_id}")
        raise AuthenticationError("User not found")
    return user
