from datetime import datetime

from fastapi import APIRouter, Depends, Request, Response
from pymongo.errors import DuplicateKeyError

from devcircle.models.schemas import LoginPayload, RegisterPayload
from devcircle.services.auth import (
    JWT_EXPIRES_MINUTES,
    TOKEN_COOKIE,
    create_access_token,
    get_current_user,
    hash_password,
    public_user,
    verify_password,
)
from devcircle.services.db import users_coll, to_dict
from devcircle.utils.exceptions import AuthenticationError, BusinessLogicError, ExceptionContext
from devcircle.utils.logging_config import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.post("/register", status_code=201)
async def register(payload: RegisterPayload, request: Request):
    """Create a user account"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    with ExceptionContext("register_user", logger, request_id=request_id):
        existing = await users_coll.find_one({"email": payload.email}, {"_id": 1})
        if existing:
            logger.warning("Registration with an existing email", extra={"request_id": request_id})
            raise BusinessLogicError("Email already exists", rule="unique_email")

        user = payload.dict()
        user["password"] = hash_password(payload.password)
        user["createdAt"] = datetime.utcnow()

        try:
            result = await users_coll.insert_one(user)
        except DuplicateKeyError:
            raise BusinessLogicError("Email already exists", rule="unique_email")
        user["_id"] = result.inserted_id

    logger.info(f"Registered user {user['_id']}", extra={"request_id": request_id})
    return {
        "success": True,
        "message": "User registered successfully",
        "data": to_dict(public_user(user)),
    }


@router.post("/login")
async def login(payload: LoginPayload, response: Response):
    """Exchange credentials for a JWT, also set as the ``token`` cookie"""
    user = await users_coll.find_one({"email": payload.email.strip().lower()})
    if not user or not verify_password(payload.password, user.get("password")):
        raise AuthenticationError("Invalid email or password")

    token = create_access_token(user["_id"])
    response.set_cookie(
        TOKEN_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        max_age=JWT_EXPIRES_MINUTES * 60,
    )

    logger.info(f"User {user['_id']} logged in")
    return {
        "success": True,
        "message": "Login successful",
        "token": token,
        "data": to_dict(public_user(user)),
    }


@router.post("/logout")
async def logout(response: Response, current_user: dict = Depends(get_current_user)):
    response.delete_cookie(TOKEN_COOKIE)
    return {
        "success": True,
        "message": f"{current_user.get('firstName', 'User')} has logged out successfully",
    }
