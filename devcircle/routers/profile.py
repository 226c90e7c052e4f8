from datetime import datetime

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from devcircle.models.schemas import ProfileUpdate
from devcircle.services.auth import get_current_user, hash_password
from devcircle.services.db import users_coll, to_dict
from devcircle.utils.exceptions import ExceptionContext, ValidationError
from devcircle.utils.logging_config import get_logger
from devcircle.utils.utils import parse_object_id

router = APIRouter()
logger = get_logger(__name__)

ALLOWED_UPDATES = {"firstName", "lastName", "password", "skills", "age"}


@router.get("/profile")
async def get_profile(current_user: dict = Depends(get_current_user)):
    """The caller's own profile"""
    return {"success": True, "data": to_dict(current_user)}


@router.patch("/profile")
async def update_profile(
    request: Request,
    data: dict = Body(...),
    current_user: dict = Depends(get_current_user),
):
    """Update the caller's profile; only whitelisted fields are accepted"""
    request_id = getattr(request.state, 'request_id', 'unknown')

    invalid = sorted(set(data) - ALLOWED_UPDATES)
    if invalid:
        raise ValidationError("Invalid update fields", field=", ".join(invalid))
    if not data:
        raise ValidationError("No update data provided")
    nulls = sorted(k for k, v in data.items() if v is None)
    if nulls:
        raise ValidationError("Update fields cannot be null", field=", ".join(nulls))

    updates = ProfileUpdate(**data).dict(exclude_unset=True)
    if "password" in updates:
        updates["password"] = hash_password(updates["password"])
    updates["updatedAt"] = datetime.utcnow()

    with ExceptionContext("update_profile", logger, request_id=request_id):
        updated = await users_coll.find_one_and_update(
            {"_id": current_user["_id"]},
            {"$set": updates},
            projection={"password": 0},
            return_document=True,
        )

    if not updated:
        raise HTTPException(status_code=404, detail="User not found")

    logger.info(
        f"Updated profile {current_user['_id']}: {sorted(k for k in updates if k != 'password')}",
        extra={"request_id": request_id},
    )
    return {"success": True, "message": "User updated successfully", "data": to_dict(updated)}


@router.get("/profile/{user_id}")
async def get_user_profile(user_id: str, current_user: dict = Depends(get_current_user)):
    """Another user's public profile"""
    user = await users_coll.find_one({"_id": parse_object_id(user_id, "user_id")}, {"password": 0})
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return {"success": True, "data": to_dict(user)}
