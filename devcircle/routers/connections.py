from fastapi import APIRouter, Depends, Query, Request

from devcircle.models.models import MatchProfile
from devcircle.models.schemas import PUBLIC_USER_FIELDS
from devcircle.services.auth import get_current_user
from devcircle.services.connection_manager import ConnectionManager
from devcircle.services.db import connections_coll, users_coll, to_dict
from devcircle.services.matching import rank_users_by_match
from devcircle.utils.exceptions import ExceptionContext, NotFoundError, ValidationError
from devcircle.utils.logging_config import get_logger, PerformanceMonitor
from devcircle.utils.utils import paginate, parse_object_id

router = APIRouter(prefix="/connection")
logger = get_logger(__name__)

MAX_PAGE_SIZE = 50


def _check_list_status(status: str):
    if status not in ConnectionManager.LIST_STATUSES:
        raise ValidationError("Invalid status", field="status", value=status)


async def _requests_for(user_id, status: str) -> list:
    cursor = connections_coll.find(ConnectionManager.involving(user_id, status)).sort("createdAt", -1)
    requests = await cursor.to_list(length=None)
    if not requests:
        raise NotFoundError("No connection requests found", resource="connection_request")
    return requests


@router.get("/profiles")
async def list_feed_profiles(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: dict = Depends(get_current_user),
):
    """Users the caller has not interacted with yet"""
    limit = min(limit, MAX_PAGE_SIZE)
    excluded = await ConnectionManager.excluded_user_ids(current_user["_id"])

    cursor = (
        users_coll.find({"_id": {"$nin": list(excluded)}}, PUBLIC_USER_FIELDS)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    users = await cursor.to_list(length=None)
    return {"success": True, "data": [to_dict(u) for u in users]}


@router.get("/matches")
async def list_ranked_matches(
    request: Request,
    min_score: int = Query(0, ge=0, le=100, description="Minimum overall match percentage"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    current_user: dict = Depends(get_current_user),
):
    """The feed ranked by skill and age compatibility, paginated after ranking"""
    request_id = getattr(request.state, 'request_id', 'unknown')
    limit = min(limit, MAX_PAGE_SIZE)

    with PerformanceMonitor("rank_matches", logger):
        with ExceptionContext("load_candidates", logger, request_id=request_id):
            excluded = await ConnectionManager.excluded_user_ids(current_user["_id"])
            candidates = await users_coll.find(
                {"_id": {"$nin": list(excluded)}}, PUBLIC_USER_FIELDS
            ).to_list(length=None)

        requester = MatchProfile.from_user(current_user)
        ranked = rank_users_by_match(requester, candidates, min_threshold=min_score, logger=logger)

    return {
        "success": True,
        "total": len(ranked),
        "page": page,
        "limit": limit,
        "data": [to_dict(c) for c in paginate(ranked, page, limit)],
    }


@router.get("/pending/sent")
async def list_pending_sent(current_user: dict = Depends(get_current_user)):
    """Requests the caller sent that are still awaiting review"""
    requests = await connections_coll.find({
        "fromReqId": current_user["_id"],
        "status": ConnectionManager.STATUS_INTERESTED,
    }).sort("createdAt", -1).to_list(length=None)

    users = await ConnectionManager.users_by_id([r["toReqId"] for r in requests], PUBLIC_USER_FIELDS)
    pending = [
        {
            "_id": r["_id"],
            "status": r["status"],
            "createdAt": r.get("createdAt"),
            "otherUser": users.get(str(r["toReqId"])),
        }
        for r in requests
    ]
    return {"success": True, "otherUsers": to_dict(pending) or []}


@router.get("/requests/{status}")
async def list_request_senders(status: str, current_user: dict = Depends(get_current_user)):
    """Senders of the requests involving the caller with the given status"""
    _check_list_status(status)
    requests = await _requests_for(current_user["_id"], status)

    users = await ConnectionManager.users_by_id([r["fromReqId"] for r in requests], PUBLIC_USER_FIELDS)
    data = [users.get(str(r["fromReqId"])) for r in requests]
    return {
        "success": True,
        "message": "Connection requests retrieved successfully",
        "data": to_dict([u for u in data if u]) or [],
    }


@router.get("/{status}/me")
async def list_my_connections(status: str, current_user: dict = Depends(get_current_user)):
    """Requests involving the caller, each reduced to the other party"""
    _check_list_status(status)
    user_id = current_user["_id"]
    requests = await _requests_for(user_id, status)

    others = [ConnectionManager.other_party(r, user_id) for r in requests]
    users = await ConnectionManager.users_by_id(others, PUBLIC_USER_FIELDS)

    clean = [
        {
            "_id": r["_id"],
            "status": r["status"],
            "otherUser": users.get(str(other)),
        }
        for r, other in zip(requests, others)
    ]
    return {
        "success": True,
        "message": "Connection requests retrieved successfully",
        "otherUsers": to_dict(clean) or [],
    }


@router.post("/review/{status}/{request_id}")
async def review_connection_request(
    status: str,
    request_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Accept or reject a request addressed to the caller"""
    updated = await ConnectionManager.review_request(
        parse_object_id(request_id, "request_id"), current_user["_id"], status
    )
    return {
        "success": True,
        "message": "Connection request reviewed successfully",
        "connectionRequest": to_dict(updated),
    }


@router.post("/{status}/{to_user_id}", status_code=201)
async def send_connection_request(
    status: str,
    to_user_id: str,
    current_user: dict = Depends(get_current_user),
):
    """Mark another user as interested or rejected"""
    request = await ConnectionManager.send_request(
        current_user["_id"], parse_object_id(to_user_id, "to_user_id"), status
    )
    return {
        "success": True,
        "message": "Connection request sent successfully",
        "connectionRequest": to_dict(request),
    }
