"""
Connection request workflow: sending, reviewing and looking up requests
"""
from datetime import datetime
from typing import Any, Dict, List, Set

from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from devcircle.services.db import connections_coll, users_coll
from devcircle.utils.exceptions import BusinessLogicError, NotFoundError, ValidationError
from devcircle.utils.logging_config import get_logger

logger = get_logger(__name__)


class ConnectionManager:
    """Manages connection requests between users"""

    STATUS_INTERESTED = "interested"
    STATUS_ACCEPTED = "accepted"
    STATUS_REJECTED = "rejected"

    SEND_STATUSES = (STATUS_INTERESTED, STATUS_REJECTED)
    REVIEW_STATUSES = (STATUS_ACCEPTED, STATUS_REJECTED)
    LIST_STATUSES = (STATUS_INTERESTED, STATUS_ACCEPTED)

    @staticmethod
    def involving(user_id: ObjectId, status: str = None) -> Dict[str, Any]:
        """Query matching requests where the user is either party"""
        if status is None:
            return {"$or": [{"fromReqId": user_id}, {"toReqId": user_id}]}
        return {"$or": [
            {"fromReqId": user_id, "status": status},
            {"toReqId": user_id, "status": status},
        ]}

    @staticmethod
    def other_party(request: Dict[str, Any], user_id: ObjectId) -> ObjectId:
        if str(request["fromReqId"]) == str(user_id):
            return request["toReqId"]
        return request["fromReqId"]

    @staticmethod
    async def send_request(from_id: ObjectId, to_id: ObjectId, status: str) -> Dict[str, Any]:
        """Record an interested/rejected swipe from one user on another"""
        if status not in ConnectionManager.SEND_STATUSES:
            raise ValidationError(f"Invalid status: {status}", field="status", value=status)

        if str(from_id) == str(to_id):
            raise BusinessLogicError(
                "You cannot send a connection request to yourself", rule="no_self_request"
            )

        to_user = await users_coll.find_one({"_id": to_id}, {"_id": 1})
        if not to_user:
            raise NotFoundError("User not found with that ID", resource="user", resource_id=str(to_id))

        existing = await connections_coll.find_one({
            "$or": [
                {"fromReqId": from_id, "toReqId": to_id},
                {"fromReqId": to_id, "toReqId": from_id},
            ]
        })
        if existing:
            raise BusinessLogicError(
                "Connection request already exists between you two.", rule="unique_connection"
            )

        now = datetime.utcnow()
        request = {
            "fromReqId": from_id,
            "toReqId": to_id,
            "status": status,
            "createdAt": now,
            "updatedAt": now,
        }
        try:
            result = await connections_coll.insert_one(request)
        except DuplicateKeyError:
            raise BusinessLogicError(
                "Connection request already exists between you two.", rule="unique_connection"
            )
        request["_id"] = result.inserted_id

        logger.info(f"Connection request {result.inserted_id}: {from_id} -> {to_id} ({status})")
        return request

    @staticmethod
    async def review_request(request_id: ObjectId, reviewer_id: ObjectId, status: str) -> Dict[str, Any]:
        """Accept or reject a pending request addressed to the reviewer"""
        if status not in ConnectionManager.REVIEW_STATUSES:
            raise ValidationError("Invalid status", field="status", value=status)

        updated = await connections_coll.find_one_and_update(
            {
                "_id": request_id,
                "toReqId": reviewer_id,
                "status": ConnectionManager.STATUS_INTERESTED,
            },
            {"$set": {"status": status, "updatedAt": datetime.utcnow()}},
            return_document=True,
        )
        if not updated:
            raise NotFoundError(
                "Connection request not found or already reviewed",
                resource="connection_request",
                resource_id=str(request_id),
            )

        logger.info(f"Connection request {request_id} reviewed by {reviewer_id}: {status}")
        return updated

    @staticmethod
    async def excluded_user_ids(user_id: ObjectId) -> Set[ObjectId]:
        """The user plus everyone they have a request with, in either direction"""
        requests = await connections_coll.find(
            ConnectionManager.involving(user_id), {"fromReqId": 1, "toReqId": 1}
        ).to_list(length=None)

        excluded = {user_id}
        for request in requests:
            excluded.add(ConnectionManager.other_party(request, user_id))
        return excluded

    @staticmethod
    async def are_connected(user_a: ObjectId, user_b: ObjectId) -> bool:
        accepted = await connections_coll.find_one({
            "status": ConnectionManager.STATUS_ACCEPTED,
            "$or": [
                {"fromReqId": user_a, "toReqId": user_b},
                {"fromReqId": user_b, "toReqId": user_a},
            ],
        })
        return accepted is not None

    @staticmethod
    async def users_by_id(user_ids: List[ObjectId], projection: Dict[str, int]) -> Dict[str, Dict[str, Any]]:
        """Fetch several users at once, keyed by string id"""
        if not user_ids:
            return {}
        users = await users_coll.find({"_id": {"$in": list(user_ids)}}, projection).to_list(length=None)
        return {str(u["_id"]): u for u in users}
