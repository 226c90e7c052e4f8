from datetime import datetime

from fastapi import APIRouter, Depends
from pymongo.errors import DuplicateKeyError

from devcircle.models.schemas import CONTACT_USER_FIELDS, MAX_MESSAGE_LENGTH, ConversationCreate, MessageCreate
from devcircle.services.auth import get_current_user
from devcircle.services.connection_manager import ConnectionManager
from devcircle.services.db import conversations_coll, messages_coll, users_coll, to_dict
from devcircle.utils.exceptions import AuthorizationError, BusinessLogicError, NotFoundError, ValidationError
from devcircle.utils.logging_config import get_logger
from devcircle.utils.utils import parse_object_id

router = APIRouter(prefix="/conversations")
logger = get_logger(__name__)

SENDER_FIELDS = {"firstName": 1, "lastName": 1}


def participants_key(user_a, user_b) -> str:
    """Order-independent identity of a two-person conversation"""
    return ":".join(sorted((str(user_a), str(user_b))))


async def _conversation_for(conversation_id: str, user_id) -> dict:
    conversation = await conversations_coll.find_one({
        "_id": parse_object_id(conversation_id, "conversation_id"),
        "participants": user_id,
    })
    if not conversation:
        raise NotFoundError("Conversation not found", resource="conversation", resource_id=conversation_id)
    return conversation


async def _mark_read(conversation_id, user_id) -> int:
    result = await messages_coll.update_many(
        {
            "conversation": conversation_id,
            "sender": {"$ne": user_id},
            "readBy": {"$ne": user_id},
        },
        {"$addToSet": {"readBy": user_id}},
    )
    return result.modified_count


async def _with_participants(conversation: dict) -> dict:
    users = await ConnectionManager.users_by_id(conversation["participants"], CONTACT_USER_FIELDS)
    populated = dict(conversation)
    populated["participants"] = [users.get(str(p), {"_id": p}) for p in conversation["participants"]]
    return populated


@router.post("")
async def create_or_get_conversation(payload: ConversationCreate, current_user: dict = Depends(get_current_user)):
    """Open the conversation with a connected user, creating it on first use"""
    if not payload.participantId:
        raise ValidationError("Participant ID is required", field="participantId")

    user_id = current_user["_id"]
    participant_id = parse_object_id(payload.participantId, "participantId")
    if participant_id == user_id:
        raise BusinessLogicError("You cannot start a conversation with yourself", rule="no_self_conversation")

    participant = await users_coll.find_one({"_id": participant_id}, {"_id": 1})
    if not participant:
        raise NotFoundError("User not found", resource="user", resource_id=payload.participantId)

    if not await ConnectionManager.are_connected(user_id, participant_id):
        raise AuthorizationError("You can only message users you are connected with", resource="conversation")

    key = participants_key(user_id, participant_id)
    now = datetime.utcnow()
    try:
        conversation = await conversations_coll.find_one_and_update(
            {"participantsKey": key},
            {"$setOnInsert": {
                "participantsKey": key,
                "participants": [user_id, participant_id],
                "lastMessage": None,
                "createdAt": now,
                "updatedAt": now,
            }},
            upsert=True,
            return_document=True,
        )
    except DuplicateKeyError:
        # A concurrent upsert for the same pair won the insert
        conversation = await conversations_coll.find_one({"participantsKey": key})

    logger.info(f"Opened conversation {conversation['_id']} between {user_id} and {participant_id}")

    return {"success": True, "data": to_dict(await _with_participants(conversation))}


@router.get("/list")
async def list_conversations(current_user: dict = Depends(get_current_user)):
    """The caller's conversations, most recently active first"""
    conversations = await conversations_coll.find(
        {"participants": current_user["_id"]}
    ).sort("updatedAt", -1).to_list(length=None)

    message_ids = [c["lastMessage"] for c in conversations if c.get("lastMessage")]
    last_messages = {}
    if message_ids:
        found = await messages_coll.find({"_id": {"$in": message_ids}}).to_list(length=None)
        last_messages = {str(m["_id"]): m for m in found}

    data = []
    for conversation in conversations:
        populated = await _with_participants(conversation)
        if conversation.get("lastMessage"):
            populated["lastMessage"] = last_messages.get(str(conversation["lastMessage"]))
        data.append(populated)

    return {"success": True, "data": to_dict(data) or []}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, current_user: dict = Depends(get_current_user)):
    """Messages oldest first; reading them marks the others' messages as read"""
    user_id = current_user["_id"]
    conversation = await _conversation_for(conversation_id, user_id)

    messages = await messages_coll.find(
        {"conversation": conversation["_id"]}
    ).sort("createdAt", 1).to_list(length=None)

    senders = await ConnectionManager.users_by_id(list({m["sender"] for m in messages}), SENDER_FIELDS)
    for message in messages:
        message["sender"] = senders.get(str(message["sender"]), {"_id": message["sender"]})

    await _mark_read(conversation["_id"], user_id)
    return {"success": True, "data": to_dict(messages) or []}


@router.post("/{conversation_id}/messages", status_code=201)
async def send_message(
    conversation_id: str,
    payload: MessageCreate,
    current_user: dict = Depends(get_current_user),
):
    content = (payload.content or "").strip()
    if not content:
        raise ValidationError("Message content is required", field="content")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message content cannot exceed {MAX_MESSAGE_LENGTH} characters", field="content"
        )

    user_id = current_user["_id"]
    conversation = await _conversation_for(conversation_id, user_id)

    now = datetime.utcnow()
    message = {
        "conversation": conversation["_id"],
        "sender": user_id,
        "content": content,
        "readBy": [user_id],
        "createdAt": now,
    }
    result = await messages_coll.insert_one(message)
    message["_id"] = result.inserted_id

    await conversations_coll.update_one(
        {"_id": conversation["_id"]},
        {"$set": {"lastMessage": result.inserted_id, "updatedAt": now}},
    )

    message["sender"] = {k: current_user.get(k) for k in ("_id", "firstName", "lastName")}
    return {"success": True, "data": to_dict(message)}


@router.patch("/{conversation_id}/read")
async def mark_conversation_read(conversation_id: str, current_user: dict = Depends(get_current_user)):
    user_id = current_user["_id"]
    conversation = await _conversation_for(conversation_id, user_id)
    modified = await _mark_read(conversation["_id"], user_id)
    return {"success": True, "message": "Messages marked as read", "modifiedCount": modified}
