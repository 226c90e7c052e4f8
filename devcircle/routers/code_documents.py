from datetime import datetime

from fastapi import APIRouter, Depends

from devcircle.models.schemas import CONTACT_USER_FIELDS, CodeDocumentCreate, CodeDocumentUpdate, ShareRequest
from devcircle.services import documents
from devcircle.services.auth import get_current_user
from devcircle.services.connection_manager import ConnectionManager
from devcircle.services.db import code_documents_coll, users_coll, to_dict
from devcircle.utils.exceptions import AuthorizationError, BusinessLogicError, NotFoundError, ValidationError
from devcircle.utils.logging_config import get_logger
from devcircle.utils.utils import parse_object_id

router = APIRouter()
logger = get_logger(__name__)


async def _find_document(document_id: str) -> dict:
    document = await code_documents_coll.find_one({"_id": parse_object_id(document_id, "document_id")})
    if not document:
        raise NotFoundError("Document not found", resource="code_document", resource_id=document_id)
    return document


async def _present(document: dict, user_id) -> dict:
    """Populate user references and attach the caller's permission"""
    shares = document.get("sharedWith") or []
    ref_ids = {document.get("createdBy"), document.get("lastModifiedBy")}
    ref_ids.update(s.get("user") for s in shares)
    users = await ConnectionManager.users_by_id([r for r in ref_ids if r is not None], CONTACT_USER_FIELDS)

    def populate(ref):
        return users.get(str(ref), {"_id": ref}) if ref is not None else None

    presented = dict(document)
    presented["createdBy"] = populate(document.get("createdBy"))
    presented["lastModifiedBy"] = populate(document.get("lastModifiedBy"))
    presented["sharedWith"] = [{**s, "user": populate(s.get("user"))} for s in shares]

    permission = documents.get_user_permission(document, user_id)
    if permission is None and document.get("isPublic"):
        permission = documents.VIEW
    presented["permission"] = permission
    return to_dict(presented)


@router.post("", status_code=201)
async def create_document(payload: CodeDocumentCreate, current_user: dict = Depends(get_current_user)):
    user_id = current_user["_id"]
    now = datetime.utcnow()
    document = {
        **payload.dict(),
        "createdBy": user_id,
        "sharedWith": [],
        "roomId": documents.new_room_id(),
        "lastModifiedBy": user_id,
        "lastModifiedAt": now,
        "createdAt": now,
        "updatedAt": now,
    }
    result = await code_documents_coll.insert_one(document)
    document["_id"] = result.inserted_id

    logger.info(f"User {user_id} created code document {result.inserted_id}")
    return {"success": True, "data": await _present(document, user_id)}


@router.get("")
async def list_documents(current_user: dict = Depends(get_current_user)):
    """Documents the caller owns or that were shared with them"""
    user_id = current_user["_id"]
    docs = await code_documents_coll.find(
        {"$or": [{"createdBy": user_id}, {"sharedWith.user": user_id}]}
    ).sort("updatedAt", -1).to_list(length=None)
    return {"success": True, "data": [await _present(d, user_id) for d in docs]}


@router.get("/room/{room_id}")
async def get_document_by_room(room_id: str, current_user: dict = Depends(get_current_user)):
    user_id = current_user["_id"]
    document = await code_documents_coll.find_one({"roomId": room_id})
    if not document:
        raise NotFoundError("Room not found", resource="room", resource_id=room_id)
    if not documents.has_access(document, user_id):
        raise AuthorizationError("You do not have permission to view this document", resource="code_document")
    return {"success": True, "data": await _present(document, user_id)}


@router.get("/{document_id}")
async def get_document(document_id: str, current_user: dict = Depends(get_current_user)):
    user_id = current_user["_id"]
    document = await _find_document(document_id)
    if not documents.has_access(document, user_id):
        raise AuthorizationError("You do not have permission to view this document", resource="code_document")
    return {"success": True, "data": await _present(document, user_id)}


@router.put("/{document_id}")
async def update_document(
    document_id: str,
    payload: CodeDocumentUpdate,
    current_user: dict = Depends(get_current_user),
):
    user_id = current_user["_id"]
    document = await _find_document(document_id)
    if not documents.can_edit(document, user_id):
        raise AuthorizationError("You do not have permission to edit this document", resource="code_document")

    updates = payload.dict(exclude_unset=True, exclude_none=True)
    if "isPublic" in updates and not documents.can_share(document, user_id):
        raise AuthorizationError("Only the owner can change document visibility", resource="code_document")

    now = datetime.utcnow()
    updates.update({"lastModifiedBy": user_id, "lastModifiedAt": now, "updatedAt": now})
    updated = await code_documents_coll.find_one_and_update(
        {"_id": document["_id"]},
        {"$set": updates},
        return_document=True,
    )
    return {"success": True, "data": await _present(updated, user_id)}


@router.delete("/{document_id}")
async def delete_document(document_id: str, current_user: dict = Depends(get_current_user)):
    user_id = current_user["_id"]
    document = await _find_document(document_id)
    if not documents.is_owner(document, user_id):
        raise AuthorizationError("Only the document owner can delete it", resource="code_document")

    await code_documents_coll.delete_one({"_id": document["_id"]})
    logger.info(f"User {user_id} deleted code document {document['_id']}")
    return {"success": True, "message": "Document deleted successfully"}


@router.post("/{document_id}/share")
async def share_document(
    document_id: str,
    payload: ShareRequest,
    current_user: dict = Depends(get_current_user),
):
    user_id = current_user["_id"]
    document = await _find_document(document_id)
    if not documents.can_share(document, user_id):
        raise AuthorizationError("Only the owner can share this document", resource="code_document")

    target_id = parse_object_id(payload.userId, "userId")
    if target_id == user_id:
        raise ValidationError("You already own this document", field="userId")
    if documents.get_user_permission(document, target_id) is not None:
        raise BusinessLogicError("User is already shared with this document", rule="unique_share")
    if not await users_coll.find_one({"_id": target_id}, {"_id": 1}):
        raise NotFoundError("User not found", resource="user", resource_id=payload.userId)

    now = datetime.utcnow()
    updated = await code_documents_coll.find_one_and_update(
        {"_id": document["_id"]},
        {
            "$push": {"sharedWith": {"user": target_id, "permission": payload.permission, "sharedAt": now}},
            "$set": {"updatedAt": now},
        },
        return_document=True,
    )

    logger.info(f"Shared code document {document['_id']} with {target_id} ({payload.permission})")
    return {
        "success": True,
        "message": "Document shared successfully",
        "data": await _present(updated, user_id),
    }


@router.delete("/{document_id}/share/{target_user_id}")
async def remove_share(
    document_id: str,
    target_user_id: str,
    current_user: dict = Depends(get_current_user),
):
    user_id = current_user["_id"]
    document = await _find_document(document_id)
    if not documents.can_share(document, user_id):
        raise AuthorizationError("Only the document owner can remove share access", resource="code_document")

    target_id = parse_object_id(target_user_id, "user_id")
    if documents.get_user_permission(document, target_id) in (None, documents.OWNER):
        raise NotFoundError("User was not shared with this document", resource="share", resource_id=target_user_id)

    updated = await code_documents_coll.find_one_and_update(
        {"_id": document["_id"]},
        {
            "$pull": {"sharedWith": {"user": target_id}},
            "$set": {"updatedAt": datetime.utcnow()},
        },
        return_document=True,
    )
    return {
        "success": True,
        "message": "Share access removed successfully",
        "data": await _present(updated, user_id),
    }
