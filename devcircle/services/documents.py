"""
Access rules for shared code documents.

Documents are plain Mongo dicts; ``createdBy`` and ``sharedWith[].user`` may be
ObjectIds, strings or populated user dicts.
"""
import uuid
from typing import Any, Dict, Optional

OWNER = "owner"
EDIT = "edit"
VIEW = "view"


def _ref_id(ref: Any) -> str:
    if isinstance(ref, dict):
        ref = ref.get("_id")
    return str(ref) if ref is not None else ""


def _share_for(document: Dict[str, Any], user_id: Any) -> Optional[Dict[str, Any]]:
    user = _ref_id(user_id)
    for share in document.get("sharedWith") or []:
        if _ref_id(share.get("user")) == user:
            return share
    return None


def is_owner(document: Dict[str, Any], user_id: Any) -> bool:
    owner = _ref_id(document.get("createdBy"))
    return bool(owner) and owner == _ref_id(user_id)


def has_access(document: Dict[str, Any], user_id: Any) -> bool:
    if document.get("isPublic"):
        return True
    return is_owner(document, user_id) or _share_for(document, user_id) is not None


def can_edit(document: Dict[str, Any], user_id: Any) -> bool:
    if is_owner(document, user_id):
        return True
    share = _share_for(document, user_id)
    return share is not None and share.get("permission") == EDIT


def can_share(document: Dict[str, Any], user_id: Any) -> bool:
    return is_owner(document, user_id)


def get_user_permission(document: Dict[str, Any], user_id: Any) -> Optional[str]:
    if is_owner(document, user_id):
        return OWNER
    share = _share_for(document, user_id)
    if share is not None:
        return share.get("permission", VIEW)
    return None


def new_room_id() -> str:
    return f"doc-{uuid.uuid4().hex}"
