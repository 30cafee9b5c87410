# sangh_api/utils/permissions.py
"""
Who may do what to a Sangh post.

* Owner-or-privileged guard for edit/delete/hide/media removal.
* Hidden posts read as "not found" for everybody but the owner and privileged
  actors, so their existence is never disclosed.
* Office-bearer check for posting on behalf of a Sangh.
"""
from __future__ import annotations

from typing import Optional, Union

from bson import ObjectId
from fastapi import Depends

from ..db.mongo import hierarchical_sanghs_collection
from ..models.sangh_post_model import SanghPostModel
from ..schemas.sangh_post_schema import PostResponse
from .auth_utils import get_current_user, is_privileged
from .errors import AuthorizationError, NotFoundError, post_not_found

# a stored post, or its cached response shape; both carry the owner and the hidden flag
PostLike = Union[SanghPostModel, PostResponse]

OFFICE_BEARER_ROLES = ("president", "secretary", "treasurer")

# which Sangh levels a role held at a given level covers
LEVEL_ACCESS = {
    "country": {"country", "state", "district", "city"},
    "state": {"state", "district", "city"},
    "district": {"district", "city"},
    "city": {"city"},
}

_ACTION_MESSAGES = {
    "edit": "Not authorized to update this post",
    "delete": "Not authorized to delete this post",
    "hide": "Not authorized to change visibility of this post",
    "delete_media": "Not authorized to remove media from this post",
}


def is_owner(post: PostLike, user: Optional[dict]) -> bool:
    return bool(user) and str(post.posted_by_user_id) == str(user["_id"])


def authorize(post: SanghPostModel, user: dict, action: str) -> None:
    if is_owner(post, user) or is_privileged(user):
        return
    raise AuthorizationError(_ACTION_MESSAGES.get(action, "Not authorized"))


def can_view(post: PostLike, user: Optional[dict]) -> bool:
    if not post.is_hidden:
        return True
    return is_owner(post, user) or is_privileged(user)


def ensure_visible(post: PostLike, user: Optional[dict]) -> None:
    # hidden looks exactly like absent
    if not can_view(post, user):
        raise post_not_found()


def has_level_access(role_level: Optional[str], target_level: Optional[str]) -> bool:
    return target_level in LEVEL_ACCESS.get(role_level or "", set())


async def load_sangh(sangh_id: str) -> dict:
    if not ObjectId.is_valid(sangh_id):
        raise NotFoundError("sangh", "Sangh not found")
    sangh = await hierarchical_sanghs_collection.find_one({"_id": ObjectId(sangh_id)})
    if not sangh:
        raise NotFoundError("sangh", "Sangh not found")
    return sangh


def office_bearer_role(user: dict, sangh: dict) -> Optional[str]:
    """The office-bearer role that lets ``user`` post for ``sangh``, direct roles first."""
    roles = [r for r in user.get("sanghRoles", []) or [] if r.get("role") in OFFICE_BEARER_ROLES]
    sangh_id = str(sangh["_id"])
    for r in roles:
        if str(r.get("sanghId")) == sangh_id:
            return r["role"]
    for r in roles:
        if has_level_access(r.get("level"), sangh.get("level")):
            return r["role"]
    return None


async def can_post_as_sangh(
    sangh_id: str,
    current_user: dict = Depends(get_current_user),
) -> dict:
    """
    Route dependency for posting as a Sangh.
    Returns ``{"user", "sangh", "role"}`` where ``role`` becomes ``posted_by_role``.
    """
    sangh = await load_sangh(sangh_id)
    if is_privileged(current_user):
        return {"user": current_user, "sangh": sangh, "role": "superadmin"}

    role = office_bearer_role(current_user, sangh)
    if not role:
        raise AuthorizationError("Only office bearers can perform this action")
    return {"user": current_user, "sangh": sangh, "role": role}
