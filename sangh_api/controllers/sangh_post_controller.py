# sangh_api/controllers/sangh_post_controller.py
from __future__ import annotations

import asyncio
import logging
import math
from typing import Iterable, List, Optional

from bson import ObjectId
from fastapi import UploadFile

from ..db.mongo import (
    sangh_posts_collection,
    users_collection,
    hierarchical_sanghs_collection,
)
from ..models.sangh_post_model import CommentModel, ReplyModel, SanghPostModel
from ..schemas.sangh_post_schema import PostResponse
from ..services.cache_service import (
    CacheService,
    TTL_FEED,
    TTL_POST,
    TTL_SANGH_POSTS,
    feed_key,
    post_key,
    sangh_posts_key,
)
from ..services.media_service import MediaStore, to_cdn_url, validate_uploads
from ..utils.datetime_utils import now_utc
from ..utils.errors import NotFoundError, ValidationError, post_not_found
from ..utils.moderation import clean_text
from ..utils.permissions import authorize, ensure_visible, load_sangh

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 100

_USER_PREVIEW_FIELDS = {"firstName": 1, "lastName": 1, "fullName": 1, "profilePicture": 1}
_SANGH_PREVIEW_FIELDS = {"name": 1, "level": 1, "location": 1}


# ---------------------------
# Helpers
# ---------------------------

def ensure_oid(id_str: str, label: str = "post") -> ObjectId:
    if not ObjectId.is_valid(id_str):
        raise ValidationError(f"Invalid {label} ID")
    return ObjectId(id_str)


def page_params(page: Optional[int], limit: Optional[int]) -> tuple[int, int]:
    page = max(1, int(page or 1))
    limit = max(1, min(int(limit if limit is not None else DEFAULT_LIMIT), MAX_LIMIT))
    return page, limit


def real_uploads(files: Optional[List[UploadFile]]) -> List[UploadFile]:
    # browsers send an empty part for an untouched file input
    return [f for f in (files or []) if f is not None and f.filename]


async def load_post(post_id: str) -> SanghPostModel:
    oid = ensure_oid(post_id)
    doc = await sangh_posts_collection.find_one({"_id": oid})
    if not doc:
        raise post_not_found()
    return SanghPostModel(**doc)


async def _fetch_by_ids(collection, ids: Iterable[str], projection: dict) -> dict:
    oids = list({ObjectId(i) for i in ids if i and ObjectId.is_valid(str(i))})
    if not oids:
        return {}
    cursor = collection.find({"_id": {"$in": oids}}, projection)
    return {str(doc["_id"]): doc async for doc in cursor}


def _author_preview(user: Optional[dict]) -> Optional[dict]:
    if not user:
        return None
    return {
        "id": str(user["_id"]),
        "first_name": user.get("firstName"),
        "last_name": user.get("lastName"),
        "full_name": user.get("fullName"),
        "profile_picture": user.get("profilePicture"),
    }


def _sangh_preview(sangh: Optional[dict]) -> Optional[dict]:
    if not sangh:
        return None
    return {
        "id": str(sangh["_id"]),
        "name": sangh.get("name"),
        "level": sangh.get("level"),
        "location": sangh.get("location"),
    }


def serialize_reply(reply: ReplyModel, users: dict) -> dict:
    data = reply.model_dump()
    data["author"] = _author_preview(users.get(reply.user_id))
    return data


def serialize_comment(comment: CommentModel, users: dict) -> dict:
    data = comment.model_dump(exclude={"replies"})
    data["author"] = _author_preview(users.get(comment.user_id))
    data["replies"] = [serialize_reply(r, users) for r in comment.replies]
    data["reply_count"] = comment.reply_count
    return data


def _user_ids(posts: Iterable[SanghPostModel]) -> set:
    ids = set()
    for p in posts:
        ids.add(p.posted_by_user_id)
        for c in p.comments:
            ids.add(c.user_id)
            ids.update(r.user_id for r in c.replies)
    return ids


async def fetch_users(ids: Iterable[str]) -> dict:
    return await _fetch_by_ids(users_collection, ids, _USER_PREVIEW_FIELDS)


def _serialize_post(post: SanghPostModel, users: dict, sanghs: dict) -> dict:
    """JSON-ready dict; identical whether it comes from Mongo or from the cache."""
    response = PostResponse(
        id=str(post.id),
        sangh_id=post.sangh_id,
        sangh_type=post.sangh_type,
        posted_by_user_id=post.posted_by_user_id,
        posted_by_role=post.posted_by_role,
        caption=post.caption,
        media=[{"id": m.id, "url": to_cdn_url(m.url), "type": m.type} for m in post.media],
        likes=list(post.likes),
        like_count=post.like_count,
        comments=[serialize_comment(c, users) for c in post.comments],
        comment_count=post.comment_count,
        is_hidden=post.is_hidden,
        created_at=post.created_at,
        updated_at=post.updated_at,
        author=_author_preview(users.get(post.posted_by_user_id)),
        sangh=_sangh_preview(sanghs.get(post.sangh_id)) if post.sangh_id else None,
    )
    return response.model_dump(mode="json")


async def serialize_posts(posts: List[SanghPostModel]) -> List[dict]:
    users, sanghs = await asyncio.gather(
        fetch_users(_user_ids(posts)),
        _fetch_by_ids(hierarchical_sanghs_collection, {p.sangh_id for p in posts}, _SANGH_PREVIEW_FIELDS),
    )
    return [_serialize_post(p, users, sanghs) for p in posts]


async def serialize_post(post: SanghPostModel) -> dict:
    return (await serialize_posts([post]))[0]


async def _list_posts(query: dict, page: int, limit: int) -> dict:
    skip = (page - 1) * limit
    cursor = sangh_posts_collection.find(query).sort("created_at", -1).skip(skip).limit(limit)
    docs, total = await asyncio.gather(
        cursor.to_list(length=limit),
        sangh_posts_collection.count_documents(query),
    )
    posts = [SanghPostModel(**d) for d in docs]
    return {
        "posts": await serialize_posts(posts),
        "pagination": {
            "total": total,
            "page": page,
            "pages": math.ceil(total / limit),
        },
    }


# ---------------------------
# Create
# ---------------------------

async def create_post(
    sangh: dict,
    posted_by_role: str,
    caption: Optional[str],
    files: Optional[List[UploadFile]],
    current_user: dict,
    cache: CacheService,
    media: MediaStore,
    sangh_type: str = "main",
) -> dict:
    user_id = str(current_user["_id"])
    files = real_uploads(files)

    post = SanghPostModel(
        sangh_id=str(sangh["_id"]),
        sangh_type=sangh_type,
        posted_by_user_id=user_id,
        posted_by_role=posted_by_role,
    )
    post.set_caption(clean_text(caption))
    if not post.caption and not files:
        raise ValidationError("Caption or at least one media file is required")
    validate_uploads(files)

    # upload first; the document only ever points at blobs that exist
    post.media = await media.upload_all(files, user_id)

    try:
        result = await sangh_posts_collection.insert_one(post.to_document())
    except Exception:
        logger.exception("Saving post failed; removing %d uploaded file(s)", len(post.media))
        await media.cleanup(post.media)
        raise
    post.id = str(result.inserted_id)

    await cache.invalidate_post(post.id, post.sangh_id)
    return await serialize_post(post)


# ---------------------------
# Read
# ---------------------------

async def get_sangh_posts(sangh_id: str, page: int, limit: int, cache: CacheService) -> dict:
    sangh = await load_sangh(sangh_id)
    page, limit = page_params(page, limit)

    async def produce():
        return await _list_posts({"sangh_id": str(sangh["_id"]), "is_hidden": False}, page, limit)

    return await cache.get_or_set(sangh_posts_key(str(sangh["_id"]), page, limit), produce, TTL_SANGH_POSTS)


async def get_all_sangh_posts(page: int, limit: int, cache: CacheService) -> dict:
    page, limit = page_params(page, limit)

    async def produce():
        return await _list_posts({"is_hidden": False}, page, limit)

    return await cache.get_or_set(feed_key(page, limit), produce, TTL_FEED)


async def get_post_by_id(post_id: str, current_user: Optional[dict], cache: CacheService) -> dict:
    oid = ensure_oid(post_id)
    # mutations evict by the canonical lower-case hex
    post_id = str(oid)

    async def produce():
        doc = await sangh_posts_collection.find_one({"_id": oid})
        if not doc:
            return None
        return await serialize_post(SanghPostModel(**doc))

    data = await cache.get_or_set(post_key(post_id), produce, TTL_POST)
    if data is None:
        raise post_not_found()
    # the cache holds hidden posts too; the visibility rule runs per reader
    ensure_visible(PostResponse.model_validate(data), current_user)
    return data


# ---------------------------
# Update / visibility
# ---------------------------

async def update_post(
    post_id: str,
    caption: Optional[str],
    files: Optional[List[UploadFile]],
    current_user: dict,
    cache: CacheService,
    media: MediaStore,
) -> dict:
    post = await load_post(post_id)
    authorize(post, current_user, "edit")
    files = real_uploads(files)

    if caption is not None:
        post.set_caption(clean_text(caption))
    if not post.caption and not post.media and not files:
        raise ValidationError("Caption or at least one media file is required")
    validate_uploads(files, existing=len(post.media))

    new_media = await media.upload_all(files, str(current_user["_id"]))
    post.media.extend(new_media)
    post.touch()

    try:
        result = await sangh_posts_collection.update_one(
            {"_id": ObjectId(post.id)},
            {"$set": {
                "caption": post.caption,
                "media": [m.model_dump() for m in post.media],
                "updated_at": post.updated_at,
            }},
        )
    except Exception:
        logger.exception("Updating post %s failed; removing %d new upload(s)", post_id, len(new_media))
        await media.cleanup(new_media)
        raise
    if result.matched_count == 0:
        # deleted between load and write
        await media.cleanup(new_media)
        raise post_not_found()

    await cache.invalidate_post(post.id, post.sangh_id)
    return await serialize_post(post)


async def set_post_hidden(post_id: str, hidden: bool, current_user: dict, cache: CacheService) -> dict:
    post = await load_post(post_id)
    authorize(post, current_user, "hide")

    post.is_hidden = hidden
    post.touch()
    await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id)},
        {"$set": {"is_hidden": hidden, "updated_at": post.updated_at}},
    )

    await cache.invalidate_post(post.id, post.sangh_id)
    return {
        "message": "Post hidden successfully" if hidden else "Post unhidden successfully",
        "post": await serialize_post(post),
    }


# ---------------------------
# Delete
# ---------------------------

async def delete_post(post_id: str, current_user: dict, cache: CacheService, media: MediaStore) -> dict:
    post = await load_post(post_id)
    authorize(post, current_user, "delete")

    # every blob gets a delete attempt; failures are logged and never block the record delete
    failed = await media.delete_many(m.url for m in post.media)
    await sangh_posts_collection.delete_one({"_id": ObjectId(post.id)})

    await cache.invalidate_post(post.id, post.sangh_id)
    return {"message": "Post deleted successfully", "failed_media": failed}


async def delete_media_item(
    post_id: str,
    media_id: str,
    current_user: dict,
    cache: CacheService,
    media: MediaStore,
) -> dict:
    post = await load_post(post_id)
    authorize(post, current_user, "delete_media")

    item = post.find_media(media_id)
    if item is None:
        raise NotFoundError("media", "Media not found in post")

    # blob first: dropping the reference without the blob would leak storage,
    # so an UpstreamStorageError here fails the request and keeps the reference
    await media.delete(item.url)

    updated_at = now_utc()
    await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id)},
        {"$pull": {"media": {"id": media_id}}, "$set": {"updated_at": updated_at}},
    )
    post.media = [m for m in post.media if m.id != media_id]
    post.updated_at = updated_at

    await cache.invalidate_post(post.id, post.sangh_id)
    return {"message": "Media deleted successfully", "post": await serialize_post(post)}


