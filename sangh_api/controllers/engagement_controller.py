# sangh_api/controllers/engagement_controller.py
"""
Likes, comments and replies on Sangh posts.

Like/comment/reply load the post, change it in memory and write the touched
array back with ``$set``. Two concurrent writers on the same post race and the
later write wins for that array. Comment and reply deletes are single ``$pull``
updates instead, so they never lose a concurrent change.
"""
from __future__ import annotations

from bson import ObjectId

from ..db.mongo import sangh_posts_collection
from ..services.cache_service import CacheService
from ..services.notify import Notifier
from ..utils.auth_utils import is_privileged
from ..utils.errors import AuthorizationError, NotFoundError, comment_not_found
from ..utils.moderation import clean_text
from ..utils.permissions import ensure_visible, is_owner
from .sangh_post_controller import (
    fetch_users,
    load_post,
    serialize_comment,
    serialize_reply,
)


# ---------------------------
# Like / Unlike
# ---------------------------

async def toggle_like(post_id: str, current_user: dict, cache: CacheService, notifier: Notifier) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    user_id = str(current_user["_id"])
    result = post.toggle_like(user_id)
    await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id)},
        {"$set": {"likes": post.likes, "updated_at": post.updated_at}},
    )
    await cache.invalidate_post(post.id, post.sangh_id)

    if result["is_liked"]:
        notifier.post_liked(current_user, post.posted_by_user_id, post.id)
    return result


# ---------------------------
# Comments
# ---------------------------

async def add_comment(
    post_id: str,
    text: str,
    current_user: dict,
    cache: CacheService,
    notifier: Notifier,
) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    comment = post.add_comment(str(current_user["_id"]), clean_text(text))
    await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id)},
        {"$set": {
            "comments": [c.model_dump() for c in post.comments],
            "updated_at": post.updated_at,
        }},
    )
    await cache.invalidate_post(post.id, post.sangh_id)

    notifier.post_commented(current_user, post.posted_by_user_id, post.id)

    users = await fetch_users([comment.user_id])
    return {"comment": serialize_comment(comment, users), "comment_count": post.comment_count}


async def delete_comment(post_id: str, comment_id: str, current_user: dict, cache: CacheService) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    comment = post.find_comment(comment_id)
    if comment is None:
        raise comment_not_found()
    if comment.user_id != str(current_user["_id"]) and not is_owner(post, current_user) \
            and not is_privileged(current_user):
        raise AuthorizationError("Not authorized to delete this comment")

    result = await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id), "comments.id": comment_id},
        {"$pull": {"comments": {"id": comment_id}}},
    )
    if result.modified_count == 0:
        # someone else removed it first
        raise comment_not_found()
    await cache.invalidate_post(post.id, post.sangh_id)

    post.comments = [c for c in post.comments if c.id != comment_id]
    users = await fetch_users({c.user_id for c in post.comments} | {
        r.user_id for c in post.comments for r in c.replies
    })
    return {
        "comments": [serialize_comment(c, users) for c in post.comments],
        "comment_count": post.comment_count,
    }


# ---------------------------
# Replies
# ---------------------------

async def add_reply(
    post_id: str,
    comment_id: str,
    text: str,
    current_user: dict,
    cache: CacheService,
    notifier: Notifier,
) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    reply, comment = post.add_reply(comment_id, str(current_user["_id"]), clean_text(text))
    await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id)},
        {"$set": {
            "comments": [c.model_dump() for c in post.comments],
            "updated_at": post.updated_at,
        }},
    )
    await cache.invalidate_post(post.id, post.sangh_id)

    # the comment's author hears about it, not the post's
    notifier.comment_replied(current_user, comment.user_id, comment.id, post.id)

    users = await fetch_users([reply.user_id])
    return {"reply": serialize_reply(reply, users), "reply_count": comment.reply_count}


async def get_replies(post_id: str, comment_id: str, current_user) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    comment = post.find_comment(comment_id)
    if comment is None:
        raise comment_not_found()
    users = await fetch_users({r.user_id for r in comment.replies})
    return {
        "replies": [serialize_reply(r, users) for r in comment.replies],
        "reply_count": comment.reply_count,
    }


async def delete_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    current_user: dict,
    cache: CacheService,
) -> dict:
    post = await load_post(post_id)
    ensure_visible(post, current_user)

    comment = post.find_comment(comment_id)
    if comment is None:
        raise comment_not_found()
    reply = comment.find_reply(reply_id)
    if reply is None:
        raise NotFoundError("reply", "Reply not found")
    if reply.user_id != str(current_user["_id"]) and not is_owner(post, current_user) \
            and not is_privileged(current_user):
        raise AuthorizationError("Not authorized to delete this reply")

    result = await sangh_posts_collection.update_one(
        {"_id": ObjectId(post.id), "comments.id": comment_id},
        {"$pull": {"comments.$.replies": {"id": reply_id}}},
    )
    if result.modified_count == 0:
        raise NotFoundError("reply", "Reply not found")
    await cache.invalidate_post(post.id, post.sangh_id)

    comment.replies = [r for r in comment.replies if r.id != reply_id]
    users = await fetch_users({r.user_id for r in comment.replies})
    return {
        "replies": [serialize_reply(r, users) for r in comment.replies],
        "reply_count": comment.reply_count,
    }
