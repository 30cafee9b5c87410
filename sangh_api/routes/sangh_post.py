# sangh_api/routes/sangh_post.py
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from typing import List, Literal, Optional

from sangh_api.schemas.sangh_post_schema import (
    CommentAddedResponse,
    CommentCreateRequest,
    CommentsResponse,
    LikeToggleResponse,
    MessageResponse,
    PostListResponse,
    PostResponse,
    RepliesResponse,
    ReplyAddedResponse,
    ReplyCreateRequest,
)
from sangh_api.controllers.sangh_post_controller import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    create_post,
    delete_media_item,
    delete_post,
    get_all_sangh_posts,
    get_post_by_id,
    get_sangh_posts,
    set_post_hidden,
    update_post,
)
from sangh_api.controllers.engagement_controller import (
    add_comment,
    add_reply,
    delete_comment,
    delete_reply,
    get_replies,
    toggle_like,
)
from sangh_api.services.cache_service import CacheService, get_cache
from sangh_api.services.media_service import MediaStore, get_media_store
from sangh_api.services.notify import Notifier, get_notifier
from sangh_api.utils.auth_utils import get_current_user, get_optional_user
from sangh_api.utils.permissions import can_post_as_sangh

router = APIRouter(prefix="/sangh", tags=["Sangh Posts"])


# ✅ Create a post as a Sangh (office bearers only)
@router.post(
    "/{sangh_id}/posts",
    response_model=PostResponse,
    status_code=201,
    summary="Create a Sangh post with optional media",
)
async def create_sangh_post(
    caption: Optional[str] = Form(None),
    sangh_type: Literal["main", "women", "youth"] = Form("main"),
    media: Optional[List[UploadFile]] = File(None),
    context: dict = Depends(can_post_as_sangh),
    cache: CacheService = Depends(get_cache),
    store: MediaStore = Depends(get_media_store),
):
    return await create_post(
        context["sangh"],
        context["role"],
        caption,
        media,
        context["user"],
        cache,
        store,
        sangh_type=sangh_type,
    )


# ✅ Posts of one Sangh (newest first, hidden excluded)
@router.get("/{sangh_id}/posts", response_model=PostListResponse, summary="List posts of a Sangh")
async def list_sangh_posts(
    sangh_id: str,
    page: int = Query(1, description="1-based; values below 1 read as 1"),
    limit: int = Query(DEFAULT_LIMIT, description=f"clamped to 1..{MAX_LIMIT}"),
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await get_sangh_posts(sangh_id, page, limit, cache)


# ✅ Feed across all Sanghs (declared before /posts/{post_id})
@router.get("/posts/feed", response_model=PostListResponse, summary="List posts of all Sanghs")
async def list_all_sangh_posts(
    page: int = Query(1, description="1-based; values below 1 read as 1"),
    limit: int = Query(DEFAULT_LIMIT, description=f"clamped to 1..{MAX_LIMIT}"),
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await get_all_sangh_posts(page, limit, cache)


# ✅ Single post (hidden posts only for owner / privileged)
@router.get("/posts/{post_id}", response_model=PostResponse, summary="Get a Sangh post by ID")
async def get_sangh_post(
    post_id: str,
    current_user: Optional[dict] = Depends(get_optional_user),
    cache: CacheService = Depends(get_cache),
):
    return await get_post_by_id(post_id, current_user, cache)


# ✅ Edit caption and/or append media
@router.put("/posts/{post_id}", response_model=PostResponse, summary="Update a Sangh post")
async def update_sangh_post(
    post_id: str,
    caption: Optional[str] = Form(None),
    media: Optional[List[UploadFile]] = File(None),
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    store: MediaStore = Depends(get_media_store),
):
    return await update_post(post_id, caption, media, current_user, cache, store)


# ✅ Delete a post and its media
@router.delete("/posts/{post_id}", response_model=MessageResponse, summary="Delete a Sangh post")
async def delete_sangh_post(
    post_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    store: MediaStore = Depends(get_media_store),
):
    return await delete_post(post_id, current_user, cache, store)


# ✅ Remove one media item
@router.delete(
    "/posts/{post_id}/media/{media_id}",
    response_model=MessageResponse,
    summary="Delete one media item from a post",
)
async def delete_sangh_post_media(
    post_id: str,
    media_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    store: MediaStore = Depends(get_media_store),
):
    return await delete_media_item(post_id, media_id, current_user, cache, store)


# ✅ Hide / unhide
@router.put("/posts/{post_id}/hide", response_model=MessageResponse, summary="Hide a post")
async def hide_sangh_post(
    post_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await set_post_hidden(post_id, True, current_user, cache)


@router.put("/posts/{post_id}/unhide", response_model=MessageResponse, summary="Unhide a post")
async def unhide_sangh_post(
    post_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await set_post_hidden(post_id, False, current_user, cache)


# ✅ Like / unlike toggle
@router.put("/posts/{post_id}/like", response_model=LikeToggleResponse, summary="Toggle like on a post")
async def toggle_sangh_post_like(
    post_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    notifier: Notifier = Depends(get_notifier),
):
    return await toggle_like(post_id, current_user, cache, notifier)


# ✅ Comments
@router.post(
    "/posts/{post_id}/comments",
    response_model=CommentAddedResponse,
    summary="Comment on a post",
)
async def comment_on_sangh_post(
    post_id: str,
    body: CommentCreateRequest,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    notifier: Notifier = Depends(get_notifier),
):
    return await add_comment(post_id, body.text, current_user, cache, notifier)


@router.delete(
    "/posts/{post_id}/comments/{comment_id}",
    response_model=CommentsResponse,
    summary="Delete a comment",
)
async def delete_sangh_post_comment(
    post_id: str,
    comment_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await delete_comment(post_id, comment_id, current_user, cache)


# ✅ Replies
@router.post(
    "/posts/{post_id}/comments/{comment_id}/replies",
    response_model=ReplyAddedResponse,
    status_code=201,
    summary="Reply to a comment",
)
async def reply_to_sangh_comment(
    post_id: str,
    comment_id: str,
    body: ReplyCreateRequest,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
    notifier: Notifier = Depends(get_notifier),
):
    return await add_reply(post_id, comment_id, body.text, current_user, cache, notifier)


@router.get(
    "/posts/{post_id}/comments/{comment_id}/replies",
    response_model=RepliesResponse,
    summary="List replies to a comment",
)
async def list_sangh_comment_replies(
    post_id: str,
    comment_id: str,
    current_user: dict = Depends(get_current_user),
):
    return await get_replies(post_id, comment_id, current_user)


@router.delete(
    "/posts/{post_id}/comments/{comment_id}/replies/{reply_id}",
    response_model=RepliesResponse,
    summary="Delete a reply",
)
async def delete_sangh_comment_reply(
    post_id: str,
    comment_id: str,
    reply_id: str,
    current_user: dict = Depends(get_current_user),
    cache: CacheService = Depends(get_cache),
):
    return await delete_reply(post_id, comment_id, reply_id, current_user, cache)
