# sangh_api/models/sangh_post_model.py
"""
The Sangh post aggregate.

A post owns its comments, each comment owns its replies, and likes are a flat
list of actor ids. Nothing below the post is stored on its own: every change
to a comment, reply or like is made on a loaded ``SanghPostModel`` and then
written back through the post document.
"""
from __future__ import annotations

import os
from datetime import datetime
from typing import List, Literal, Optional

from bson import ObjectId
from pydantic import BaseModel, Field
from pydantic.functional_validators import AfterValidator, BeforeValidator
from typing_extensions import Annotated

from ..utils.datetime_utils import now_utc, to_utc_aware
from ..utils.errors import ValidationError, comment_not_found

# ✅ Converts ObjectId to string before validation
PyObjectId = Annotated[str, BeforeValidator(lambda x: str(x))]
UtcDatetime = Annotated[datetime, AfterValidator(to_utc_aware)]

CAPTION_MAX_LENGTH = int(os.getenv("CAPTION_MAX_LENGTH", "2000"))
COMMENT_MAX_LENGTH = int(os.getenv("COMMENT_MAX_LENGTH", "500"))
REPLY_MAX_LENGTH = int(os.getenv("REPLY_MAX_LENGTH", "500"))

SanghType = Literal["main", "women", "youth"]
MediaType = Literal["image", "video"]


def new_sub_id() -> str:
    return str(ObjectId())


def _checked_text(text: Optional[str], max_length: int, label: str) -> str:
    cleaned = (text or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} text is required")
    if len(cleaned) > max_length:
        raise ValidationError(f"{label} cannot exceed {max_length} characters")
    return cleaned


class MediaItemModel(BaseModel):
    id: PyObjectId = Field(default_factory=new_sub_id)
    url: str
    type: MediaType


class ReplyModel(BaseModel):
    id: PyObjectId = Field(default_factory=new_sub_id)
    user_id: PyObjectId
    text: str
    created_at: UtcDatetime = Field(default_factory=now_utc)


class CommentModel(BaseModel):
    id: PyObjectId = Field(default_factory=new_sub_id)
    user_id: PyObjectId
    text: str
    created_at: UtcDatetime = Field(default_factory=now_utc)
    replies: List[ReplyModel] = Field(default_factory=list)

    @property
    def reply_count(self) -> int:
        return len(self.replies)

    def find_reply(self, reply_id: str) -> Optional[ReplyModel]:
        return next((r for r in self.replies if r.id == reply_id), None)


class SanghPostModel(BaseModel):
    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    sangh_id: Optional[PyObjectId] = None
    sangh_type: SanghType = "main"
    posted_by_user_id: PyObjectId
    posted_by_role: str
    caption: str = ""
    media: List[MediaItemModel] = Field(default_factory=list)
    likes: List[PyObjectId] = Field(default_factory=list)
    comments: List[CommentModel] = Field(default_factory=list)
    is_hidden: bool = False
    created_at: UtcDatetime = Field(default_factory=now_utc)
    updated_at: UtcDatetime = Field(default_factory=now_utc)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
        "extra": "ignore",
    }

    # ---------------------------
    # Derived values
    # ---------------------------
    @property
    def like_count(self) -> int:
        return len(self.likes)

    @property
    def comment_count(self) -> int:
        return len(self.comments)

    # ---------------------------
    # Likes
    # ---------------------------
    def is_liked_by(self, user_id: str) -> bool:
        user_id = str(user_id)
        return any(uid == user_id for uid in self.likes)

    def toggle_like(self, user_id: str) -> dict:
        """
        Unlike when the actor is already in ``likes``, like otherwise.
        Removal filters by value so the order of the other likers is kept.
        """
        user_id = str(user_id)
        is_liked = self.is_liked_by(user_id)
        if is_liked:
            self.likes = [uid for uid in self.likes if uid != user_id]
        else:
            self.likes.append(user_id)
        self.touch()
        return {"is_liked": not is_liked, "like_count": self.like_count}

    # ---------------------------
    # Comments / replies
    # ---------------------------
    def find_comment(self, comment_id: str) -> Optional[CommentModel]:
        return next((c for c in self.comments if c.id == comment_id), None)

    def add_comment(self, user_id: str, text: str) -> CommentModel:
        comment = CommentModel(
            user_id=str(user_id),
            text=_checked_text(text, COMMENT_MAX_LENGTH, "Comment"),
        )
        self.comments.append(comment)
        self.touch()
        return comment

    def add_reply(self, comment_id: str, user_id: str, text: str) -> tuple[ReplyModel, CommentModel]:
        comment = self.find_comment(comment_id)
        if comment is None:
            raise comment_not_found()
        reply = ReplyModel(
            user_id=str(user_id),
            text=_checked_text(text, REPLY_MAX_LENGTH, "Reply"),
        )
        comment.replies.append(reply)
        self.touch()
        return reply, comment

    # ---------------------------
    # Media / caption
    # ---------------------------
    def find_media(self, media_id: str) -> Optional[MediaItemModel]:
        return next((m for m in self.media if m.id == media_id), None)

    def set_caption(self, caption: Optional[str]) -> None:
        cleaned = (caption or "").strip()
        if len(cleaned) > CAPTION_MAX_LENGTH:
            raise ValidationError(f"Caption cannot exceed {CAPTION_MAX_LENGTH} characters")
        self.caption = cleaned

    def touch(self) -> None:
        self.updated_at = now_utc()

    # ---------------------------
    # Persistence
    # ---------------------------
    def to_document(self) -> dict:
        """Mongo document for insert/replace. ``_id`` only when already persisted."""
        doc = self.model_dump(exclude={"id"})
        if self.id is not None:
            doc["_id"] = ObjectId(self.id)
        return doc
