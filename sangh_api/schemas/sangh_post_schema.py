# sangh_api/schemas/sangh_post_schema.py
from pydantic import BaseModel, Field, StringConstraints
from typing import Any, List, Optional
from datetime import datetime
from typing_extensions import Annotated

from ..models.sangh_post_model import COMMENT_MAX_LENGTH, REPLY_MAX_LENGTH

CommentText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=COMMENT_MAX_LENGTH)]
ReplyText = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=REPLY_MAX_LENGTH)]


class AuthorPreview(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    profile_picture: Optional[str] = None


class SanghPreview(BaseModel):
    id: str
    name: Optional[str] = None
    level: Optional[str] = None
    location: Optional[Any] = None


# ---------------------------
# Requests
# ---------------------------
class CommentCreateRequest(BaseModel):
    text: CommentText


class ReplyCreateRequest(BaseModel):
    text: ReplyText


# ---------------------------
# Responses
# ---------------------------
class MediaItemSchema(BaseModel):
    id: str
    url: str
    type: str


class ReplySchema(BaseModel):
    id: str
    user_id: str
    text: str
    created_at: Optional[datetime] = None
    author: Optional[AuthorPreview] = None


class CommentSchema(BaseModel):
    id: str
    user_id: str
    text: str
    created_at: Optional[datetime] = None
    author: Optional[AuthorPreview] = None
    replies: List[ReplySchema] = []
    reply_count: int = 0


class PostResponse(BaseModel):
    id: str
    sangh_id: Optional[str] = None
    sangh_type: str = "main"
    posted_by_user_id: str
    posted_by_role: str
    caption: str = ""
    media: List[MediaItemSchema] = []
    likes: List[str] = []
    like_count: int = 0
    comments: List[CommentSchema] = []
    comment_count: int = 0
    is_hidden: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    author: Optional[AuthorPreview] = None
    sangh: Optional[SanghPreview] = None


class PaginationSchema(BaseModel):
    total: int
    page: int
    pages: int


class PostListResponse(BaseModel):
    posts: List[PostResponse] = []
    pagination: PaginationSchema


class LikeToggleResponse(BaseModel):
    is_liked: bool
    like_count: int


class CommentAddedResponse(BaseModel):
    comment: CommentSchema
    comment_count: int


class ReplyAddedResponse(BaseModel):
    reply: ReplySchema
    reply_count: int


class RepliesResponse(BaseModel):
    replies: List[ReplySchema] = []
    reply_count: int = 0


class CommentsResponse(BaseModel):
    comments: List[CommentSchema] = []
    comment_count: int = 0


class MessageResponse(BaseModel):
    message: str
    post: Optional[PostResponse] = None
    failed_media: List[str] = Field(default_factory=list)
