# sangh_api/models/notification_model.py
from pydantic import BaseModel, Field
from typing import Literal, Optional
from bson import ObjectId

from .sangh_post_model import PyObjectId, UtcDatetime
from ..utils.datetime_utils import now_utc

NotificationType = Literal["like", "comment", "reply"]
EntityType = Literal["SanghPost", "Comment"]


class NotificationModel(BaseModel):
    id: Optional[PyObjectId] = Field(alias="_id", default=None)
    sender_id: PyObjectId
    receiver_id: PyObjectId
    type: NotificationType
    message: str
    is_read: bool = False
    entity_id: PyObjectId
    entity_type: EntityType
    post_id: Optional[PyObjectId] = None   # set on reply notifications (entity is the comment)
    created_at: UtcDatetime = Field(default_factory=now_utc)

    model_config = {
        "populate_by_name": True,
        "arbitrary_types_allowed": True,
        "json_encoders": {ObjectId: str},
    }
