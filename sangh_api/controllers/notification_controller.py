# sangh_api/controllers/notification_controller.py
from __future__ import annotations

import math

from bson import ObjectId
from pymongo import ReturnDocument

from ..db.mongo import notifications_collection
from ..models.notification_model import NotificationModel
from ..utils.errors import AuthorizationError, NotFoundError, ValidationError
from .sangh_post_controller import page_params


def _to_response(doc: dict) -> dict:
    n = NotificationModel(**doc)
    return n.model_dump()


async def get_notifications(current_user: dict, page: int = 1, limit: int = 10) -> dict:
    page, limit = page_params(page, limit)
    user_id = str(current_user["_id"])
    query = {"receiver_id": user_id}

    cursor = (
        notifications_collection.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    items = [_to_response(doc) async for doc in cursor]
    total = await notifications_collection.count_documents(query)
    unread = await notifications_collection.count_documents({**query, "is_read": False})

    return {
        "notifications": items,
        "unread_count": unread,
        "pagination": {"total": total, "page": page, "pages": math.ceil(total / limit)},
    }


async def mark_notification_read(notification_id: str, current_user: dict) -> dict:
    if not ObjectId.is_valid(notification_id):
        raise ValidationError("Invalid notification ID")
    oid = ObjectId(notification_id)

    doc = await notifications_collection.find_one({"_id": oid})
    if not doc:
        raise NotFoundError("notification", "Notification not found")
    if str(doc["receiver_id"]) != str(current_user["_id"]):
        raise AuthorizationError("Not authorized to update this notification")

    updated = await notifications_collection.find_one_and_update(
        {"_id": oid},
        {"$set": {"is_read": True}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFoundError("notification", "Notification not found")
    return _to_response(updated)
