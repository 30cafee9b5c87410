# sangh_api/routes/notification.py
from fastapi import APIRouter, Depends, Query

from sangh_api.schemas.notification_schema import NotificationListResponse, NotificationSchema
from sangh_api.controllers.notification_controller import get_notifications, mark_notification_read
from sangh_api.controllers.sangh_post_controller import DEFAULT_LIMIT, MAX_LIMIT
from sangh_api.utils.auth_utils import get_current_user

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse, summary="My notifications, newest first")
async def list_my_notifications(
    page: int = Query(1, description="1-based; values below 1 read as 1"),
    limit: int = Query(DEFAULT_LIMIT, description=f"clamped to 1..{MAX_LIMIT}"),
    current_user: dict = Depends(get_current_user),
):
    return await get_notifications(current_user, page, limit)


@router.put("/{notification_id}/read", response_model=NotificationSchema, summary="Mark a notification as read")
async def read_notification(
    notification_id: str,
    current_user: dict = Depends(get_current_user),
):
    return await mark_notification_read(notification_id, current_user)
