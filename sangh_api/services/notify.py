# sangh_api/services/notify.py
import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from ..db.mongo import notifications_collection
from ..models.notification_model import NotificationModel
from .socket_manager import emit_to_user

logger = logging.getLogger(__name__)

Emitter = Callable[[str, str, Any], Awaitable[Any]]


def display_name(user: dict) -> str:
    full = user.get("fullName") or " ".join(
        p for p in (user.get("firstName"), user.get("lastName")) if p
    )
    return full or "Someone"


class Notifier:
    """
    Engagement notifications: stored in ``notifications`` and pushed over
    Socket.IO as a ``notification`` event. Callers use ``notify_bg`` so the
    request never waits on, or fails because of, delivery.
    """

    def __init__(self, collection=None, emit: Optional[Emitter] = None):
        self.collection = collection if collection is not None else notifications_collection
        self.emit = emit or emit_to_user
        self._tasks: Set[asyncio.Task] = set()

    async def notify(self, notification: NotificationModel) -> str:
        doc = notification.model_dump(exclude={"id"})
        result = await self.collection.insert_one(doc)
        payload = {
            "id": str(result.inserted_id),
            "type": notification.type,
            "message": notification.message,
            "sender_id": notification.sender_id,
            "entity_id": notification.entity_id,
            "entity_type": notification.entity_type,
            "post_id": notification.post_id,
            "created_at": notification.created_at.isoformat(),
        }
        await self.emit(notification.receiver_id, "notification", payload)
        return str(result.inserted_id)

    async def _notify_logged(self, notification: NotificationModel) -> None:
        try:
            await self.notify(notification)
        except Exception:
            logger.exception(
                "Failed to deliver %s notification to %s", notification.type, notification.receiver_id
            )

    def notify_bg(self, notification: NotificationModel) -> None:
        """
        Fire-and-forget so the route returns fast.
        Safe to call from controllers after DB writes succeed.
        """
        if notification.sender_id == notification.receiver_id:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No running loop (scripts). Deliver inline.
            asyncio.run(self._notify_logged(notification))
            return
        task = loop.create_task(self._notify_logged(notification))
        # keep a reference until done, the loop only holds weak ones
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> None:
        """Wait for pending deliveries (shutdown, tests)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ---------------------------
    # Engagement events
    # ---------------------------
    def post_liked(self, sender: dict, receiver_id: str, post_id: str) -> None:
        self.notify_bg(NotificationModel(
            sender_id=sender["_id"],
            receiver_id=receiver_id,
            type="like",
            message=f"{display_name(sender)} liked your post",
            entity_id=post_id,
            entity_type="SanghPost",
        ))

    def post_commented(self, sender: dict, receiver_id: str, post_id: str) -> None:
        self.notify_bg(NotificationModel(
            sender_id=sender["_id"],
            receiver_id=receiver_id,
            type="comment",
            message=f"{display_name(sender)} commented on your post",
            entity_id=post_id,
            entity_type="SanghPost",
        ))

    def comment_replied(self, sender: dict, receiver_id: str, comment_id: str, post_id: str) -> None:
        self.notify_bg(NotificationModel(
            sender_id=sender["_id"],
            receiver_id=receiver_id,
            type="reply",
            message=f"{display_name(sender)} replied to your comment",
            entity_id=comment_id,
            entity_type="Comment",
            post_id=post_id,
        ))


_notifier: Optional[Notifier] = None


def get_notifier() -> Notifier:
    """FastAPI dependency: the shared notifier."""
    global _notifier
    if _notifier is None:
        _notifier = Notifier()
    return _notifier
