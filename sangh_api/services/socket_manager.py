# sangh_api/services/socket_manager.py
import logging
import os
from typing import Any, Optional
from urllib.parse import parse_qs

import socketio
from bson import ObjectId
from jose import jwt, JWTError

from ..db.mongo import users_collection, socket_sessions_collection
from ..utils.datetime_utils import now_utc

logger = logging.getLogger(__name__)

# ------------------------
# Config
# ------------------------
JWT_SECRET = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
JWT_ALG = os.getenv("JWT_ALGORITHM", "HS256")

# Comma-separated list of origins, e.g. "https://app.example.org,https://admin.example.org"
_raw_origins = os.getenv("SOCKETIO_CORS_ORIGINS", "*").strip()
if _raw_origins == "*" or not _raw_origins:
    CORS_ORIGINS = "*"
else:
    CORS_ORIGINS = [o.strip() for o in _raw_origins.split(",") if o.strip()]

SOCKETIO_PATH = os.getenv("SOCKETIO_PATH", "/socket.io")

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=CORS_ORIGINS,
    ping_interval=25,
    ping_timeout=60,
)


def user_room(user_id: str) -> str:
    # every socket of a user joins this room, so one emit reaches all their devices
    return f"user:{user_id}"


async def emit_to_user(user_id: str, event: str, payload: Any) -> None:
    await sio.emit(event, payload, room=user_room(str(user_id)))


# ------------------------
# Handshake auth
# ------------------------
def _token_from(environ: dict, auth: Optional[dict]) -> Optional[str]:
    """``auth={"token": ...}`` first, then ``Authorization: Bearer``, then ``?token=``."""
    if isinstance(auth, dict) and auth.get("token"):
        return auth["token"]

    scheme, _, value = (environ.get("HTTP_AUTHORIZATION") or "").partition(" ")
    if scheme.lower() == "bearer" and value:
        return value.strip()

    vals = parse_qs(environ.get("QUERY_STRING") or "").get("token")
    return vals[0] if vals else None


def socket_user_id(environ: dict, auth: Optional[dict]) -> Optional[str]:
    token = _token_from(environ, auth)
    if not token or not JWT_SECRET:
        return None
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALG])
    except JWTError:
        return None
    uid = str(payload.get("user_id") or payload.get("sub") or "")
    return uid if ObjectId.is_valid(uid) else None


# ------------------------
# Lifecycle events
# ------------------------
@sio.event
async def connect(sid, environ, auth=None):
    user_id = socket_user_id(environ, auth)
    if not user_id:
        return False
    user = await users_collection.find_one({"_id": ObjectId(user_id)}, {"is_banned": 1})
    if not user or user.get("is_banned") is True:
        return False

    await sio.enter_room(sid, user_room(user_id))
    await sio.save_session(sid, {"user_id": user_id})
    await socket_sessions_collection.update_one(
        {"sid": sid},
        {"$set": {"sid": sid, "user_id": user_id, "connected_at": now_utc()}},
        upsert=True,
    )
    logger.debug("Socket %s connected for user %s", sid, user_id)
    return True


@sio.event
async def disconnect(sid, reason=None):
    # rooms are left automatically; only the presence record needs clearing
    await socket_sessions_collection.delete_one({"sid": sid})
    logger.debug("Socket %s disconnected (%s)", sid, reason)


__all__ = ["sio", "emit_to_user", "SOCKETIO_PATH"]
