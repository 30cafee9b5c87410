# sangh_api/utils/auth_utils.py
from __future__ import annotations

import os
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from bson import ObjectId

from ..db.mongo import users_collection
from .errors import AuthorizationError, UnauthenticatedError

# ------------------------------------------------------------------
# Config
# ------------------------------------------------------------------
# Support either JWT_SECRET_KEY or JWT_SECRET (fallback)
SECRET_KEY = os.getenv("JWT_SECRET_KEY") or os.getenv("JWT_SECRET") or ""
ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")

# Roles allowed to act on content they don't own
PRIVILEGED_ROLES = {
    s.strip() for s in (os.getenv("PRIVILEGED_ROLES", "superadmin,admin") or "").split(",") if s.strip()
}

# auto_error=False so a missing header becomes our 401, not FastAPI's 403
bearer_scheme = HTTPBearer(auto_error=False)


def is_privileged(user: Optional[dict]) -> bool:
    return bool(user) and user.get("role") in PRIVILEGED_ROLES


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------
def _user_id_from_token(token: str) -> str:
    if not SECRET_KEY:
        raise RuntimeError("JWT secret not configured.")
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        raise UnauthenticatedError("Invalid or expired token.")
    user_id = payload.get("user_id") or payload.get("sub")
    if not user_id or not ObjectId.is_valid(str(user_id)):
        raise UnauthenticatedError("Invalid token payload.")
    return str(user_id)


async def _load_user_or_401(user_id: str) -> dict:
    user = await users_collection.find_one({"_id": ObjectId(user_id)})
    if not user:
        raise UnauthenticatedError("User not found.")
    if user.get("is_banned") is True:
        raise AuthorizationError("Account banned.")
    return user


# ------------------------------------------------------------------
# Public dependencies
# ------------------------------------------------------------------
async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict:
    """
    Validates Bearer JWT and loads the user.
    Returns the Mongo user document (with ObjectId _id); the identity is trusted as-is downstream.
    """
    if not credentials or not credentials.credentials:
        raise UnauthenticatedError("Not authorized, no token.")
    return await _load_user_or_401(_user_id_from_token(credentials.credentials))


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[dict]:
    """
    Optional auth: returns a user doc if a valid Bearer token is present; otherwise None.
    Never raises for missing/invalid token, used by public read endpoints.
    """
    if not credentials or not credentials.credentials:
        return None
    try:
        return await _load_user_or_401(_user_id_from_token(credentials.credentials))
    except (UnauthenticatedError, AuthorizationError):
        return None
