# sangh_api/services/media_service.py
"""
Post media on Cloudinary.

Uploads happen before the post document is written; deletes happen when a post
or a single media item goes away. URLs are stored as Cloudinary returns them
and rewritten to the CDN host (``MEDIA_CDN_BASE_URL``) when served. The blob
key (Cloudinary public id) is recovered from either URL form.
"""
from __future__ import annotations

import asyncio
import io
import logging
import os
import re
import uuid
from typing import Iterable, List, Optional

import cloudinary
import cloudinary.uploader
from dotenv import load_dotenv
from fastapi import UploadFile
from fastapi.concurrency import run_in_threadpool

from ..models.sangh_post_model import MediaItemModel
from ..utils.datetime_utils import epoch_millis
from ..utils.errors import UpstreamStorageError, ValidationError

load_dotenv()

logger = logging.getLogger(__name__)

# Configure once
cloudinary.config(
    cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME"),
    api_key=os.getenv("CLOUDINARY_API_KEY"),
    api_secret=os.getenv("CLOUDINARY_API_SECRET"),
    secure=True,
)

UPLOAD_FOLDER = os.getenv("MEDIA_UPLOAD_FOLDER", "sangh-posts")
CDN_BASE_URL = (os.getenv("MEDIA_CDN_BASE_URL") or "").rstrip("/")
MAX_FILES = int(os.getenv("MEDIA_MAX_FILES", "10"))
MAX_BYTES = int(os.getenv("MEDIA_MAX_BYTES", str(50 * 1024 * 1024)))  # 50MB, videos included

ALLOWED_TYPES = {
    "image/jpeg": "image",
    "image/jpg": "image",
    "image/png": "image",
    "image/webp": "image",
    "video/mp4": "video",
    "video/quicktime": "video",
    "video/x-msvideo": "video",
}

_CLOUDINARY_ORIGIN = re.compile(r"^https?://res\.cloudinary\.com/[^/]+")
# .../<image|video>/upload/[v123/]<public_id>[.ext]
_PUBLIC_ID_RE = re.compile(r"/(?P<kind>image|video)/upload/(?:v\d+/)?(?P<public_id>[^?#]+?)(?:\.[A-Za-z0-9]+)?(?:[?#].*)?$")


def media_type_for(content_type: Optional[str]) -> str:
    kind = ALLOWED_TYPES.get((content_type or "").lower())
    if not kind:
        raise ValidationError(
            "Invalid file type. Only JPEG, JPG, PNG, WEBP and MP4/MOV/AVI video files are allowed."
        )
    return kind


def validate_uploads(files: List[UploadFile], existing: int = 0) -> None:
    """Reject the whole batch before anything is uploaded."""
    if len(files) + existing > MAX_FILES:
        raise ValidationError(f"A post can carry at most {MAX_FILES} media files")
    for f in files:
        media_type_for(f.content_type)


def to_cdn_url(url: str) -> str:
    if not CDN_BASE_URL or not url:
        return url
    return _CLOUDINARY_ORIGIN.sub(CDN_BASE_URL, url, count=1)


def extract_blob_key(url: str) -> Optional[tuple[str, str]]:
    """(resource_type, public_id) for a Cloudinary or CDN URL, ``None`` if unrecognised."""
    m = _PUBLIC_ID_RE.search(url or "")
    if not m:
        return None
    return m.group("kind"), m.group("public_id")


def blob_name(user_id: str) -> str:
    # actor + millisecond timestamp, plus a random suffix so two uploads in the same ms don't collide
    return f"{user_id}-{epoch_millis()}-{uuid.uuid4().hex[:8]}"


class MediaStore:
    def __init__(self, folder: str = UPLOAD_FOLDER):
        self.folder = folder

    async def upload(self, file: UploadFile, user_id: str) -> MediaItemModel:
        kind = media_type_for(file.content_type)
        content = await file.read()
        if len(content) > MAX_BYTES:
            raise ValidationError(f"File {file.filename} exceeds the {MAX_BYTES} byte limit")

        try:
            res = await run_in_threadpool(
                cloudinary.uploader.upload,
                io.BytesIO(content),
                folder=self.folder,
                public_id=blob_name(str(user_id)),
                resource_type=kind,
                overwrite=False,
            )
        except Exception as e:
            logger.error("Upload of %s failed: %s", file.filename, e)
            raise UpstreamStorageError("Media upload failed")

        url = res.get("secure_url")
        if not url:
            raise UpstreamStorageError("Media upload failed")
        return MediaItemModel(url=url, type=kind)

    async def upload_all(self, files: List[UploadFile], user_id: str) -> List[MediaItemModel]:
        """Upload in order; if one fails, remove the ones already stored and re-raise."""
        uploaded: List[MediaItemModel] = []
        try:
            for f in files:
                uploaded.append(await self.upload(f, user_id))
        except Exception:
            await self.cleanup(uploaded)
            raise
        return uploaded

    async def delete(self, url: str) -> None:
        key = extract_blob_key(url)
        if key is None:
            raise UpstreamStorageError(f"Unrecognised media URL: {url}")
        kind, public_id = key
        try:
            res = await run_in_threadpool(
                cloudinary.uploader.destroy, public_id, resource_type=kind, invalidate=True
            )
        except Exception as e:
            logger.error("Error deleting %s from storage: %s", public_id, e)
            raise UpstreamStorageError("Media delete failed")

        # "not found" means the blob is already gone
        result = (res or {}).get("result")
        if result not in ("ok", "not found"):
            logger.error("Storage refused delete of %s: %s", public_id, result)
            raise UpstreamStorageError("Media delete failed")
        logger.info("Deleted %s from storage", public_id)

    async def delete_many(self, urls: Iterable[str]) -> List[str]:
        """Attempt every delete; return the URLs that failed."""
        urls = list(urls)
        results = await asyncio.gather(*(self.delete(u) for u in urls), return_exceptions=True)
        failed = []
        for url, res in zip(urls, results):
            if isinstance(res, Exception):
                logger.error("Error deleting media %s: %s", url, res)
                failed.append(url)
        return failed

    async def cleanup(self, items: Iterable[MediaItemModel]) -> None:
        """Compensating delete after a failed write. Never raises."""
        failed = await self.delete_many(m.url for m in items)
        if failed:
            logger.error("Upload cleanup left %d orphaned blob(s): %s", len(failed), failed)


_media_store: Optional[MediaStore] = None


def get_media_store() -> MediaStore:
    """FastAPI dependency: the shared media store."""
    global _media_store
    if _media_store is None:
        _media_store = MediaStore()
    return _media_store
