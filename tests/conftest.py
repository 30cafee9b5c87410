"""
Shared fixtures.

MongoDB is mongomock-motor, Redis is fakeredis and Cloudinary's uploader is
replaced with recorders, so the real controllers, cache and media code run
without any network service.
"""
import os

os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGODB_DB_NAME", "sangh_test")
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ["MEDIA_CDN_BASE_URL"] = "https://cdn.example.org"

import motor.motor_asyncio
from mongomock_motor import AsyncMongoMockClient

# must happen before sangh_api.db.mongo builds its client
motor.motor_asyncio.AsyncIOMotorClient = AsyncMongoMockClient

import cloudinary.uploader
import pytest
from bson import ObjectId
from fakeredis import FakeAsyncRedis
from httpx import ASGITransport, AsyncClient
from jose import jwt

from sangh_api.db.mongo import (
    hierarchical_sanghs_collection,
    notifications_collection,
    sangh_posts_collection,
    users_collection,
)
from sangh_api.main import fastapi_app
from sangh_api.services.cache_service import CacheService, get_cache
from sangh_api.services.media_service import MediaStore, get_media_store
from sangh_api.services.notify import Notifier, get_notifier


@pytest.fixture(autouse=True)
async def clean_db():
    for coll in (users_collection, hierarchical_sanghs_collection, sangh_posts_collection, notifications_collection):
        await coll.delete_many({})
    yield


@pytest.fixture
async def cache():
    service = CacheService(FakeAsyncRedis(decode_responses=True))
    yield service
    await service.client.flushall()


class CloudinaryRecorder:
    """Stands in for cloudinary.uploader.upload/destroy."""

    def __init__(self):
        self.uploaded = []
        self.destroyed = []
        self.fail_destroy = set()
        self.fail_upload_at = None

    def upload(self, file, folder=None, public_id=None, resource_type="image", **kwargs):
        if self.fail_upload_at is not None and len(self.uploaded) == self.fail_upload_at:
            raise RuntimeError("upload rejected")
        public_id = f"{folder}/{public_id}"
        self.uploaded.append(public_id)
        ext = "mp4" if resource_type == "video" else "jpg"
        return {
            "public_id": public_id,
            "secure_url": f"https://res.cloudinary.com/demo/{resource_type}/upload/v1700000000/{public_id}.{ext}",
        }

    def destroy(self, public_id, resource_type="image", **kwargs):
        if public_id in self.fail_destroy:
            return {"result": "error"}
        self.destroyed.append(public_id)
        return {"result": "ok"}


@pytest.fixture
def cloud(monkeypatch):
    recorder = CloudinaryRecorder()
    monkeypatch.setattr(cloudinary.uploader, "upload", recorder.upload)
    monkeypatch.setattr(cloudinary.uploader, "destroy", recorder.destroy)
    return recorder


class EmitRecorder:
    def __init__(self):
        self.events = []

    async def __call__(self, user_id, event, payload):
        self.events.append((user_id, event, payload))
        return 1


@pytest.fixture
def emitted():
    return EmitRecorder()


@pytest.fixture
def notifier(emitted):
    return Notifier(emit=emitted)


@pytest.fixture
async def client(cache, cloud, notifier):
    store = MediaStore(folder="sangh-posts")
    fastapi_app.dependency_overrides[get_cache] = lambda: cache
    fastapi_app.dependency_overrides[get_media_store] = lambda: store
    fastapi_app.dependency_overrides[get_notifier] = lambda: notifier
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    await notifier.drain()
    fastapi_app.dependency_overrides.clear()


# ---------------------------
# Data helpers
# ---------------------------
def auth_headers(user: dict) -> dict:
    token = jwt.encode({"user_id": str(user["_id"])}, "test-secret", algorithm="HS256")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth():
    return auth_headers


@pytest.fixture
def make_user():
    async def _make(first_name="Test", role="user", sangh_roles=None):
        doc = {
            "_id": ObjectId(),
            "firstName": first_name,
            "lastName": "User",
            "fullName": f"{first_name} User",
            "role": role,
            "sanghRoles": sangh_roles or [],
        }
        await users_collection.insert_one(doc)
        return doc
    return _make


@pytest.fixture
async def sangh():
    doc = {"_id": ObjectId(), "name": "Jaipur City Sangh", "level": "city", "location": {"city": "Jaipur"}}
    await hierarchical_sanghs_collection.insert_one(doc)
    return doc


@pytest.fixture
async def president(make_user, sangh):
    return await make_user(
        "Asha",
        sangh_roles=[{"sanghId": str(sangh["_id"]), "role": "president", "level": "city"}],
    )